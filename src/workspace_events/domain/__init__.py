"""Event envelope, validation and causality tracking."""

from __future__ import annotations

from workspace_events.domain.causality import (
    CausalityMetadata,
    CausalityStatistics,
    CausalityTracker,
    EventCausalityChain,
)
from workspace_events.domain.events import (
    DomainEvent,
    EventMetadata,
    EventTypes,
    new_event,
)
from workspace_events.domain.validation import collect_problems, validate_event

__all__ = [
    "CausalityMetadata",
    "CausalityStatistics",
    "CausalityTracker",
    "DomainEvent",
    "EventCausalityChain",
    "EventMetadata",
    "EventTypes",
    "collect_problems",
    "new_event",
    "validate_event",
]
