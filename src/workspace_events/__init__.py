"""Domain event pipeline for the workspace platform.

Public API
----------
::

    from workspace_events import (
        DomainEvent,
        EventTypes,
        new_event,
        EventPublisher,
        PublishResult,
        CausalityTracker,
        InMemoryEventBus,
        InMemoryEventStore,
        JsonFileEventStore,
        build_pipeline,
    )
"""

from __future__ import annotations

from workspace_events.application.publisher import EventPublisher, PublishResult
from workspace_events.domain.causality import CausalityTracker
from workspace_events.domain.events import DomainEvent, EventTypes, new_event
from workspace_events.infrastructure.event_bus import InMemoryEventBus
from workspace_events.infrastructure.event_store import (
    InMemoryEventStore,
    JsonFileEventStore,
)
from workspace_events.pipeline import EventPipeline, build_pipeline

__version__ = "0.1.0"

__all__ = [
    "CausalityTracker",
    "DomainEvent",
    "EventPipeline",
    "EventPublisher",
    "EventTypes",
    "InMemoryEventBus",
    "InMemoryEventStore",
    "JsonFileEventStore",
    "PublishResult",
    "build_pipeline",
    "new_event",
]
