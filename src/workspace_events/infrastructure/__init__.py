"""Event bus and event store implementations."""

from __future__ import annotations

from workspace_events.infrastructure.event_bus import IEventBus, InMemoryEventBus
from workspace_events.infrastructure.event_store import (
    IEventStore,
    InMemoryEventStore,
    JsonFileEventStore,
)
from workspace_events.infrastructure.factory import create_event_store

__all__ = [
    "IEventBus",
    "IEventStore",
    "InMemoryEventBus",
    "InMemoryEventStore",
    "JsonFileEventStore",
    "create_event_store",
]
