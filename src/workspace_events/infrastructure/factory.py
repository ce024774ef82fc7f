"""Event store factory.

Creates the appropriate event store implementation based on config.
"""

from __future__ import annotations

from workspace_events.core.config import EventStoreConfig
from workspace_events.core.enums import StoreBackend
from workspace_events.core.errors import ConfigError

from .event_store import InMemoryEventStore, JsonFileEventStore


def create_event_store(
    config: EventStoreConfig | None = None,
) -> InMemoryEventStore | JsonFileEventStore:
    """Create an event store for the given config.

    - MEMORY: InMemoryEventStore (no persistence, deterministic)
    - JSONL: JsonFileEventStore at ``config.path`` (durable)
    """
    config = config or EventStoreConfig()
    if config.backend == StoreBackend.MEMORY:
        return InMemoryEventStore()
    if not config.path:
        raise ConfigError("The jsonl event store backend requires a path")
    return JsonFileEventStore(config.path)
