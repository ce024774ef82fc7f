"""Append-only event store: the source of truth for "what happened".

Design invariants
-----------------
1.  ``append()`` **rejects duplicates**: appending an ``event_id`` that
    is already stored raises ``DuplicateEventError``.  Nothing is ever
    overwritten.
2.  Every query returns events in **append order**.
3.  ``append_batch()`` is **all or nothing**: either every event becomes
    visible to later queries or none does.
4.  The store is **append-only**: events can never be deleted or
    modified.  ``clear()`` exists only for testing.
5.  A backing store that cannot be written fails the append with
    ``EventStoreUnavailableError``; queries against an empty store return
    an empty list.

This module provides:

*  ``IEventStore``: the protocol.
*  ``InMemoryEventStore``: list-backed implementation for tests and
   single-process sessions.
*  ``JsonFileEventStore``: append-to-JSONL-file implementation for
   durable local persistence.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator, Sequence
from pathlib import Path
from typing import Protocol, runtime_checkable

from workspace_events.core.errors import (
    DuplicateEventError,
    EventStoreUnavailableError,
)
from workspace_events.domain.events import DomainEvent

logger = logging.getLogger(__name__)

EventFilter = Callable[[DomainEvent], bool]


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------

@runtime_checkable
class IEventStore(Protocol):
    """Append-only event log for replay and audit."""

    async def append(self, event: DomainEvent) -> None:
        """Persist *event*.  Raises ``DuplicateEventError`` on a known id."""
        ...

    async def append_batch(self, events: Sequence[DomainEvent]) -> None:
        """Persist all *events* atomically."""
        ...

    async def get_events_for_aggregate(self, aggregate_id: str) -> list[DomainEvent]:
        """Every event recorded against *aggregate_id*."""
        ...

    async def get_events_for_workspace(self, workspace_id: str) -> list[DomainEvent]:
        """Every event recorded in *workspace_id*."""
        ...

    async def get_events_since(self, timestamp: int) -> list[DomainEvent]:
        """Events with ``timestamp`` strictly greater than *timestamp*."""
        ...

    async def get_events_by_causality(self, correlation_id: str) -> list[DomainEvent]:
        """Every event sharing *correlation_id*."""
        ...

    async def get_events_by_type(self, event_type: str) -> list[DomainEvent]:
        """Every event tagged *event_type*."""
        ...

    async def get_events_in_range(self, start: int, end: int) -> list[DomainEvent]:
        """Events with ``start <= timestamp <= end``."""
        ...


def _check_batch(events: Sequence[DomainEvent], seen: set[str]) -> None:
    """Raise ``DuplicateEventError`` if the batch collides with *seen* or itself."""
    batch_ids: set[str] = set()
    for event in events:
        if event.event_id in seen or event.event_id in batch_ids:
            raise DuplicateEventError(event.event_id)
        batch_ids.add(event.event_id)


class _QueryMixin(ABC):
    """Shared query surface on top of ``_select()``."""

    @abstractmethod
    async def _select(self, predicate: EventFilter) -> list[DomainEvent]:
        """Matching events in append order."""

    async def get_events_for_aggregate(self, aggregate_id: str) -> list[DomainEvent]:
        return await self._select(lambda e: e.aggregate_id == aggregate_id)

    async def get_events_for_workspace(self, workspace_id: str) -> list[DomainEvent]:
        return await self._select(lambda e: e.workspace_id == workspace_id)

    async def get_events_since(self, timestamp: int) -> list[DomainEvent]:
        return await self._select(lambda e: e.timestamp > timestamp)

    async def get_events_by_causality(self, correlation_id: str) -> list[DomainEvent]:
        return await self._select(lambda e: e.correlation_id == correlation_id)

    async def get_events_by_type(self, event_type: str) -> list[DomainEvent]:
        return await self._select(lambda e: e.event_type == event_type)

    async def get_events_in_range(self, start: int, end: int) -> list[DomainEvent]:
        return await self._select(lambda e: start <= e.timestamp <= end)


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------

class InMemoryEventStore(_QueryMixin):
    """List-backed event store.  No persistence across restarts.

    Batch atomicity is an in-memory guard: the whole batch is checked for
    duplicates and then extended onto the log under one lock.
    """

    def __init__(self) -> None:
        self._events: list[DomainEvent] = []
        self._seen_ids: set[str] = set()
        self._lock = threading.Lock()

    async def append(self, event: DomainEvent) -> None:
        with self._lock:
            if event.event_id in self._seen_ids:
                raise DuplicateEventError(event.event_id)
            self._seen_ids.add(event.event_id)
            self._events.append(event)

    async def append_batch(self, events: Sequence[DomainEvent]) -> None:
        events = list(events)
        with self._lock:
            _check_batch(events, self._seen_ids)
            self._events.extend(events)
            self._seen_ids.update(e.event_id for e in events)

    async def _select(self, predicate: EventFilter) -> list[DomainEvent]:
        with self._lock:
            snapshot = list(self._events)
        return [e for e in snapshot if predicate(e)]

    async def read_all(self) -> list[DomainEvent]:
        """Every stored event in append order."""
        return await self._select(lambda e: True)

    # -- Testing helpers ---------------------------------------------------

    def clear(self) -> None:
        """Remove all events.  Testing only."""
        with self._lock:
            self._events.clear()
            self._seen_ids.clear()

    def __contains__(self, event_id: object) -> bool:
        return event_id in self._seen_ids

    def __len__(self) -> int:
        return len(self._events)


# ---------------------------------------------------------------------------
# JSON-Lines file implementation
# ---------------------------------------------------------------------------

class JsonFileEventStore(_QueryMixin):
    """Append-only JSONL file store.  Durable across restarts.

    Each line is one ``DomainEvent.to_dict()`` object.  A batch is written
    with a single ``write()``; if that fails the file is truncated back to
    its previous length so no partial batch is ever visible.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._seen_ids: set[str] = set()
        self._lock = threading.Lock()

        # Load existing event IDs for duplicate detection
        if self._path.exists():
            self._load_seen_ids()

    @property
    def path(self) -> Path:
        return self._path

    def _load_seen_ids(self) -> None:
        """Scan existing file to populate the duplicate-detection set."""
        try:
            for event in self._iter_events():
                self._seen_ids.add(event.event_id)
        except OSError as exc:
            raise EventStoreUnavailableError(
                f"Cannot read event log {self._path}: {exc}"
            ) from exc

    def _iter_events(self) -> Iterator[DomainEvent]:
        if not self._path.exists():
            return
        # Lines are decoded one by one so a corrupt line cannot poison the rest.
        with self._path.open("rb") as f:
            for lineno, raw in enumerate(f, start=1):
                try:
                    line = raw.decode("utf-8").strip()
                    if not line:
                        continue
                    data = json.loads(line)
                    if not isinstance(data, dict):
                        raise TypeError(f"expected an object, got {type(data).__name__}")
                    event = DomainEvent.from_dict(data)
                except (ValueError, KeyError, TypeError, AttributeError) as exc:
                    logger.warning(
                        "Skipping undecodable line %d in %s: %s", lineno, self._path, exc,
                    )
                    continue
                yield event

    def _write_lines(self, lines: list[str]) -> None:
        """Append *lines* in one write, restoring the old length on failure."""
        blob = "".join(line + "\n" for line in lines).encode("utf-8")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("ab") as f:
                start = f.seek(0, os.SEEK_END)
                try:
                    f.write(blob)
                    f.flush()
                    os.fsync(f.fileno())
                except OSError:
                    f.truncate(start)
                    raise
        except OSError as exc:
            raise EventStoreUnavailableError(
                f"Cannot append to event log {self._path}: {exc}"
            ) from exc

    async def append(self, event: DomainEvent) -> None:
        with self._lock:
            if event.event_id in self._seen_ids:
                raise DuplicateEventError(event.event_id)
            self._write_lines([event.to_json()])
            self._seen_ids.add(event.event_id)

    async def append_batch(self, events: Sequence[DomainEvent]) -> None:
        events = list(events)
        with self._lock:
            _check_batch(events, self._seen_ids)
            self._write_lines([e.to_json() for e in events])
            self._seen_ids.update(e.event_id for e in events)

    async def _select(self, predicate: EventFilter) -> list[DomainEvent]:
        try:
            with self._lock:
                return [e for e in self._iter_events() if predicate(e)]
        except OSError as exc:
            raise EventStoreUnavailableError(
                f"Cannot read event log {self._path}: {exc}"
            ) from exc

    async def read_all(self) -> list[DomainEvent]:
        """Every stored event in append order."""
        return await self._select(lambda e: True)

    def __contains__(self, event_id: object) -> bool:
        return event_id in self._seen_ids

    def __len__(self) -> int:
        return len(self._seen_ids)
