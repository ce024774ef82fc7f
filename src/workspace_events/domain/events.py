"""Canonical domain events for the workspace platform.

Design invariants
-----------------
1.  Every event is **immutable** (``frozen=True``).
2.  ``event_id`` is a UUID4 generated at creation time; it is the
    duplicate-detection key in the event store.
3.  ``correlation_id`` links all events that belong to the *same business
    operation* (e.g. one task going through QC).  A root event uses its own
    ``event_id`` as correlation id; every derived event inherits it.
4.  ``causation_id`` points to the ``event_id`` that *directly caused*
    this event, forming a DAG of causality.  ``None`` marks a root cause.
5.  ``payload`` is opaque to the pipeline; only workflow reactors read it.
    It is frozen on construction: mappings become read-only proxies and
    lists become tuples, so no subscriber can rewrite stored history.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from types import MappingProxyType
from typing import Any

from workspace_events.core.clock import IClock
from workspace_events.core.ids import new_id as _uuid
from workspace_events.core.ids import now_ms as _now_ms


# ---------------------------------------------------------------------------
# Event type catalogue
# ---------------------------------------------------------------------------

class EventTypes:
    """String tags for the workflow events routed through the bus."""

    # Workspace
    WORKSPACE_CREATED = "WorkspaceCreated"
    WORKSPACE_SWITCHED = "WorkspaceSwitched"
    MODULE_ACTIVATED = "ModuleActivated"
    MODULE_DEACTIVATED = "ModuleDeactivated"

    # Task lifecycle
    TASK_CREATED = "TaskCreated"
    TASK_UPDATED = "TaskUpdated"
    TASK_SUBMITTED_FOR_QC = "TaskSubmittedForQC"
    TASK_COMPLETED = "TaskCompleted"

    # Quality control
    QC_STARTED = "QCStarted"
    QC_PASSED = "QCPassed"
    QC_FAILED = "QCFailed"

    # Issues
    ISSUE_CREATED = "IssueCreated"
    ISSUE_RESOLVED = "IssueResolved"

    # Acceptance
    ACCEPTANCE_APPROVED = "AcceptanceApproved"
    ACCEPTANCE_REJECTED = "AcceptanceRejected"

    # Other modules
    DOCUMENT_UPLOADED = "DocumentUploaded"
    DAILY_ENTRY_CREATED = "DailyEntryCreated"

    @classmethod
    def all(cls) -> tuple[str, ...]:
        return tuple(
            v for k, v in vars(cls).items()
            if k.isupper() and isinstance(v, str)
        )


# ---------------------------------------------------------------------------
# Envelope
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class EventMetadata:
    """Tracking information carried alongside the payload."""

    version: int = 1
    user_id: str | None = None


@dataclass(frozen=True)
class DomainEvent:
    """Immutable envelope for every domain event.

    Shared fields
    ~~~~~~~~~~~~~
    event_id        Unique identity (UUID4).  Duplicate-detection key.
    event_type      Semantic tag, e.g. ``"TaskCreated"``.  Bus routing key.
    aggregate_id    Entity the event concerns.
    workspace_id    Tenant / partition identifier.
    correlation_id  Groups events from the same business operation.
    causation_id    The ``event_id`` that directly caused this event.
    timestamp       Epoch milliseconds at creation.
    payload         Type-specific data, never inspected by the pipeline.
    metadata        Schema version and acting user.
    """

    event_id: str = field(default_factory=_uuid)
    event_type: str = ""
    aggregate_id: str = ""
    workspace_id: str = ""
    correlation_id: str = ""
    causation_id: str | None = None
    timestamp: int = field(default_factory=_now_ms)
    payload: Mapping[str, Any] = field(default_factory=dict)
    metadata: EventMetadata = field(default_factory=EventMetadata)

    def __post_init__(self) -> None:
        object.__setattr__(self, "payload", freeze_payload(self.payload))

    @property
    def is_root(self) -> bool:
        """True when no other event caused this one."""
        return self.causation_id is None

    def derive(
        self,
        event_type: str,
        aggregate_id: str,
        *,
        payload: Mapping[str, Any] | None = None,
        user_id: str | None = None,
        clock: IClock | None = None,
    ) -> DomainEvent:
        """Build an event caused by this one.

        The child inherits ``correlation_id`` and ``workspace_id`` and points
        its ``causation_id`` at this event.
        """
        return new_event(
            event_type,
            aggregate_id,
            workspace_id=self.workspace_id,
            payload=payload,
            correlation_id=self.correlation_id,
            causation_id=self.event_id,
            user_id=user_id if user_id is not None else self.metadata.user_id,
            clock=clock,
        )

    # -- Serialization -----------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-safe dict (payload values encoded by ``_EventEncoder``)."""
        return {
            "event_id": self.event_id,
            "event_type": self.event_type,
            "aggregate_id": self.aggregate_id,
            "workspace_id": self.workspace_id,
            "correlation_id": self.correlation_id,
            "causation_id": self.causation_id,
            "timestamp": self.timestamp,
            "payload": json.loads(json.dumps(dict(self.payload), cls=_EventEncoder)),
            "metadata": {
                "version": self.metadata.version,
                "user_id": self.metadata.user_id,
            },
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True)

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> DomainEvent:
        """Rebuild an event from ``to_dict()`` output.

        Unknown keys are ignored for forward compatibility.
        """
        meta = d.get("metadata") or {}
        return cls(
            event_id=d["event_id"],
            event_type=d.get("event_type", ""),
            aggregate_id=d.get("aggregate_id", ""),
            workspace_id=d.get("workspace_id", ""),
            correlation_id=d.get("correlation_id", ""),
            causation_id=d.get("causation_id"),
            timestamp=d["timestamp"],
            payload=d.get("payload") or {},
            metadata=EventMetadata(
                version=meta.get("version", 1),
                user_id=meta.get("user_id"),
            ),
        )


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------

def freeze_payload(payload: Mapping[str, Any] | None) -> Mapping[str, Any]:
    """Deep read-only copy of *payload*.

    Mappings become ``MappingProxyType``, lists and tuples become tuples and
    sets become frozensets.  Scalars are kept as they are.
    """
    if payload is None:
        return MappingProxyType({})
    if not isinstance(payload, Mapping):
        raise TypeError(f"payload must be a mapping, got {type(payload).__name__}")
    return _freeze(payload)


def _freeze(value: Any) -> Any:
    if isinstance(value, Mapping):
        return MappingProxyType({k: _freeze(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(v) for v in value)
    if isinstance(value, (set, frozenset)):
        return frozenset(_freeze(v) for v in value)
    return value


def new_event(
    event_type: str,
    aggregate_id: str,
    *,
    workspace_id: str = "",
    payload: Mapping[str, Any] | None = None,
    correlation_id: str | None = None,
    causation_id: str | None = None,
    user_id: str | None = None,
    clock: IClock | None = None,
) -> DomainEvent:
    """Create a ``DomainEvent`` with a fresh id and timestamp.

    A root event (no ``correlation_id`` given) starts its own correlation
    group keyed by its ``event_id``.
    """
    event_id = _uuid()
    return DomainEvent(
        event_id=event_id,
        event_type=event_type,
        aggregate_id=aggregate_id,
        workspace_id=workspace_id,
        correlation_id=correlation_id or event_id,
        causation_id=causation_id,
        timestamp=clock.now_ms() if clock is not None else _now_ms(),
        payload=payload or {},
        metadata=EventMetadata(user_id=user_id),
    )


# ---------------------------------------------------------------------------
# JSON helpers (Decimal / datetime safe)
# ---------------------------------------------------------------------------

class _EventEncoder(json.JSONEncoder):
    """Handles Decimal, datetime, set and read-only mapping payload values."""

    def default(self, o: Any) -> Any:
        if isinstance(o, Mapping):
            return dict(o)
        if isinstance(o, Decimal):
            return str(o)
        if isinstance(o, datetime):
            return o.isoformat()
        if isinstance(o, (set, frozenset)):
            return sorted(o, key=str)
        return super().default(o)


__all__ = [
    "DomainEvent",
    "EventMetadata",
    "EventTypes",
    "freeze_payload",
    "new_event",
]
