"""Publication orchestrator: the single path from use case to history + bus.

Enforces **append-before-publish**: an event is durably in the store
before any subscriber can observe it, so a handler that reacts by
querying history always finds the event it was just notified about.

Sequence (strictly ordered across every ``await``):

1.  Validate the envelope.  Invalid → fail, store untouched.
2.  Append to the event store.  Failure → fail, bus untouched.
3.  Record lineage in the causality tracker (if one is attached).  This
    happens before the fan-out so that child events published from inside
    handlers always find their parent already recorded.
4.  Publish to the event bus.  Handler failures are reported distinctly;
    the append is never rolled back because history is authoritative.

Callers never see exceptions: every outcome is a ``PublishResult``.
Nothing here retries; retry policy belongs to the caller.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Sequence
from dataclasses import dataclass
from typing import Any, TypeVar

from workspace_events.core.enums import PublishStage
from workspace_events.core.errors import (
    EventValidationError,
    HandlerError,
)
from workspace_events.domain.causality import CausalityTracker
from workspace_events.domain.events import DomainEvent
from workspace_events.domain.validation import validate_event
from workspace_events.infrastructure.event_bus import IEventBus
from workspace_events.infrastructure.event_store import IEventStore
from workspace_events.observability import metrics
from workspace_events.observability.logger import bind_correlation_id

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class PublishResult:
    """Outcome of a publish attempt: ``success`` plus a human-readable error."""

    success: bool
    error: str | None = None

    @classmethod
    def ok(cls) -> PublishResult:
        return cls(success=True)

    @classmethod
    def failed(cls, error: str) -> PublishResult:
        return cls(success=False, error=error)


class _StageFailure(Exception):
    def __init__(self, stage: PublishStage, message: str):
        self.stage = stage
        super().__init__(message)


class EventPublisher:
    """Validate → append → record → publish.

    Parameters
    ----------
    store
        Durable ``IEventStore``; the authoritative history.
    bus
        ``IEventBus`` used for live notification.
    tracker
        Optional ``CausalityTracker`` fed with every appended event.
    timeout
        Optional seconds bounding the append and the fan-out individually.
        Expiry is reported as a store or bus failure respectively.
    """

    def __init__(
        self,
        store: IEventStore,
        bus: IEventBus,
        tracker: CausalityTracker | None = None,
        *,
        timeout: float | None = None,
    ) -> None:
        self._store = store
        self._bus = bus
        self._tracker = tracker
        self._timeout = timeout

    @property
    def store(self) -> IEventStore:
        return self._store

    @property
    def bus(self) -> IEventBus:
        return self._bus

    @property
    def tracker(self) -> CausalityTracker | None:
        return self._tracker

    # -- Public API --------------------------------------------------------

    async def publish(self, event: DomainEvent) -> PublishResult:
        """Run the four-step sequence for one event."""
        started = time.perf_counter()
        correlation_id = getattr(event, "correlation_id", "")
        if not isinstance(correlation_id, str):
            correlation_id = ""
        with bind_correlation_id(correlation_id):
            try:
                self._validate(event)
                await self._guarded(
                    PublishStage.STORE, "event store append failed",
                    self._store.append(event),
                )
                metrics.record_append(event.event_type)
                self._record_lineage([event])
                await self._guarded(
                    PublishStage.BUS, "event bus failure",
                    self._bus.publish(event),
                )
            except _StageFailure as exc:
                return self._fail(exc, getattr(event, "event_id", None))

            metrics.record_published(event.event_type)
            metrics.record_publish_latency(time.perf_counter() - started)
            logger.debug(
                "Published %s (%s)", event.event_type, event.event_id,
            )
            return PublishResult.ok()

    async def publish_batch(self, events: Sequence[DomainEvent]) -> PublishResult:
        """Validate all, append atomically, record all, then publish all."""
        events = list(events)
        if not events:
            return PublishResult.ok()

        started = time.perf_counter()
        try:
            for event in events:
                self._validate(event)
            await self._guarded(
                PublishStage.STORE, "event store batch append failed",
                self._store.append_batch(events),
            )
            for event in events:
                metrics.record_append(event.event_type)
            self._record_lineage(events)
            await self._guarded(
                PublishStage.BUS, "event bus failure",
                self._bus.publish_batch(events),
            )
        except _StageFailure as exc:
            return self._fail(exc, None)

        for event in events:
            metrics.record_published(event.event_type)
        metrics.record_publish_latency(time.perf_counter() - started)
        logger.debug("Published batch of %d events", len(events))
        return PublishResult.ok()

    # -- Steps -------------------------------------------------------------

    @staticmethod
    def _validate(event: Any) -> None:
        try:
            validate_event(event)
        except EventValidationError as exc:
            raise _StageFailure(
                PublishStage.VALIDATION, f"invalid event: {exc}",
            ) from exc

    async def _guarded(
        self,
        stage: PublishStage,
        prefix: str,
        operation: Awaitable[T],
    ) -> T:
        try:
            if self._timeout is None:
                return await operation
            return await asyncio.wait_for(operation, timeout=self._timeout)
        except HandlerError as exc:
            raise _StageFailure(
                stage, f"published with handler errors: {exc}",
            ) from exc
        except asyncio.TimeoutError as exc:
            raise _StageFailure(
                stage, f"{prefix}: timed out after {self._timeout}s",
            ) from exc
        except Exception as exc:
            raise _StageFailure(
                stage, f"{prefix}: {type(exc).__name__}: {exc}",
            ) from exc

    def _record_lineage(self, events: Sequence[DomainEvent]) -> None:
        if self._tracker is None:
            return
        try:
            for event in events:
                self._tracker.record(event)
        except Exception as exc:
            raise _StageFailure(
                PublishStage.TRACKER,
                f"causality tracking failed: {type(exc).__name__}: {exc}",
            ) from exc

    @staticmethod
    def _fail(exc: _StageFailure, event_id: Any) -> PublishResult:
        metrics.record_publish_failure(exc.stage.value)
        log = logger.error if exc.stage is PublishStage.STORE else logger.warning
        log(
            "Publish failed at %s stage (event_id=%s): %s",
            exc.stage.value,
            event_id,
            exc,
        )
        return PublishResult.failed(str(exc))
