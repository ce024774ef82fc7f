"""Event bus abstraction and in-memory implementation.

Design goals
------------
1.  **Type-routed dispatching**: subscribers register for an
    ``event_type`` tag.  When an event is published the bus routes it to
    every handler registered for ``event.event_type`` and then to every
    global (``subscribe_all``) handler.
2.  **All-awaited fan-out**: handlers run concurrently and ``publish()``
    returns only after every one of them has finished.  Sync and async
    handlers are both accepted.
3.  **Error isolation**: a failing handler never stops the others.  Once
    the fan-out is complete the failures are raised together as a
    ``HandlerError`` so the publisher can report them distinctly.
4.  **Snapshot delivery**: the set of handlers is captured when
    ``publish()`` starts; subscribing or unsubscribing during a fan-out
    only affects later publishes.

This module provides:

*  ``IEventBus``: the protocol (interface).
*  ``InMemoryEventBus``: deterministic in-process implementation.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import threading
from collections import defaultdict
from collections.abc import Awaitable, Callable, Sequence
from typing import Protocol, runtime_checkable

from workspace_events.core.errors import HandlerError, HandlerFailure
from workspace_events.domain.events import DomainEvent
from workspace_events.observability import metrics

logger = logging.getLogger(__name__)

# Handlers may be plain functions or coroutine functions.
EventHandler = Callable[[DomainEvent], "Awaitable[None] | None"]
Unsubscribe = Callable[[], None]


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------

@runtime_checkable
class IEventBus(Protocol):
    """Publish/subscribe bus for ``DomainEvent`` envelopes."""

    async def publish(self, event: DomainEvent) -> None:
        """Deliver *event* to type and global subscribers.

        Raises ``HandlerError`` after the fan-out if any handler failed.
        """
        ...

    async def publish_batch(self, events: Sequence[DomainEvent]) -> None:
        """Publish every event; each completes its fan-out before returning."""
        ...

    def subscribe(self, event_type: str, handler: EventHandler) -> Unsubscribe:
        """Register *handler* for *event_type*; returns an unsubscribe callable."""
        ...

    def subscribe_all(self, handler: EventHandler) -> Unsubscribe:
        """Register *handler* for every event."""
        ...

    def unsubscribe(self, event_type: str, handler: EventHandler) -> None:
        """Remove *handler* from *event_type*.  No-op if absent."""
        ...

    def clear(self) -> None:
        """Remove every subscription."""
        ...


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------

def _handler_name(handler: EventHandler) -> str:
    return getattr(handler, "__qualname__", None) or repr(handler)


class InMemoryEventBus:
    """In-process event bus scoped to one session or tenant.

    Handler order within a fan-out is registration order: type handlers
    first, then global handlers.  Registering the same handler twice for
    one type (or twice globally) is a no-op.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = {}
        self._global_handlers: list[EventHandler] = []
        self._lock = threading.RLock()

        # Observability
        self._error_counts: dict[str, int] = defaultdict(int)
        self._dead_letters: list[tuple[DomainEvent, HandlerFailure]] = []
        self._messages_processed: int = 0

    # -- Subscription ------------------------------------------------------

    def subscribe(self, event_type: str, handler: EventHandler) -> Unsubscribe:
        """Register *handler* for *event_type*."""
        with self._lock:
            handlers = self._handlers.setdefault(event_type, [])
            if handler not in handlers:
                handlers.append(handler)
        logger.debug(
            "Subscribed %s to '%s'", _handler_name(handler), event_type,
        )

        def unsubscribe() -> None:
            self.unsubscribe(event_type, handler)

        return unsubscribe

    def subscribe_all(self, handler: EventHandler) -> Unsubscribe:
        """Register *handler* for every published event."""
        with self._lock:
            if handler not in self._global_handlers:
                self._global_handlers.append(handler)
        logger.debug("Subscribed %s to all events", _handler_name(handler))

        def unsubscribe() -> None:
            self.unsubscribe_all(handler)

        return unsubscribe

    def unsubscribe(self, event_type: str, handler: EventHandler) -> None:
        with self._lock:
            handlers = self._handlers.get(event_type)
            if not handlers or handler not in handlers:
                return
            handlers.remove(handler)
            if not handlers:
                del self._handlers[event_type]

    def unsubscribe_all(self, handler: EventHandler) -> None:
        """Remove a global handler.  No-op if absent."""
        with self._lock:
            if handler in self._global_handlers:
                self._global_handlers.remove(handler)

    def clear(self) -> None:
        """Remove every type and global subscription.  Safe to repeat."""
        with self._lock:
            self._handlers.clear()
            self._global_handlers.clear()

    # -- Publishing --------------------------------------------------------

    async def publish(self, event: DomainEvent) -> None:
        """Fan *event* out to every matching handler and wait for all of them.

        Raises
        ------
        HandlerError
            If one or more handlers raised.  Every other handler has still
            run to completion.
        """
        failures = await self._fan_out(event)
        if failures:
            raise HandlerError(failures)

    async def publish_batch(self, events: Sequence[DomainEvent]) -> None:
        """Publish *events* concurrently.

        No ordering is guaranteed between different events' handlers.  All
        handler failures across the batch are raised as one ``HandlerError``.
        """
        results = await asyncio.gather(*(self._fan_out(e) for e in events))
        failures = [f for batch in results for f in batch]
        if failures:
            raise HandlerError(failures)

    async def _fan_out(self, event: DomainEvent) -> list[HandlerFailure]:
        with self._lock:
            handlers = list(self._handlers.get(event.event_type, ()))
            handlers.extend(self._global_handlers)

        if not handlers:
            logger.debug("No handlers registered for event type '%s'", event.event_type)
            return []

        results = await asyncio.gather(
            *(self._invoke(handler, event) for handler in handlers),
            return_exceptions=True,
        )

        failures: list[HandlerFailure] = []
        for handler, result in zip(handlers, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    # CancelledError / KeyboardInterrupt are not handler failures.
                    raise result
                failures.append(self._record_failure(handler, event, result))
            else:
                self._messages_processed += 1

        if failures:
            logger.warning(
                "Event %s (%s): %d/%d handlers failed",
                event.event_type,
                event.event_id,
                len(failures),
                len(handlers),
            )
        return failures

    @staticmethod
    async def _invoke(handler: EventHandler, event: DomainEvent) -> None:
        result = handler(event)
        if inspect.isawaitable(result):
            await result

    def _record_failure(
        self,
        handler: EventHandler,
        event: DomainEvent,
        exc: Exception,
    ) -> HandlerFailure:
        failure = HandlerFailure(
            event_id=event.event_id,
            event_type=event.event_type,
            handler_name=_handler_name(handler),
            error=f"{type(exc).__name__}: {exc}",
        )
        self._error_counts[event.event_type] += 1
        self._dead_letters.append((event, failure))
        metrics.record_handler_error(event.event_type)
        logger.error(
            "Handler %s failed on %s (%s)",
            failure.handler_name,
            event.event_type,
            event.event_id,
            exc_info=exc,
        )
        return failure

    # -- Observability -----------------------------------------------------

    def subscriber_count(self, event_type: str) -> int:
        """Number of handlers registered for *event_type* (globals excluded)."""
        return len(self._handlers.get(event_type, ()))

    @property
    def global_subscriber_count(self) -> int:
        return len(self._global_handlers)

    def get_error_counts(self) -> dict[str, int]:
        """Return ``{event_type: error_count}``."""
        return dict(self._error_counts)

    @property
    def dead_letters(self) -> list[tuple[DomainEvent, HandlerFailure]]:
        """Events whose handlers failed, with the failure record."""
        return list(self._dead_letters)

    def clear_dead_letters(self) -> list[tuple[DomainEvent, HandlerFailure]]:
        """Drain and return dead letters."""
        drained = self._dead_letters[:]
        self._dead_letters.clear()
        return drained

    @property
    def messages_processed(self) -> int:
        """Total successful handler invocations."""
        return self._messages_processed
