"""Causality tracking across asynchronously handled events.

Answers three questions without re-scanning the event store:

*  What event caused this event (directly or transitively)?
*  What events were triggered as a result of this event?
*  Which events belong to the same business operation (correlation)?

The tracker is process-local and derived: it can always be rebuilt from
the event store with :meth:`CausalityTracker.rebuild`.

Recording order matters.  An event whose ``caused_by`` has not been
recorded yet still gets a chain, but it stops at ``caused_by``; the
tracker never backfills a chain once the parent shows up later.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from workspace_events.domain.events import DomainEvent
    from workspace_events.infrastructure.event_store import IEventStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CausalityMetadata:
    """The lineage facts of one event."""

    event_id: str
    correlation_id: str
    timestamp: int
    caused_by: str | None = None

    @classmethod
    def from_event(cls, event: DomainEvent) -> CausalityMetadata:
        return cls(
            event_id=event.event_id,
            correlation_id=event.correlation_id,
            timestamp=event.timestamp,
            caused_by=event.causation_id,
        )


@dataclass(frozen=True)
class EventCausalityChain:
    """Ancestors (most recent first) and direct descendants of one event."""

    event_id: str
    ancestors: tuple[str, ...] = ()
    descendants: tuple[str, ...] = ()


@dataclass(frozen=True)
class CausalityStatistics:
    total_events: int
    total_correlation_groups: int
    average_chain_length: float


class CausalityTracker:
    """In-memory map of event lineage and correlation groups.

    Instance-scoped: create one per session/tenant and pass it to the
    publisher that records into it.  All mutation happens under a lock.
    """

    def __init__(self) -> None:
        self._chains: dict[str, EventCausalityChain] = {}
        # Dicts used as insertion-ordered sets.
        self._correlation_groups: dict[str, dict[str, None]] = {}
        self._lock = threading.RLock()

    # -- Recording ---------------------------------------------------------

    def record_event(self, metadata: CausalityMetadata) -> bool:
        """Record *metadata* and link it to its direct cause.

        Returns ``False`` (and changes nothing) if the event id was already
        recorded.
        """
        event_id = metadata.event_id
        caused_by = metadata.caused_by

        with self._lock:
            if event_id in self._chains:
                return False

            ancestors: list[str] = []
            parent: EventCausalityChain | None = None
            if caused_by:
                ancestors.append(caused_by)
                parent = self._chains.get(caused_by)
                if parent is not None:
                    ancestors.extend(parent.ancestors)
                else:
                    logger.debug(
                        "Event %s caused by unrecorded event %s; chain truncated",
                        event_id,
                        caused_by,
                    )

            self._chains[event_id] = EventCausalityChain(
                event_id=event_id,
                ancestors=tuple(ancestors),
            )

            if parent is not None:
                self._chains[caused_by] = EventCausalityChain(
                    event_id=caused_by,
                    ancestors=parent.ancestors,
                    descendants=parent.descendants + (event_id,),
                )

            group = self._correlation_groups.setdefault(metadata.correlation_id, {})
            group[event_id] = None
            return True

    def record(self, event: DomainEvent) -> bool:
        """Record a ``DomainEvent``'s lineage."""
        return self.record_event(CausalityMetadata.from_event(event))

    async def rebuild(self, store: IEventStore, correlation_id: str) -> int:
        """Replay one correlation group from *store* in append order.

        Events already known to the tracker are skipped.  Returns the number
        of newly recorded events.
        """
        events = await store.get_events_by_causality(correlation_id)
        recorded = sum(1 for event in events if self.record(event))
        logger.info(
            "Rebuilt correlation group %s: %d/%d events recorded",
            correlation_id,
            recorded,
            len(events),
        )
        return recorded

    # -- Queries -----------------------------------------------------------

    def get_event_chain(self, event_id: str) -> EventCausalityChain | None:
        return self._chains.get(event_id)

    def get_correlation_group(self, correlation_id: str) -> list[str]:
        """Event ids sharing *correlation_id*, in recording order.

        Recording order is not necessarily chronological; cross-reference
        the event store when chronology matters.
        """
        with self._lock:
            return list(self._correlation_groups.get(correlation_id, ()))

    def get_root_cause(self, event_id: str) -> str | None:
        """Oldest known ancestor, the event itself for a root, ``None`` if unknown."""
        chain = self._chains.get(event_id)
        if chain is None:
            return None
        if not chain.ancestors:
            return event_id
        return chain.ancestors[-1]

    def is_caused_by(self, event_id: str, potential_cause: str) -> bool:
        """True if *potential_cause* is a direct or indirect ancestor."""
        chain = self._chains.get(event_id)
        if chain is None:
            return False
        return potential_cause in chain.ancestors

    def get_all_descendants(self, event_id: str) -> list[str]:
        """Direct and indirect descendants, breadth-first in recording order."""
        with self._lock:
            found: dict[str, None] = {}
            frontier = [event_id]
            while frontier:
                chain = self._chains.get(frontier.pop(0))
                if chain is None:
                    continue
                for child in chain.descendants:
                    if child != event_id and child not in found:
                        found[child] = None
                        frontier.append(child)
            return list(found)

    def get_full_chain(self, event_id: str) -> list[str]:
        """Ancestors oldest-first followed by the event itself."""
        chain = self._chains.get(event_id)
        if chain is None:
            return []
        return [*reversed(chain.ancestors), event_id]

    def get_statistics(self) -> CausalityStatistics:
        with self._lock:
            total_events = len(self._chains)
            total_length = sum(
                len(chain.ancestors) + 1 for chain in self._chains.values()
            )
            return CausalityStatistics(
                total_events=total_events,
                total_correlation_groups=len(self._correlation_groups),
                average_chain_length=(
                    total_length / total_events if total_events else 0.0
                ),
            )

    # -- Lifecycle ---------------------------------------------------------

    def clear(self) -> None:
        """Drop all tracked state (session / workspace reset)."""
        with self._lock:
            self._chains.clear()
            self._correlation_groups.clear()

    def __contains__(self, event_id: object) -> bool:
        return event_id in self._chains

    def __len__(self) -> int:
        return len(self._chains)
