"""Query use case over the event store.

Exactly one criterion is applied per request, picked in this order:
aggregate → type → correlation → since → time range.  A request with no
criterion returns an empty response.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from workspace_events.domain.events import DomainEvent
from workspace_events.infrastructure.event_store import IEventStore


@dataclass(frozen=True)
class QueryEventsRequest:
    aggregate_id: str | None = None
    event_type: str | None = None
    correlation_id: str | None = None
    since: int | None = None
    time_range: tuple[int, int] | None = None


@dataclass(frozen=True)
class QueryEventsResponse:
    events: list[DomainEvent] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.events)


class QueryEventsUseCase:
    def __init__(self, store: IEventStore) -> None:
        self._store = store

    async def execute(self, request: QueryEventsRequest) -> QueryEventsResponse:
        if request.aggregate_id:
            events = await self._store.get_events_for_aggregate(request.aggregate_id)
        elif request.event_type:
            events = await self._store.get_events_by_type(request.event_type)
        elif request.correlation_id:
            events = await self._store.get_events_by_causality(request.correlation_id)
        elif request.since is not None:
            events = await self._store.get_events_since(request.since)
        elif request.time_range is not None:
            start, end = request.time_range
            events = await self._store.get_events_in_range(start, end)
        else:
            events = []
        return QueryEventsResponse(events=events)
