"""Shared fixtures for the workspace-events test suite."""

from __future__ import annotations

import pytest

from workspace_events.application.publisher import EventPublisher
from workspace_events.core.clock import SimClock
from workspace_events.domain.causality import CausalityTracker
from workspace_events.domain.events import DomainEvent, EventTypes, new_event
from workspace_events.infrastructure.event_bus import InMemoryEventBus
from workspace_events.infrastructure.event_store import InMemoryEventStore
from workspace_events.observability import metrics


@pytest.fixture(autouse=True)
def _disable_metrics():
    """Keep the process-wide Prometheus counters out of unit tests."""
    metrics.set_enabled(False)
    yield
    metrics.set_enabled(True)


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------

@pytest.fixture
def sim_clock() -> SimClock:
    return SimClock()


# ---------------------------------------------------------------------------
# Pipeline parts
# ---------------------------------------------------------------------------

@pytest.fixture
def store() -> InMemoryEventStore:
    return InMemoryEventStore()


@pytest.fixture
def bus() -> InMemoryEventBus:
    return InMemoryEventBus()


@pytest.fixture
def tracker() -> CausalityTracker:
    return CausalityTracker()


@pytest.fixture
def publisher(store, bus, tracker) -> EventPublisher:
    return EventPublisher(store, bus, tracker)


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

@pytest.fixture
def task_created(sim_clock) -> DomainEvent:
    """A root TaskCreated event for task t1 in workspace w1."""
    return new_event(
        EventTypes.TASK_CREATED,
        "t1",
        workspace_id="w1",
        payload={"title": "Pour foundation", "priority": "high"},
        user_id="u1",
        clock=sim_clock,
    )
