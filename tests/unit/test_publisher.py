"""Tests for EventPublisher: validate → append → record → publish."""

from __future__ import annotations

import asyncio
import dataclasses
from unittest.mock import AsyncMock, MagicMock

import pytest

from workspace_events.application.publisher import EventPublisher, PublishResult
from workspace_events.core.errors import EventStoreUnavailableError
from workspace_events.domain.causality import CausalityTracker
from workspace_events.domain.events import EventTypes, new_event
from workspace_events.infrastructure.event_bus import InMemoryEventBus
from workspace_events.infrastructure.event_store import InMemoryEventStore
from workspace_events.observability.logger import get_correlation_id

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _failing_store(exc: Exception) -> MagicMock:
    store = MagicMock(spec=InMemoryEventStore)
    store.append = AsyncMock(side_effect=exc)
    store.append_batch = AsyncMock(side_effect=exc)
    return store


def _spy_bus() -> MagicMock:
    bus = MagicMock(spec=InMemoryEventBus)
    bus.publish = AsyncMock()
    bus.publish_batch = AsyncMock()
    return bus


# ===========================================================================
# Happy path
# ===========================================================================


class TestPublish:
    @pytest.mark.asyncio
    async def test_success(self, publisher, store, tracker, task_created):
        result = await publisher.publish(task_created)

        assert result == PublishResult(success=True, error=None)
        assert await store.get_events_for_aggregate("t1") == [task_created]
        assert task_created.event_id in tracker

    @pytest.mark.asyncio
    async def test_event_is_stored_before_handlers_run(self, publisher, store, bus, task_created):
        seen_in_store = []

        async def handler(event):
            seen_in_store.append(
                await store.get_events_for_aggregate(event.aggregate_id)
            )

        bus.subscribe(EventTypes.TASK_CREATED, handler)
        await publisher.publish(task_created)

        assert seen_in_store == [[task_created]]

    @pytest.mark.asyncio
    async def test_event_is_tracked_before_handlers_run(self, publisher, bus, tracker, task_created):
        tracked = []
        bus.subscribe_all(lambda e: tracked.append(e.event_id in tracker))

        await publisher.publish(task_created)

        assert tracked == [True]

    @pytest.mark.asyncio
    async def test_correlation_id_bound_during_fan_out(self, publisher, bus, task_created):
        bound = []
        bus.subscribe_all(lambda e: bound.append(get_correlation_id()))

        await publisher.publish(task_created)

        assert bound == [task_created.correlation_id]
        assert get_correlation_id() == ""

    @pytest.mark.asyncio
    async def test_without_tracker(self, store, bus, task_created):
        publisher = EventPublisher(store, bus)
        assert publisher.tracker is None
        result = await publisher.publish(task_created)
        assert result.success


# ===========================================================================
# Validation
# ===========================================================================


class TestValidationFailures:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "field_name, value, fragment",
        [
            ("event_id", "", "event must have event_id"),
            ("event_type", "", "event must have event_type"),
            ("aggregate_id", "", "event must have aggregate_id"),
            ("correlation_id", "", "event must have correlation_id"),
            ("timestamp", None, "event must have timestamp"),
            ("causation_id", 7, "causation_id must be a string or None"),
        ],
    )
    async def test_invalid_event_touches_nothing(
        self, field_name, value, fragment, task_created,
    ):
        store = MagicMock(spec=InMemoryEventStore)
        store.append = AsyncMock()
        bus = _spy_bus()
        publisher = EventPublisher(store, bus)

        event = dataclasses.replace(task_created, **{field_name: value})
        result = await publisher.publish(event)

        assert not result.success
        assert result.error.startswith("invalid event: ")
        assert fragment in result.error
        store.append.assert_not_awaited()
        bus.publish.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_reports_every_problem(self, publisher, store, task_created):
        event = dataclasses.replace(task_created, event_type="", aggregate_id="")
        result = await publisher.publish(event)

        assert "event must have event_type" in result.error
        assert "event must have aggregate_id" in result.error
        assert len(store) == 0


# ===========================================================================
# Store failures
# ===========================================================================


class TestStoreFailures:
    @pytest.mark.asyncio
    async def test_store_failure_skips_bus(self, task_created):
        store = _failing_store(EventStoreUnavailableError("db down"))
        bus = _spy_bus()
        tracker = CausalityTracker()
        publisher = EventPublisher(store, bus, tracker)

        result = await publisher.publish(task_created)

        assert not result.success
        assert result.error == "event store append failed: EventStoreUnavailableError: db down"
        bus.publish.assert_not_awaited()
        assert len(tracker) == 0

    @pytest.mark.asyncio
    async def test_duplicate_is_a_store_failure(self, publisher, bus, task_created):
        calls = []
        bus.subscribe_all(calls.append)
        assert (await publisher.publish(task_created)).success

        result = await publisher.publish(task_created)

        assert not result.success
        assert "DuplicateEventError" in result.error
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_store_timeout(self, task_created):
        async def hang(event):
            await asyncio.sleep(10)

        store = MagicMock(spec=InMemoryEventStore)
        store.append = AsyncMock(side_effect=hang)
        bus = _spy_bus()
        publisher = EventPublisher(store, bus, timeout=0.01)

        result = await publisher.publish(task_created)

        assert not result.success
        assert result.error == "event store append failed: timed out after 0.01s"
        bus.publish.assert_not_awaited()


# ===========================================================================
# Bus failures
# ===========================================================================


class TestBusFailures:
    @pytest.mark.asyncio
    async def test_handler_error_reported_after_append(self, publisher, store, bus, task_created):
        received = []

        def bad(event):
            raise ValueError("boom")

        bus.subscribe(EventTypes.TASK_CREATED, bad)
        bus.subscribe(EventTypes.TASK_CREATED, received.append)

        result = await publisher.publish(task_created)

        assert not result.success
        assert result.error.startswith("published with handler errors: ")
        assert "ValueError: boom" in result.error
        assert received == [task_created]
        # History is authoritative: no rollback.
        assert len(store) == 1

    @pytest.mark.asyncio
    async def test_bus_exception(self, store, task_created):
        bus = _spy_bus()
        bus.publish.side_effect = RuntimeError("bus gone")
        publisher = EventPublisher(store, bus)

        result = await publisher.publish(task_created)

        assert result.error == "event bus failure: RuntimeError: bus gone"
        assert len(store) == 1

    @pytest.mark.asyncio
    async def test_subscriber_cannot_rewrite_stored_history(self, publisher, store, bus):
        event = new_event(
            EventTypes.TASK_CREATED, "t1", payload={"title": "orig", "tags": ["a"]},
        )

        def vandal(e):
            e.payload["title"] = "hacked"

        def nested_vandal(e):
            e.payload["tags"].append("b")

        bus.subscribe(EventTypes.TASK_CREATED, vandal)
        bus.subscribe(EventTypes.TASK_CREATED, nested_vandal)

        result = await publisher.publish(event)

        assert not result.success
        assert "TypeError" in result.error
        assert "AttributeError" in result.error
        (stored,) = await store.read_all()
        assert stored.payload["title"] == "orig"
        assert stored.payload["tags"] == ("a",)
        assert stored.to_dict()["payload"] == {"title": "orig", "tags": ["a"]}


# ===========================================================================
# Tracker failure
# ===========================================================================


class TestTrackerFailure:
    @pytest.mark.asyncio
    async def test_tracker_failure_skips_bus(self, store, task_created):
        tracker = MagicMock(spec=CausalityTracker)
        tracker.record.side_effect = RuntimeError("oops")
        bus = _spy_bus()
        publisher = EventPublisher(store, bus, tracker)

        result = await publisher.publish(task_created)

        assert result.error == "causality tracking failed: RuntimeError: oops"
        assert len(store) == 1
        bus.publish.assert_not_awaited()


# ===========================================================================
# Batch
# ===========================================================================


class TestPublishBatch:
    @pytest.mark.asyncio
    async def test_empty_batch(self, publisher):
        assert (await publisher.publish_batch([])).success

    @pytest.mark.asyncio
    async def test_batch_success(self, publisher, store, bus, tracker, task_created):
        child = task_created.derive(EventTypes.TASK_SUBMITTED_FOR_QC, "t1")
        received = []
        bus.subscribe_all(received.append)

        result = await publisher.publish_batch([task_created, child])

        assert result.success
        assert await store.read_all() == [task_created, child]
        assert {e.event_id for e in received} == {task_created.event_id, child.event_id}
        assert tracker.is_caused_by(child.event_id, task_created.event_id)

    @pytest.mark.asyncio
    async def test_one_invalid_event_rejects_batch(self, publisher, store, task_created):
        bad = dataclasses.replace(
            new_event(EventTypes.TASK_CREATED, "t2"), aggregate_id="",
        )
        result = await publisher.publish_batch([task_created, bad])

        assert not result.success
        assert result.error.startswith("invalid event: ")
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_batch_store_failure(self, task_created):
        store = _failing_store(EventStoreUnavailableError("full"))
        bus = _spy_bus()
        publisher = EventPublisher(store, bus)

        result = await publisher.publish_batch([task_created])

        assert result.error.startswith("event store batch append failed: ")
        bus.publish_batch.assert_not_awaited()
