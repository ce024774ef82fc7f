"""Tests for the event store factory and pipeline composition."""

from __future__ import annotations

import pytest

from workspace_events.core.config import EventStoreConfig, Settings
from workspace_events.core.enums import StoreBackend
from workspace_events.core.errors import ConfigError
from workspace_events.domain.events import EventTypes, new_event
from workspace_events.infrastructure.event_store import InMemoryEventStore, JsonFileEventStore
from workspace_events.infrastructure.factory import create_event_store
from workspace_events.pipeline import build_pipeline


class TestCreateEventStore:
    def test_default_is_memory(self):
        assert isinstance(create_event_store(), InMemoryEventStore)

    def test_jsonl(self, tmp_path):
        store = create_event_store(
            EventStoreConfig(backend=StoreBackend.JSONL, path=str(tmp_path / "e.jsonl"))
        )
        assert isinstance(store, JsonFileEventStore)

    def test_jsonl_without_path(self):
        with pytest.raises(ConfigError):
            create_event_store(EventStoreConfig(backend=StoreBackend.JSONL))


class TestBuildPipeline:
    def test_fresh_instances_each_call(self):
        a, b = build_pipeline(), build_pipeline()
        assert a.store is not b.store
        assert a.bus is not b.bus
        assert a.publisher.store is a.store
        assert a.publisher.tracker is a.tracker

    def test_tracking_disabled(self):
        pipeline = build_pipeline(Settings(publisher={"track_causality": False}))
        assert pipeline.tracker is None
        assert pipeline.publisher.tracker is None

    def test_invalid_settings_rejected(self):
        with pytest.raises(ConfigError):
            build_pipeline(Settings(store={"backend": "jsonl"}))

    @pytest.mark.asyncio
    async def test_reset_keeps_history(self):
        pipeline = build_pipeline(Settings(observability={"metrics_enabled": False}))
        seen = []
        pipeline.bus.subscribe_all(seen.append)
        event = new_event(EventTypes.TASK_CREATED, "t1")
        await pipeline.publisher.publish(event)

        pipeline.reset()

        assert len(pipeline.tracker) == 0
        assert pipeline.bus.global_subscriber_count == 0
        assert await pipeline.store.read_all() == [event]
