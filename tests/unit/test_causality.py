"""Tests for CausalityTracker lineage and correlation groups."""

from __future__ import annotations

import pytest

from workspace_events.domain.causality import (
    CausalityMetadata,
    CausalityStatistics,
    CausalityTracker,
)
from workspace_events.domain.events import EventTypes, new_event
from workspace_events.infrastructure.event_store import InMemoryEventStore


def _meta(event_id: str, caused_by: str | None = None, correlation_id: str = "c1") -> CausalityMetadata:
    return CausalityMetadata(
        event_id=event_id,
        correlation_id=correlation_id,
        timestamp=0,
        caused_by=caused_by,
    )


@pytest.fixture
def linear(tracker) -> CausalityTracker:
    """A → B → C in one correlation group."""
    tracker.record_event(_meta("A"))
    tracker.record_event(_meta("B", "A"))
    tracker.record_event(_meta("C", "B"))
    return tracker


class TestChains:
    def test_root_has_empty_ancestors(self, linear):
        chain = linear.get_event_chain("A")
        assert chain.ancestors == ()
        assert chain.descendants == ("B",)

    def test_ancestors_most_recent_first(self, linear):
        assert linear.get_event_chain("C").ancestors == ("B", "A")

    def test_descendants_are_direct_children_only(self, linear):
        assert linear.get_event_chain("B").descendants == ("C",)
        assert linear.get_event_chain("C").descendants == ()

    def test_all_descendants_are_transitive(self, linear):
        assert linear.get_all_descendants("A") == ["B", "C"]
        assert linear.get_all_descendants("C") == []
        assert linear.get_all_descendants("missing") == []

    def test_full_chain_oldest_first(self, linear):
        assert linear.get_full_chain("C") == ["A", "B", "C"]

    def test_full_chain_does_not_mutate_state(self, linear):
        linear.get_full_chain("C")
        assert linear.get_event_chain("C").ancestors == ("B", "A")

    def test_root_cause(self, linear):
        assert linear.get_root_cause("C") == "A"
        assert linear.get_root_cause("A") == "A"
        assert linear.get_root_cause("missing") is None

    def test_is_caused_by(self, linear):
        assert linear.is_caused_by("C", "A")
        assert linear.is_caused_by("C", "B")
        assert not linear.is_caused_by("A", "C")
        assert not linear.is_caused_by("missing", "A")

    def test_unknown_event(self, tracker):
        assert tracker.get_event_chain("x") is None
        assert tracker.get_full_chain("x") == []

    def test_branching(self, linear):
        linear.record_event(_meta("D", "A"))
        assert linear.get_event_chain("A").descendants == ("B", "D")
        assert linear.get_all_descendants("A") == ["B", "D", "C"]
        assert linear.get_event_chain("B").descendants == ("C",)
        assert linear.get_full_chain("D") == ["A", "D"]


class TestOutOfOrder:
    def test_unrecorded_parent_truncates_chain(self, tracker):
        tracker.record_event(_meta("C", "B"))
        assert tracker.get_event_chain("C").ancestors == ("B",)
        assert tracker.get_root_cause("C") == "B"

    def test_no_backfill_when_parent_arrives(self, tracker):
        tracker.record_event(_meta("C", "B"))
        tracker.record_event(_meta("B", "A"))
        tracker.record_event(_meta("A"))
        assert tracker.get_event_chain("C").ancestors == ("B",)
        assert tracker.get_event_chain("B").descendants == ()

    def test_never_its_own_descendant(self, tracker):
        tracker.record_event(_meta("A", "B"))
        tracker.record_event(_meta("B", "A"))
        assert "B" not in tracker.get_event_chain("B").descendants
        assert tracker.get_all_descendants("A") == ["B"]

    def test_self_caused_event_has_no_descendants(self, tracker):
        tracker.record_event(_meta("S", "S"))
        assert tracker.get_event_chain("S").descendants == ()
        assert tracker.get_all_descendants("S") == []


class TestRecording:
    def test_duplicate_recording_is_noop(self, linear):
        assert linear.record_event(_meta("B", "A")) is False
        assert linear.get_event_chain("A").descendants == ("B",)
        assert linear.get_correlation_group("c1") == ["A", "B", "C"]

    def test_record_domain_event(self, tracker, task_created):
        child = task_created.derive(EventTypes.TASK_SUBMITTED_FOR_QC, "t1")
        assert tracker.record(task_created)
        assert tracker.record(child)
        assert tracker.get_full_chain(child.event_id) == [
            task_created.event_id, child.event_id,
        ]
        assert child.event_id in tracker
        assert len(tracker) == 2


class TestCorrelationGroups:
    def test_group_in_recording_order(self, tracker):
        tracker.record_event(_meta("A", correlation_id="c1"))
        tracker.record_event(_meta("X", correlation_id="c2"))
        tracker.record_event(_meta("B", "A", correlation_id="c1"))
        assert tracker.get_correlation_group("c1") == ["A", "B"]
        assert tracker.get_correlation_group("c2") == ["X"]
        assert tracker.get_correlation_group("none") == []


class TestStatistics:
    def test_empty(self, tracker):
        assert tracker.get_statistics() == CausalityStatistics(0, 0, 0.0)

    def test_linear(self, linear):
        stats = linear.get_statistics()
        assert stats.total_events == 3
        assert stats.total_correlation_groups == 1
        assert stats.average_chain_length == pytest.approx(2.0)


class TestLifecycle:
    def test_clear_is_idempotent(self, linear):
        linear.clear()
        linear.clear()
        assert len(linear) == 0
        assert linear.get_correlation_group("c1") == []
        assert linear.get_statistics().total_events == 0

    @pytest.mark.asyncio
    async def test_rebuild_from_store(self, tracker):
        store = InMemoryEventStore()
        root = new_event(EventTypes.TASK_CREATED, "t1")
        child = root.derive(EventTypes.QC_FAILED, "t1")
        grandchild = child.derive(EventTypes.ISSUE_CREATED, "i1")
        unrelated = new_event(EventTypes.TASK_CREATED, "t2")
        await store.append_batch([root, child, unrelated, grandchild])

        assert await tracker.rebuild(store, root.correlation_id) == 3
        assert tracker.get_full_chain(grandchild.event_id) == [
            root.event_id, child.event_id, grandchild.event_id,
        ]
        assert unrelated.event_id not in tracker
        assert await tracker.rebuild(store, root.correlation_id) == 0
