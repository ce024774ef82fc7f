"""Workflow reactors: per-module view state driven by bus events.

Each reactor subscribes a handful of handlers to the bus and mutates only
its own in-memory view.  Reactors never write to the store or the bus
directly; follow-up events go through the ``EventPublisher`` so they obey
append-before-publish and carry proper causality (``derive()``: the
correlation id is inherited and ``causation_id`` is the triggering event).

Payload conventions (keys read by the reactors):

==================== ============== =========================================
event_type           aggregate_id   payload keys
==================== ============== =========================================
TaskCreated          task id        title, description, priority, created_by_id
TaskSubmittedForQC   task id        task_title, submitted_by_id
TaskCompleted        task id        completed_by_id, completion_notes
QCPassed             task id        task_title, reviewer_id, review_notes
QCFailed             task id        task_title, reviewed_by_id, failure_reason
IssueCreated         issue id       task_id, title, description, created_by_id
IssueResolved        issue id       task_id, resolved_by_id
AcceptanceApproved   task id        approver_id, approval_notes
AcceptanceRejected   task id        rejected_by_id, rejection_reason
==================== ============== =========================================
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING

from workspace_events.core.enums import (
    AcceptanceStatus,
    IssueStatus,
    ReviewStatus,
    TaskStatus,
)
from workspace_events.core.errors import WorkflowError
from workspace_events.core.ids import new_id
from workspace_events.domain.events import DomainEvent, EventTypes
from workspace_events.infrastructure.event_bus import (
    EventHandler,
    IEventBus,
    Unsubscribe,
)

if TYPE_CHECKING:
    from workspace_events.application.publisher import EventPublisher

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------

class WorkflowReactor(ABC):
    """Base class for bus consumers that hold derived view state."""

    name: str = "reactor"

    def __init__(self) -> None:
        self._unsubscribers: list[Unsubscribe] = []

    @abstractmethod
    def subscriptions(self) -> dict[str, EventHandler]:
        """Map of ``event_type`` → handler this reactor listens to."""

    def attach(self, bus: IEventBus) -> None:
        """Subscribe every handler to *bus*.  Attaching twice is an error."""
        if self._unsubscribers:
            raise RuntimeError(f"{self.name} reactor is already attached")
        for event_type, handler in self.subscriptions().items():
            self._unsubscribers.append(bus.subscribe(event_type, handler))
        logger.info(
            "%s reactor attached (%d event types)", self.name, len(self._unsubscribers),
        )

    def detach(self) -> None:
        """Remove every subscription made by ``attach()``."""
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

    @property
    def attached(self) -> bool:
        return bool(self._unsubscribers)

    def reset(self) -> None:
        """Drop view state (workspace switch)."""


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TaskView:
    task_id: str
    workspace_id: str
    title: str
    description: str = ""
    priority: str = "medium"
    created_by_id: str = ""
    status: TaskStatus = TaskStatus.READY
    blocked_by_issue_ids: tuple[str, ...] = ()
    updated_at: int = 0


class TasksReactor(WorkflowReactor):
    """Task list state: lifecycle status and issue blockers."""

    name = "tasks"

    def __init__(self) -> None:
        super().__init__()
        self._tasks: dict[str, TaskView] = {}

    def subscriptions(self) -> dict[str, EventHandler]:
        return {
            EventTypes.TASK_CREATED: self.on_task_created,
            EventTypes.TASK_SUBMITTED_FOR_QC: self.on_submitted_for_qc,
            EventTypes.QC_PASSED: self.on_qc_passed,
            EventTypes.QC_FAILED: self.on_qc_failed,
            EventTypes.ISSUE_CREATED: self.on_issue_created,
            EventTypes.ISSUE_RESOLVED: self.on_issue_resolved,
            EventTypes.ACCEPTANCE_APPROVED: self.on_acceptance_approved,
            EventTypes.ACCEPTANCE_REJECTED: self.on_acceptance_rejected,
            EventTypes.TASK_COMPLETED: self.on_task_completed,
        }

    # -- Queries -----------------------------------------------------------

    def get(self, task_id: str) -> TaskView | None:
        return self._tasks.get(task_id)

    @property
    def tasks(self) -> list[TaskView]:
        return list(self._tasks.values())

    def reset(self) -> None:
        self._tasks.clear()

    # -- Handlers ----------------------------------------------------------

    def on_task_created(self, event: DomainEvent) -> None:
        p = event.payload
        self._tasks[event.aggregate_id] = TaskView(
            task_id=event.aggregate_id,
            workspace_id=event.workspace_id,
            title=p.get("title", ""),
            description=p.get("description", ""),
            priority=p.get("priority", "medium"),
            created_by_id=p.get("created_by_id", ""),
            updated_at=event.timestamp,
        )

    def on_submitted_for_qc(self, event: DomainEvent) -> None:
        self._set_status(event.aggregate_id, TaskStatus.IN_QC, event.timestamp)

    def on_qc_passed(self, event: DomainEvent) -> None:
        self._set_status(event.aggregate_id, TaskStatus.IN_ACCEPTANCE, event.timestamp)

    def on_qc_failed(self, event: DomainEvent) -> None:
        self._set_status(event.aggregate_id, TaskStatus.QC_FAILED, event.timestamp)

    def on_issue_created(self, event: DomainEvent) -> None:
        task_id = event.payload.get("task_id")
        task = self._tasks.get(task_id) if task_id else None
        if task is None or event.aggregate_id in task.blocked_by_issue_ids:
            return
        self._tasks[task.task_id] = replace(
            task,
            status=TaskStatus.BLOCKED,
            blocked_by_issue_ids=task.blocked_by_issue_ids + (event.aggregate_id,),
            updated_at=event.timestamp,
        )

    def on_issue_resolved(self, event: DomainEvent) -> None:
        task_id = event.payload.get("task_id")
        task = self._tasks.get(task_id) if task_id else None
        if task is None or event.aggregate_id not in task.blocked_by_issue_ids:
            return
        remaining = tuple(i for i in task.blocked_by_issue_ids if i != event.aggregate_id)
        self._tasks[task.task_id] = replace(
            task,
            status=TaskStatus.BLOCKED if remaining else TaskStatus.READY,
            blocked_by_issue_ids=remaining,
            updated_at=event.timestamp,
        )

    def on_acceptance_approved(self, event: DomainEvent) -> None:
        self._set_status(event.aggregate_id, TaskStatus.ACCEPTED, event.timestamp)

    def on_acceptance_rejected(self, event: DomainEvent) -> None:
        self._set_status(event.aggregate_id, TaskStatus.REJECTED, event.timestamp)

    def on_task_completed(self, event: DomainEvent) -> None:
        self._set_status(event.aggregate_id, TaskStatus.COMPLETED, event.timestamp)

    def _set_status(self, task_id: str, status: TaskStatus, at: int) -> None:
        task = self._tasks.get(task_id)
        if task is None:
            logger.debug("Ignoring %s for unknown task %s", status.value, task_id)
            return
        self._tasks[task_id] = replace(task, status=status, updated_at=at)


# ---------------------------------------------------------------------------
# Quality control
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class QCReview:
    task_id: str
    task_title: str
    submitted_by: str
    submitted_at: int
    status: ReviewStatus = ReviewStatus.PENDING
    reviewer_id: str | None = None
    notes: str = ""
    attempts: int = 1


class QualityControlReactor(WorkflowReactor):
    """Review queue.  A failed review raises an issue against the task."""

    name = "quality_control"

    def __init__(self, publisher: EventPublisher) -> None:
        super().__init__()
        self._publisher = publisher
        self._reviews: dict[str, QCReview] = {}

    def subscriptions(self) -> dict[str, EventHandler]:
        return {
            EventTypes.TASK_SUBMITTED_FOR_QC: self.on_submitted_for_qc,
            EventTypes.QC_PASSED: self.on_qc_passed,
            EventTypes.QC_FAILED: self.on_qc_failed,
            EventTypes.ISSUE_RESOLVED: self.on_issue_resolved,
        }

    def get(self, task_id: str) -> QCReview | None:
        return self._reviews.get(task_id)

    @property
    def pending(self) -> list[QCReview]:
        return [r for r in self._reviews.values() if r.status is ReviewStatus.PENDING]

    def reset(self) -> None:
        self._reviews.clear()

    def on_submitted_for_qc(self, event: DomainEvent) -> None:
        p = event.payload
        self._reviews[event.aggregate_id] = QCReview(
            task_id=event.aggregate_id,
            task_title=p.get("task_title", ""),
            submitted_by=p.get("submitted_by_id", ""),
            submitted_at=event.timestamp,
        )

    def on_qc_passed(self, event: DomainEvent) -> None:
        review = self._reviews.get(event.aggregate_id)
        if review is None:
            return
        self._reviews[event.aggregate_id] = replace(
            review,
            status=ReviewStatus.PASSED,
            reviewer_id=event.payload.get("reviewer_id"),
            notes=event.payload.get("review_notes", ""),
        )

    async def on_qc_failed(self, event: DomainEvent) -> None:
        p = event.payload
        review = self._reviews.get(event.aggregate_id)
        if review is not None:
            self._reviews[event.aggregate_id] = replace(
                review,
                status=ReviewStatus.FAILED,
                reviewer_id=p.get("reviewed_by_id"),
                notes=p.get("failure_reason", ""),
            )

        issue = event.derive(
            EventTypes.ISSUE_CREATED,
            new_id(),
            payload={
                "task_id": event.aggregate_id,
                "title": f"[QC Failed] {p.get('task_title', '')}",
                "description": p.get("failure_reason", ""),
                "created_by_id": p.get("reviewed_by_id", ""),
            },
        )
        result = await self._publisher.publish(issue)
        if not result.success:
            raise WorkflowError(
                f"Could not raise issue for failed QC on {event.aggregate_id}: "
                f"{result.error}"
            )

    def on_issue_resolved(self, event: DomainEvent) -> None:
        task_id = event.payload.get("task_id")
        review = self._reviews.get(task_id) if task_id else None
        if review is None or review.status is not ReviewStatus.FAILED:
            return
        self._reviews[task_id] = replace(
            review,
            status=ReviewStatus.PENDING,
            reviewer_id=None,
            notes="",
            attempts=review.attempts + 1,
        )


# ---------------------------------------------------------------------------
# Issues
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class IssueView:
    issue_id: str
    workspace_id: str
    title: str
    description: str = ""
    task_id: str | None = None
    created_by_id: str = ""
    status: IssueStatus = IssueStatus.OPEN
    resolved_at: int | None = None


class IssuesReactor(WorkflowReactor):
    name = "issues"

    def __init__(self) -> None:
        super().__init__()
        self._issues: dict[str, IssueView] = {}

    def subscriptions(self) -> dict[str, EventHandler]:
        return {
            EventTypes.ISSUE_CREATED: self.on_issue_created,
            EventTypes.ISSUE_RESOLVED: self.on_issue_resolved,
        }

    def get(self, issue_id: str) -> IssueView | None:
        return self._issues.get(issue_id)

    def open_issues(self, task_id: str | None = None) -> list[IssueView]:
        return [
            i for i in self._issues.values()
            if i.status is IssueStatus.OPEN and (task_id is None or i.task_id == task_id)
        ]

    def reset(self) -> None:
        self._issues.clear()

    def on_issue_created(self, event: DomainEvent) -> None:
        p = event.payload
        self._issues[event.aggregate_id] = IssueView(
            issue_id=event.aggregate_id,
            workspace_id=event.workspace_id,
            title=p.get("title", ""),
            description=p.get("description", ""),
            task_id=p.get("task_id"),
            created_by_id=p.get("created_by_id", ""),
        )

    def on_issue_resolved(self, event: DomainEvent) -> None:
        issue = self._issues.get(event.aggregate_id)
        if issue is None:
            return
        self._issues[event.aggregate_id] = replace(
            issue, status=IssueStatus.RESOLVED, resolved_at=event.timestamp,
        )


# ---------------------------------------------------------------------------
# Acceptance
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AcceptanceCheck:
    task_id: str
    workspace_id: str
    criteria: tuple[str, ...] = field(default_factory=tuple)
    status: AcceptanceStatus = AcceptanceStatus.PENDING
    reviewed_by: str | None = None
    notes: str = ""
    reviewed_at: int | None = None


class AcceptanceReactor(WorkflowReactor):
    """Opens an acceptance check for every task that passes QC."""

    name = "acceptance"

    def __init__(self) -> None:
        super().__init__()
        self._checks: dict[str, AcceptanceCheck] = {}

    def subscriptions(self) -> dict[str, EventHandler]:
        return {
            EventTypes.QC_PASSED: self.on_qc_passed,
            EventTypes.ACCEPTANCE_APPROVED: self.on_approved,
            EventTypes.ACCEPTANCE_REJECTED: self.on_rejected,
        }

    def get(self, task_id: str) -> AcceptanceCheck | None:
        return self._checks.get(task_id)

    def reset(self) -> None:
        self._checks.clear()

    def on_qc_passed(self, event: DomainEvent) -> None:
        self._checks[event.aggregate_id] = AcceptanceCheck(
            task_id=event.aggregate_id,
            workspace_id=event.workspace_id,
            criteria=(f"Pass QC: {event.payload.get('task_title', '')}",),
        )

    def on_approved(self, event: DomainEvent) -> None:
        self._review(
            event,
            AcceptanceStatus.APPROVED,
            event.payload.get("approver_id"),
            event.payload.get("approval_notes", ""),
        )

    def on_rejected(self, event: DomainEvent) -> None:
        self._review(
            event,
            AcceptanceStatus.REJECTED,
            event.payload.get("rejected_by_id"),
            event.payload.get("rejection_reason", ""),
        )

    def _review(
        self,
        event: DomainEvent,
        status: AcceptanceStatus,
        reviewer: str | None,
        notes: str,
    ) -> None:
        check = self._checks.get(event.aggregate_id)
        if check is None:
            return
        self._checks[event.aggregate_id] = replace(
            check,
            status=status,
            reviewed_by=reviewer,
            notes=notes,
            reviewed_at=event.timestamp,
        )


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

def register_workflow_reactors(
    bus: IEventBus,
    publisher: EventPublisher,
) -> list[WorkflowReactor]:
    """Create and attach every workflow reactor to *bus*."""
    reactors: list[WorkflowReactor] = [
        TasksReactor(),
        QualityControlReactor(publisher),
        IssuesReactor(),
        AcceptanceReactor(),
    ]
    for reactor in reactors:
        reactor.attach(bus)
    logger.info("Registered %d workflow reactors", len(reactors))
    return reactors
