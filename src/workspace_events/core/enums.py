"""Enumerations used across the event pipeline."""

from enum import Enum


class StoreBackend(str, Enum):
    MEMORY = "memory"
    JSONL = "jsonl"


class PublishStage(str, Enum):
    """Orchestrator step at which a publish attempt stopped."""

    VALIDATION = "validation"
    STORE = "store"
    TRACKER = "tracker"
    BUS = "bus"


class TaskStatus(str, Enum):
    READY = "ready"
    IN_QC = "in-qc"
    QC_FAILED = "qc-failed"
    IN_ACCEPTANCE = "in-acceptance"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    COMPLETED = "completed"
    BLOCKED = "blocked"


class IssueStatus(str, Enum):
    OPEN = "open"
    RESOLVED = "resolved"


class ReviewStatus(str, Enum):
    PENDING = "pending"
    PASSED = "passed"
    FAILED = "failed"


class AcceptanceStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
