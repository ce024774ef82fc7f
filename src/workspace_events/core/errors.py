"""Custom exception hierarchy for the event pipeline."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass


class EventPipelineError(Exception):
    """Base exception for all event pipeline errors."""


# --- Configuration ---
class ConfigError(EventPipelineError):
    """Invalid or missing configuration."""


# --- Validation ---
class EventValidationError(EventPipelineError):
    """A DomainEvent is structurally invalid.  Raised before any I/O."""

    def __init__(self, problems: Sequence[str]):
        self.problems = list(problems)
        super().__init__("; ".join(self.problems) or "invalid event")


# --- Store ---
class EventStoreError(EventPipelineError):
    """Event store append or query failure."""


class DuplicateEventError(EventStoreError):
    """An event with the same event_id is already in the store."""

    def __init__(self, event_id: str):
        self.event_id = event_id
        super().__init__(f"Duplicate event_id: {event_id}")


class EventStoreUnavailableError(EventStoreError):
    """The backing store could not be reached or written."""


# --- Bus ---
class EventBusError(EventPipelineError):
    """Event bus distribution failure."""


@dataclass(frozen=True)
class HandlerFailure:
    """One subscriber handler that raised during a fan-out."""

    event_id: str
    event_type: str
    handler_name: str
    error: str


class WorkflowError(EventPipelineError):
    """A workflow reactor could not publish a follow-up event."""


class HandlerError(EventBusError):
    """One or more handlers raised while an event was being fanned out.

    Raised only after every handler in the fan-out has completed.
    """

    def __init__(self, failures: Sequence[HandlerFailure]):
        self.failures = list(failures)
        details = ", ".join(
            f"{f.handler_name} on {f.event_type} ({f.error})" for f in self.failures
        )
        super().__init__(
            f"{len(self.failures)} handler(s) failed: {details}"
        )
