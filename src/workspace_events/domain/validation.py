"""Structural validation of event envelopes.

Runs before any I/O: an event that fails here is neither appended to the
store nor published on the bus.  Works on any object exposing the
envelope attributes, so malformed or duck-typed events are reported as
validation problems instead of crashing with ``AttributeError``.
"""

from __future__ import annotations

from typing import Any

from workspace_events.core.errors import EventValidationError

_MISSING = object()

_REQUIRED_STRINGS = ("event_id", "event_type", "aggregate_id", "correlation_id")


def collect_problems(event: Any) -> list[str]:
    """Return every structural problem found on *event* (empty if valid)."""
    problems: list[str] = []

    for name in _REQUIRED_STRINGS:
        value = getattr(event, name, _MISSING)
        if value is _MISSING or value is None or value == "":
            problems.append(f"event must have {name}")
        elif not isinstance(value, str):
            problems.append(
                f"event {name} must be a string, got {type(value).__name__}"
            )

    timestamp = getattr(event, "timestamp", _MISSING)
    if timestamp is _MISSING or timestamp is None:
        problems.append("event must have timestamp")
    elif isinstance(timestamp, bool) or not isinstance(timestamp, int):
        problems.append(
            "event timestamp must be an integer (milliseconds), "
            f"got {type(timestamp).__name__}"
        )
    elif timestamp < 0:
        problems.append(f"event timestamp must not be negative, got {timestamp}")

    causation_id = getattr(event, "causation_id", None)
    if causation_id is not None and not isinstance(causation_id, str):
        problems.append(
            "event causation_id must be a string or None, "
            f"got {type(causation_id).__name__}"
        )

    return problems


def validate_event(event: Any) -> None:
    """Raise ``EventValidationError`` listing every problem on *event*."""
    problems = collect_problems(event)
    if problems:
        raise EventValidationError(problems)
