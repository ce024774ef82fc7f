"""Canonical ID and timestamp factories for the event pipeline.

All modules import from here instead of defining local _uuid()/_now() copies.

ID Categories
-------------
1. Event IDs: UUID v4 strings, generated once per ``DomainEvent``.
2. Correlation IDs: UUID v4 strings linking one business operation.  A root
   event reuses its own ``event_id`` as its correlation id.
3. Aggregate / workspace IDs: opaque strings owned by the calling module.

Timestamp Rule
--------------
Event timestamps are integer milliseconds since the Unix epoch, taken from
the process-wide :class:`~workspace_events.core.clock.WallClock`.
"""

from __future__ import annotations

import uuid

from .clock import default_clock


def new_id() -> str:
    """Generate a new UUID v4 string.  Use for event and correlation IDs."""
    return str(uuid.uuid4())


def now_ms() -> int:
    """Current time in epoch milliseconds, non-decreasing within the process."""
    return default_clock().now_ms()
