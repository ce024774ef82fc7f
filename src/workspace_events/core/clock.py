"""Clock abstraction for event timestamps.

WallClock: real wall-clock time, never runs backwards within a process
SimClock: deterministic simulated time (tests, replays)

Event factories never call time.time() directly; they take a clock.
"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from typing import Protocol


class IClock(Protocol):
    """Clock interface used by all time-dependent code."""

    def now(self) -> datetime:
        """Current time as timezone-aware UTC datetime."""
        ...

    def now_ms(self) -> int:
        """Current time as milliseconds since epoch."""
        ...


class WallClock:
    """Real wall-clock time.

    ``now_ms()`` is clamped so that successive readings never decrease,
    even if the system clock is stepped backwards.
    """

    def __init__(self) -> None:
        self._last_ms = 0
        self._lock = threading.Lock()

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def now_ms(self) -> int:
        wall = int(self.now().timestamp() * 1000)
        with self._lock:
            if wall < self._last_ms:
                wall = self._last_ms
            self._last_ms = wall
        return wall


class SimClock:
    """Hand-driven clock for stamping fixture events and replaying histories.

    Starts at 2024-01-01 UTC unless told otherwise.  Readings never decrease,
    so an event derived after its parent never carries an earlier timestamp.
    """

    def __init__(self, start: datetime | None = None) -> None:
        self._time = start or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._time

    def now_ms(self) -> int:
        return int(self._time.timestamp() * 1000)

    def set_time(self, t: datetime) -> None:
        """Jump to *t*; rewinding raises ``ValueError``."""
        if t < self._time:
            raise ValueError(
                f"Cannot rewind simulated time from {self._time.isoformat()} "
                f"to {t.isoformat()}"
            )
        self._time = t

    def advance_ms(self, ms: int) -> None:
        self.set_time(self._time + timedelta(milliseconds=ms))


_default_clock = WallClock()


def default_clock() -> WallClock:
    """Process-wide wall clock shared by the id/timestamp factories."""
    return _default_clock
