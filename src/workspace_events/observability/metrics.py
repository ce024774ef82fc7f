"""Prometheus metrics for the event pipeline.

Counters are process-wide; the ``record_*`` helpers are the only way the
rest of the package touches them.  ``set_enabled(False)`` turns every
helper into a no-op (tests, embedded use without an exporter).
"""

from __future__ import annotations

import logging
import threading

from prometheus_client import Counter, Histogram, start_http_server

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Pipeline metrics
# ---------------------------------------------------------------------------

EVENTS_APPENDED = Counter(
    "workspace_events_appended_total",
    "Events durably appended to the event store",
    ["event_type"],
)

EVENTS_PUBLISHED = Counter(
    "workspace_events_published_total",
    "Events whose bus fan-out completed without handler errors",
    ["event_type"],
)

PUBLISH_FAILURES = Counter(
    "workspace_events_publish_failures_total",
    "Publish attempts that returned success=False",
    ["stage"],
)

HANDLER_ERRORS = Counter(
    "workspace_events_handler_errors_total",
    "Subscriber handlers that raised during a fan-out",
    ["event_type"],
)

PUBLISH_LATENCY = Histogram(
    "workspace_events_publish_latency_seconds",
    "Time from validation to end of fan-out",
    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0],
)

_enabled = True
_server_lock = threading.Lock()
_server_started = False


def set_enabled(enabled: bool) -> None:
    """Turn metric recording on or off process-wide."""
    global _enabled
    _enabled = enabled


def start_metrics_server(port: int = 9090) -> None:
    """Start the Prometheus HTTP exporter once per process."""
    global _server_started
    with _server_lock:
        if _server_started:
            return
        start_http_server(port)
        _server_started = True
    logger.info("Metrics server started on port %d", port)


def record_append(event_type: str, count: int = 1) -> None:
    """Record events appended to the store."""
    if _enabled:
        EVENTS_APPENDED.labels(event_type=event_type).inc(count)


def record_published(event_type: str) -> None:
    """Record a clean fan-out."""
    if _enabled:
        EVENTS_PUBLISHED.labels(event_type=event_type).inc()


def record_publish_failure(stage: str) -> None:
    """Record a failed publish at *stage* (validation/store/tracker/bus)."""
    if _enabled:
        PUBLISH_FAILURES.labels(stage=stage).inc()


def record_handler_error(event_type: str) -> None:
    """Record a subscriber handler failure."""
    if _enabled:
        HANDLER_ERRORS.labels(event_type=event_type).inc()


def record_publish_latency(seconds: float) -> None:
    """Record end-to-end publish latency."""
    if _enabled:
        PUBLISH_LATENCY.observe(seconds)
