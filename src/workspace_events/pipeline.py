"""Composition root: wires store, bus, tracker and publisher together.

Every ``build_pipeline()`` call returns fresh instances.  There are no
module-level registries; a tenant or workspace switch either builds a new
pipeline or calls :meth:`EventPipeline.reset`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .application.publisher import EventPublisher
from .core.config import Settings
from .domain.causality import CausalityTracker
from .infrastructure.event_bus import InMemoryEventBus
from .infrastructure.event_store import IEventStore
from .infrastructure.factory import create_event_store
from .observability import metrics
from .observability.logger import setup_logging

logger = logging.getLogger(__name__)


@dataclass
class EventPipeline:
    store: IEventStore
    bus: InMemoryEventBus
    tracker: CausalityTracker | None
    publisher: EventPublisher

    def reset(self) -> None:
        """Drop subscriptions and lineage.  Stored history is untouched."""
        self.bus.clear()
        if self.tracker is not None:
            self.tracker.clear()
        logger.info("Event pipeline reset")


def configure_observability(settings: Settings, *, serve_metrics: bool = False) -> None:
    """Apply the logging settings and optionally expose Prometheus metrics.

    Called once by process entry points.  Only long-running hosts pass
    ``serve_metrics=True``; the exporter listens on
    ``observability.metrics_port`` and a port clash is logged, not raised.
    """
    obs = settings.observability
    setup_logging(level=obs.log_level, format=obs.log_format)
    metrics.set_enabled(obs.metrics_enabled)
    if not (serve_metrics and obs.metrics_enabled):
        return
    try:
        metrics.start_metrics_server(obs.metrics_port)
    except OSError:
        logger.warning(
            "Failed to start metrics server on port %d", obs.metrics_port, exc_info=True,
        )


def build_pipeline(settings: Settings | None = None) -> EventPipeline:
    """Build a pipeline from *settings* (defaults: in-memory, tracked)."""
    settings = settings or Settings()
    settings.validate_store()

    metrics.set_enabled(settings.observability.metrics_enabled)

    store = create_event_store(settings.store)
    bus = InMemoryEventBus()
    tracker = CausalityTracker() if settings.publisher.track_causality else None
    publisher = EventPublisher(
        store,
        bus,
        tracker,
        timeout=settings.publisher.timeout_seconds,
    )
    logger.info(
        "Event pipeline built (store=%s, causality=%s)",
        settings.store.backend.value,
        tracker is not None,
    )
    return EventPipeline(store=store, bus=bus, tracker=tracker, publisher=publisher)
