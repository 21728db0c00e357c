# watchtower/utils/metrics.py
"""Prometheus metrics for the service lifecycle."""

import logging
import time

from prometheus_client import REGISTRY, CollectorRegistry, Gauge

logger = logging.getLogger(__name__)


class StartupMetrics:
    """Records how long the service took to become ready for the first time."""

    def __init__(self, registry: CollectorRegistry | None = REGISTRY) -> None:
        """Initialize the metrics.

        Args:
            registry: Registry to expose the gauge on. Pass a fresh
                CollectorRegistry when building several controllers in one
                process, since a name can be registered only once per registry.
        """
        self._registry = registry
        self._started_at = time.perf_counter()
        self.startup_duration = Gauge(
            "watchtower_startup_duration_milliseconds",
            "Time between watchtower instance was created and it became ready "
            "for the first time",
            registry=registry,
        )
        self.duration_ms: float | None = None

    def observe_ready(self) -> float:
        """Record the startup duration; only the first call counts.

        Returns:
            Startup duration in milliseconds.
        """
        if self.duration_ms is None:
            self.duration_ms = (time.perf_counter() - self._started_at) * 1000
            self.startup_duration.set(self.duration_ms)
            logger.info("Service became ready in %.1f ms", self.duration_ms)
        return self.duration_ms

    def close(self) -> None:
        """Unregister the gauge so another instance can take its name."""
        if self._registry is None:
            return
        try:
            self._registry.unregister(self.startup_duration)
        except KeyError:
            logger.debug("Startup gauge already unregistered")
        self._registry = None
