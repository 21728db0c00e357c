# watchtower/core/health.py
"""Health aggregation over registered probes.

The healthy flag only moves up through an explicit ``signal_healthy()``.
Probe evaluation can downgrade it but never upgrade it.
"""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable

from watchtower.core.errors import HealthProbeFailed, HealthProbeTimeout
from watchtower.core.events import EventEmitter, LifecycleEvent

logger = logging.getLogger(__name__)

HealthProbe = Callable[[], bool | None | Awaitable[bool | None]]


class HealthAggregator:
    """Runs health probes under a deadline and folds them into one flag."""

    def __init__(
        self,
        events: EventEmitter,
        is_ready: Callable[[], bool],
        is_shutting_down: Callable[[], bool],
        probe_deadline: float | None = 1.0,
    ) -> None:
        """Initialize the aggregator.

        Args:
            events: Emitter for health_state_change and error events.
            is_ready: Query for the readiness window.
            is_shutting_down: Query for the shutdown window.
            probe_deadline: Seconds allowed for one evaluation, None for no limit.
        """
        self._events = events
        self._is_ready = is_ready
        self._is_shutting_down = is_shutting_down
        self._probe_deadline = probe_deadline
        self._probes: list[HealthProbe] = []
        self._healthy = False

    def register(self, probe: HealthProbe) -> None:
        self._probes.append(probe)
        logger.debug("Registered health probe: %s", _probe_name(probe))

    def unregister(self, probe: HealthProbe) -> None:
        if probe in self._probes:
            self._probes.remove(probe)

    @property
    def probes(self) -> tuple[HealthProbe, ...]:
        return tuple(self._probes)

    @property
    def healthy_flag(self) -> bool:
        """Raw healthy flag, without the readiness window or probes."""
        return self._healthy

    def signal_healthy(self) -> None:
        """Raise the healthy flag; ignored outside the Ready window."""
        if not self._in_ready_window():
            logger.debug("Ignoring signal_healthy() outside the Ready window")
            return
        self._set_healthy(True)

    def signal_unhealthy(self) -> None:
        if not self._in_ready_window():
            return
        self._set_healthy(False)

    def mark_unhealthy(self) -> None:
        """Flip to unhealthy unconditionally, used when shutdown begins."""
        self._set_healthy(False)

    async def evaluate(self) -> bool:
        """Run every probe concurrently under the probe deadline.

        Returns:
            True if every probe passed in time, False otherwise.
        """
        if not self._probes:
            return True

        checks = asyncio.gather(*(self._run_probe(probe) for probe in self._probes))
        try:
            results = await asyncio.wait_for(checks, timeout=self._probe_deadline)
        except TimeoutError:
            fault = HealthProbeTimeout(
                f"Health probes did not settle within {self._probe_deadline:g}s"
            )
            logger.warning("%s, service deemed unhealthy", fault)
            self._events.emit(LifecycleEvent.ERROR, fault)
            return False

        return all(results)

    async def is_healthy(self) -> bool:
        """Aggregate health: ready, not shutting down, flagged healthy, probes passing."""
        if not self._is_ready() or self._is_shutting_down():
            return False

        if not self._healthy:
            return False

        passing = await self.evaluate()
        if not passing and self._healthy and not self._is_shutting_down():
            self._set_healthy(False)

        return self._healthy and self._is_ready() and not self._is_shutting_down()

    async def _run_probe(self, probe: HealthProbe) -> bool:
        try:
            result = probe()
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            fault = HealthProbeFailed(f"Health probe {_probe_name(probe)} raised: {e!r}")
            fault.__cause__ = e
            logger.warning("%s", fault)
            self._events.emit(LifecycleEvent.ERROR, fault)
            return False

        if result is False:
            logger.info("Health probe %s reported failure", _probe_name(probe))
            return False
        return True

    def _in_ready_window(self) -> bool:
        return self._is_ready() and not self._is_shutting_down()

    def _set_healthy(self, healthy: bool) -> None:
        if self._healthy == healthy:
            return
        self._healthy = healthy
        logger.info("Health state changed: %s", "healthy" if healthy else "unhealthy")
        self._events.emit(LifecycleEvent.HEALTH_STATE_CHANGE, healthy)


def _probe_name(probe: HealthProbe) -> str:
    return getattr(probe, "__qualname__", None) or repr(probe)
