# watchtower/core/lifecycle.py
"""Lifecycle controller for long-running network services.

Gates traffic until startup work finishes, aggregates health and drives
the shutdown sequence when the process is asked to terminate.

Example:
    >>> from watchtower import Watchtower
    >>>
    >>> watchtower = Watchtower()
    >>> watchtower.on("shutdown", lambda reason: print("stopping:", reason))
    >>> watchtower.queue_startup_task(server.start())
    >>> watchtower.register_shutdown_task(drain_manager.close)
    >>> watchtower.signal_ready()
    >>> await watchtower.wait_closed()
"""

import asyncio
import logging
from collections.abc import Awaitable
from typing import Any

from prometheus_client import REGISTRY, CollectorRegistry

from watchtower.config import Settings
from watchtower.core.beacons import Beacon, BeaconRegistry
from watchtower.core.errors import SignalWithoutLoop, StartupTaskFailed
from watchtower.core.events import EventEmitter, LifecycleEvent, Listener
from watchtower.core.health import HealthAggregator, HealthProbe
from watchtower.core.readiness import GateOutcome, ReadinessGate
from watchtower.core.shutdown import (
    ShutdownSequencer,
    ShutdownTask,
    Terminate,
    terminate_process,
)
from watchtower.core.signals import ProcessSignalSource, SignalSource
from watchtower.core.state import LifecycleState, StateMachine
from watchtower.core.timers import TimerService
from watchtower.utils.metrics import StartupMetrics

logger = logging.getLogger(__name__)

DEFAULT_SHUTDOWN_REASON = "shutdown requested"


class Watchtower:
    """Coordinates readiness, health, beacons and shutdown for one process."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        signal_source: SignalSource | None = None,
        terminate: Terminate = terminate_process,
        timers: TimerService | None = None,
        watchdog_timers: TimerService | None = None,
        metrics_registry: CollectorRegistry | None = REGISTRY,
    ) -> None:
        """Initialize the controller and subscribe to termination signals.

        Args:
            settings: Lifecycle settings. Defaults to Settings() from environment.
            signal_source: Source of termination signals. Defaults to the
                process signal handlers.
            terminate: Called with the exit status on every forced termination.
            timers: Scheduler for phase deadlines. Defaults to the running loop.
            watchdog_timers: Scheduler for the post-shutdown watchdog.
                Defaults to daemon threads.
            metrics_registry: Prometheus registry for the startup gauge.
        """
        self.settings = settings or Settings()
        self.events = EventEmitter()
        self.metrics = StartupMetrics(metrics_registry)

        self._state = StateMachine()
        self._gate = ReadinessGate(on_resolved=self._on_gate_resolved)
        self._health = HealthAggregator(
            self.events,
            is_ready=self.is_ready,
            is_shutting_down=self.is_shutting_down,
            probe_deadline=self.settings.health_probe_deadline,
        )
        self._beacons = BeaconRegistry(is_shutting_down=self.is_shutting_down)
        self._sequencer = ShutdownSequencer(
            settings=self.settings,
            state=self._state,
            gate=self._gate,
            health=self._health,
            beacons=self._beacons,
            events=self.events,
            terminate=terminate,
            timers=timers,
            watchdog_timers=watchdog_timers,
            on_closed=self._unsubscribe_signals,
        )

        self._signal_source = signal_source or ProcessSignalSource()
        self._unsubscribe = self._signal_source.subscribe(
            self.settings.termination_signals, self._on_signal
        )

    # -- events ---------------------------------------------------------

    def on(self, event: LifecycleEvent | str, listener: Listener) -> None:
        """Subscribe to ``ready``, ``health_state_change``, ``shutdown``, ``close`` or ``error``."""
        self.events.on(event, listener)

    def off(self, event: LifecycleEvent | str, listener: Listener) -> None:
        self.events.off(event, listener)

    # -- state ----------------------------------------------------------

    @property
    def state(self) -> LifecycleState:
        return self._state.state

    def is_ready(self) -> bool:
        return self._state.state is LifecycleState.READY

    def is_shutting_down(self) -> bool:
        return self._state.is_shutting_down

    @property
    def shutdown_reason(self) -> str | None:
        return self._sequencer.reason

    # -- startup --------------------------------------------------------

    def queue_startup_task(self, task: Awaitable[Any]) -> asyncio.Future[Any]:
        """Queue startup work that must finish before the service is ready.

        Raises:
            LogicalMisuseError: If readiness has already resolved.
        """
        return self._gate.queue(task)

    def signal_ready(self) -> None:
        """Declare that every startup task has been queued.

        Readiness resolves within this call when nothing is pending.
        """
        if self.is_shutting_down():
            return
        self._gate.signal_ready()

    async def wait_ready(self) -> bool:
        """Wait for the readiness gate; True if startup succeeded."""
        return await self._gate.wait() is GateOutcome.READY

    # -- health ---------------------------------------------------------

    def register_health_probe(self, probe: HealthProbe) -> None:
        self._health.register(probe)

    def unregister_health_probe(self, probe: HealthProbe) -> None:
        self._health.unregister(probe)

    def signal_healthy(self) -> None:
        self._health.signal_healthy()

    def signal_unhealthy(self) -> None:
        self._health.signal_unhealthy()

    async def is_healthy(self) -> bool:
        """Evaluate health probes; False outside the Ready window."""
        return await self._health.is_healthy()

    # -- beacons --------------------------------------------------------

    def create_beacon(self, context: dict[str, Any] | None = None) -> Beacon:
        """Create a beacon that holds shutdown in the drain phase until released.

        Raises:
            LogicalMisuseError: If shutdown has already begun.
        """
        return self._beacons.create(context)

    @property
    def live_beacons(self) -> int:
        return self._beacons.live_count

    # -- shutdown -------------------------------------------------------

    def register_shutdown_task(self, task: ShutdownTask) -> None:
        """Register cleanup work run concurrently during shutdown.

        Raises:
            LogicalMisuseError: If shutdown has already begun.
        """
        self._sequencer.register(task)

    def request_shutdown(self, reason: str = DEFAULT_SHUTDOWN_REASON) -> asyncio.Task[None]:
        """Trigger shutdown without waiting; repeated calls share one run."""
        return self._sequencer.request(reason)

    async def shutdown(self, reason: str = DEFAULT_SHUTDOWN_REASON) -> None:
        """Trigger shutdown and wait for the sequence to finish."""
        await self.request_shutdown(reason)

    async def wait_closed(self) -> None:
        """Wait until the shutdown sequence has emitted ``close``."""
        await self._sequencer.wait_closed()

    # -- internals ------------------------------------------------------

    def _on_gate_resolved(self, outcome: GateOutcome, error: BaseException | None) -> None:
        if outcome is GateOutcome.READY:
            self.metrics.observe_ready()
            self._state.advance(LifecycleState.READY)
            logger.info("Service has become available for the first time")
            self.events.emit(LifecycleEvent.READY)
            self._health.signal_healthy()
            return

        fault = StartupTaskFailed("startup task failed")
        fault.__cause__ = error
        logger.error("Service could not become available: %r", error)
        self._sequencer.force_terminate(fault)

    def _on_signal(self, name: str) -> None:
        logger.info("Received termination signal %s", name)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop left to run the shutdown sequence on
            self._sequencer.force_terminate(SignalWithoutLoop(name))
            return
        loop.call_soon_threadsafe(self.request_shutdown, name)

    def dispose(self) -> None:
        """Release process-wide resources: signal handlers and the startup gauge.

        The controller must not be used afterwards.
        """
        self._unsubscribe_signals()
        self.metrics.close()

    def _unsubscribe_signals(self) -> None:
        self._unsubscribe()
        logger.debug("Unsubscribed from termination signals")


# Singleton instance
_watchtower: Watchtower | None = None


def get_watchtower() -> Watchtower:
    """Get the process-wide Watchtower singleton.

    Returns:
        The global Watchtower instance.
    """
    global _watchtower
    if _watchtower is None:
        _watchtower = Watchtower()
    return _watchtower


def reset_watchtower() -> None:
    """Reset the global Watchtower (for testing).

    Creates a fresh instance on next get_watchtower() call.
    """
    global _watchtower
    if _watchtower is not None:
        _watchtower.dispose()
    _watchtower = None
