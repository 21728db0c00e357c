# watchtower/core/shutdown.py
"""Shutdown sequencer: the ordered, deadline-guarded path to exit.

Phases, run once per process:

1. await-readiness: a shutdown requested mid-startup waits for the gate
2. shutdown-delay: optional sleep while still reporting healthy
3. mark-unhealthy: enter SHUTTING_DOWN and arm the overall deadline
4. drain-beacons: wait until no beacon is live
5. shutdown-tasks: run every shutdown task concurrently
6. terminate: emit ``close`` and arm the residual-activity watchdog

Any elapsed deadline terminates the process with status 1 after the
fault has been emitted on the ``error`` event.
"""

import asyncio
import inspect
import logging
import os
import threading
from collections.abc import Awaitable, Callable

from watchtower.config import Settings
from watchtower.core.beacons import BeaconRegistry
from watchtower.core.errors import (
    DeadlineExceeded,
    LogicalMisuseError,
    ResidualActivityFault,
    ShutdownTaskFailed,
    WatchtowerError,
)
from watchtower.core.events import EventEmitter, LifecycleEvent
from watchtower.core.health import HealthAggregator
from watchtower.core.readiness import GateOutcome, ReadinessGate
from watchtower.core.state import LifecycleState, StateMachine
from watchtower.core.timers import LoopTimers, ThreadTimers, Timer, TimerService
from watchtower.utils.logging import flush_logging, set_phase

logger = logging.getLogger(__name__)

ShutdownTask = Callable[[], Awaitable[None] | None]
Terminate = Callable[[int], None]

# Fixed window for the process to exit on its own after ``close``
RESIDUAL_WATCHDOG_DELAY = 1.0

# How long the watchdog waits for the loop to deliver its error event
RESIDUAL_REPORT_TIMEOUT = 0.5


def terminate_process(code: int) -> None:
    """Exit immediately, without running interpreter cleanup."""
    flush_logging()
    os._exit(code)


class ShutdownSequencer:
    """Drives the shutdown phases for one Watchtower."""

    def __init__(
        self,
        *,
        settings: Settings,
        state: StateMachine,
        gate: ReadinessGate,
        health: HealthAggregator,
        beacons: BeaconRegistry,
        events: EventEmitter,
        terminate: Terminate = terminate_process,
        timers: TimerService | None = None,
        watchdog_timers: TimerService | None = None,
        on_closed: Callable[[], None] | None = None,
    ) -> None:
        self._settings = settings
        self._state = state
        self._gate = gate
        self._health = health
        self._beacons = beacons
        self._events = events
        self._terminate = terminate
        self._timers = timers or LoopTimers()
        self._watchdog_timers = watchdog_timers or ThreadTimers()
        self._on_closed = on_closed

        self._tasks: list[ShutdownTask] = []
        self._run_task: asyncio.Task[None] | None = None
        self._reason: str | None = None
        self._closed = asyncio.Event()
        self._terminated = False

    def register(self, task: ShutdownTask) -> None:
        """Register a shutdown task.

        Raises:
            LogicalMisuseError: If shutdown has already begun.
        """
        if self._state.is_shutting_down:
            raise LogicalMisuseError("Cannot register a shutdown task while shutting down")
        self._tasks.append(task)
        logger.debug("Registered shutdown task: %s", _task_name(task))

    @property
    def tasks(self) -> tuple[ShutdownTask, ...]:
        return tuple(self._tasks)

    @property
    def triggered(self) -> bool:
        return self._run_task is not None

    @property
    def reason(self) -> str | None:
        return self._reason

    @property
    def terminated(self) -> bool:
        """Whether a termination call has been made."""
        return self._terminated

    def request(self, reason: str) -> asyncio.Task[None]:
        """Start the shutdown sequence, or return the one already running."""
        if self._run_task is not None:
            logger.warning(
                "Service is already shutting down (%s), ignoring: %s", self._reason, reason
            )
            return self._run_task

        logger.info("Received request to shut down the service: %s", reason)
        self._reason = reason
        self._run_task = asyncio.ensure_future(self._run(reason))
        return self._run_task

    async def wait_closed(self) -> None:
        """Wait until the sequence has emitted ``close``."""
        await self._closed.wait()

    def force_terminate(self, fault: WatchtowerError) -> None:
        """Report a fatal fault, then terminate with status 1. Runs once."""
        if self._terminated:
            return
        self._terminated = True
        self._report_fatal(fault)
        self._terminate(1)

    def _report_fatal(self, fault: WatchtowerError) -> None:
        logger.critical("Forcing process termination: %s", fault)
        self._events.emit(LifecycleEvent.ERROR, fault)

    async def _run(self, reason: str) -> None:
        if self._state.state is LifecycleState.STARTING:
            set_phase("await-readiness")
            logger.info("Shutdown requested during startup, waiting for readiness")
            if await self._gate.wait() is GateOutcome.FAILED:
                logger.error("Startup failed, abandoning graceful shutdown")
                return

        delay = self._settings.shutdown_delay
        if delay is not None:
            set_phase("shutdown-delay")
            logger.info("Delaying shutdown by %gs", delay)
            await asyncio.sleep(delay)

        set_phase("mark-unhealthy")
        self._health.mark_unhealthy()
        self._state.advance(LifecycleState.SHUTTING_DOWN)
        self._events.emit(LifecycleEvent.SHUTDOWN, reason)

        deadline = self._arm("graceful shutdown", self._settings.shutdown_deadline)
        try:
            set_phase("drain-beacons")
            await self._beacons.wait_drained()

            set_phase("shutdown-tasks")
            await self._run_shutdown_tasks()
        finally:
            if deadline is not None:
                deadline.cancel()

        if self._terminated:
            return

        set_phase("terminate")
        self._state.advance(LifecycleState.TERMINATED)
        if self._on_closed is not None:
            self._on_closed()
        self._closed.set()
        self._events.emit(LifecycleEvent.CLOSE)
        logger.info("Shutdown sequence complete, bye!")

        loop = asyncio.get_running_loop()
        self._watchdog_timers.call_later(
            RESIDUAL_WATCHDOG_DELAY, lambda: self._on_residual_activity(loop)
        )

    async def _run_shutdown_tasks(self) -> None:
        tasks = list(self._tasks)
        if not tasks:
            return

        logger.info("Running %d shutdown task(s)", len(tasks))
        deadline = self._arm("shutdown tasks", self._settings.shutdown_tasks_deadline)
        try:
            await asyncio.gather(*(self._run_shutdown_task(task) for task in tasks))
        finally:
            if deadline is not None:
                deadline.cancel()
        logger.info("All shutdown tasks have run to completion")

    async def _run_shutdown_task(self, task: ShutdownTask) -> None:
        try:
            result = task()
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            fault = ShutdownTaskFailed(f"Shutdown task {_task_name(task)} raised: {e!r}")
            fault.__cause__ = e
            logger.exception("Shutdown task %s produced an error", _task_name(task))
            self._events.emit(LifecycleEvent.ERROR, fault)

    def _arm(self, phase: str, deadline: float | None) -> Timer | None:
        if deadline is None:
            return None
        return self._timers.call_later(
            deadline, lambda: self.force_terminate(DeadlineExceeded(phase, deadline))
        )

    def _on_residual_activity(self, loop: asyncio.AbstractEventLoop) -> None:
        """Terminate a process that outlived its shutdown sequence.

        Runs on the watchdog thread. The ``error`` event is handed to the
        loop thread like every other event; if the loop does not pick it up
        in time it is delivered from the watchdog thread instead. Termination
        always happens here, after the event.
        """
        fault = ResidualActivityFault(
            "Process did not exit on its own after shutdown, "
            "investigate what is keeping it alive"
        )
        if loop.is_closed() or _running_loop() is loop:
            self.force_terminate(fault)
            return

        if self._terminated:
            return
        self._terminated = True

        claimed = threading.Lock()
        reported = threading.Event()

        def report() -> None:
            if not claimed.acquire(blocking=False):
                return
            try:
                self._report_fatal(fault)
            finally:
                reported.set()

        try:
            loop.call_soon_threadsafe(report)
        except RuntimeError:
            # Loop closed in between
            report()
        if not reported.wait(RESIDUAL_REPORT_TIMEOUT):
            logger.warning("Event loop is unresponsive, reporting residual activity directly")
            report()
        self._terminate(1)


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


def _task_name(task: ShutdownTask) -> str:
    return getattr(task, "__qualname__", None) or repr(task)
