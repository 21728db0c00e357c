# watchtower/core/readiness.py
"""Readiness gate: fan-in over queued startup tasks.

The gate resolves exactly once, to READY or FAILED. It resolves READY
after ``signal_ready()`` has been called and the last pending task has
completed, and FAILED as soon as any task raises.

Example:
    >>> gate = ReadinessGate(on_resolved=print)
    >>> gate.queue(connect_to_database())
    >>> gate.signal_ready()
    >>> await gate.wait()
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

from watchtower.core.errors import LogicalMisuseError

logger = logging.getLogger(__name__)


class GateOutcome(str, Enum):
    READY = "ready"
    FAILED = "failed"


class ReadinessGate:
    """Resolve-once fan-in over an open-ended set of startup tasks."""

    def __init__(
        self,
        on_resolved: Callable[[GateOutcome, BaseException | None], None] | None = None,
    ) -> None:
        """Initialize the gate.

        Args:
            on_resolved: Called synchronously, exactly once, with the outcome
                and the failing exception (``None`` when ready).
        """
        self._on_resolved = on_resolved
        self._pending: set[asyncio.Future[Any]] = set()
        self._signalled = False
        self._outcome: GateOutcome | None = None
        self._error: BaseException | None = None
        self._resolved = asyncio.Event()

    def queue(self, task: Awaitable[Any]) -> asyncio.Future[Any]:
        """Queue a startup task.

        Args:
            task: Coroutine, task or future. Coroutines are scheduled on the
                running loop.

        Returns:
            The future tracked by the gate.

        Raises:
            LogicalMisuseError: If the gate has already resolved.
        """
        if self._outcome is not None:
            raise LogicalMisuseError(
                f"Cannot queue a startup task: readiness already {self._outcome.value}"
            )

        future = asyncio.ensure_future(task)
        self._pending.add(future)
        future.add_done_callback(self._on_task_done)
        logger.debug("Startup task queued (%d pending)", len(self._pending))
        return future

    def signal_ready(self) -> None:
        """Declare that no more startup tasks will be queued.

        Resolves synchronously when nothing is pending. Repeated calls and
        calls after resolution are no-ops.
        """
        if self._signalled or self._outcome is not None:
            return

        self._signalled = True
        if self._pending:
            logger.debug(
                "Readiness deferred until %d startup task(s) finish", len(self._pending)
            )
            return

        self._resolve(GateOutcome.READY)

    def is_ready(self) -> bool:
        return self._outcome is GateOutcome.READY

    def has_failed(self) -> bool:
        return self._outcome is GateOutcome.FAILED

    @property
    def outcome(self) -> GateOutcome | None:
        return self._outcome

    @property
    def error(self) -> BaseException | None:
        """Exception of the startup task that failed the gate, if any."""
        return self._error

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def wait(self) -> GateOutcome:
        """Wait for the gate to resolve and return its outcome."""
        await self._resolved.wait()
        assert self._outcome is not None
        return self._outcome

    def _on_task_done(self, future: asyncio.Future[Any]) -> None:
        self._pending.discard(future)

        if self._outcome is not None:
            # Late settlement after resolution; retrieve the exception so
            # asyncio does not warn about it
            if not future.cancelled():
                future.exception()
            return

        if future.cancelled():
            self._resolve(GateOutcome.FAILED, asyncio.CancelledError())
            return

        error = future.exception()
        if error is not None:
            self._resolve(GateOutcome.FAILED, error)
            return

        if self._signalled and not self._pending:
            self._resolve(GateOutcome.READY)

    def _resolve(self, outcome: GateOutcome, error: BaseException | None = None) -> None:
        if self._outcome is not None:
            return

        self._outcome = outcome
        self._error = error
        self._resolved.set()

        if outcome is GateOutcome.READY:
            logger.info("Readiness gate resolved: ready")
        else:
            logger.error("Readiness gate resolved: startup task failed: %r", error)

        if self._on_resolved is not None:
            self._on_resolved(outcome, error)
