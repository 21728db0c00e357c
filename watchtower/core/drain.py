# watchtower/core/drain.py
"""Connection draining for a live network listener.

Closes a listener without dropping in-flight requests: idle connections
are closed right away, active ones as soon as their request finishes,
and anything still open after the grace window is force-closed.
"""

import asyncio
import itertools
import logging
from dataclasses import dataclass
from typing import Protocol

from watchtower.core.timers import LoopTimers, Timer, TimerService

logger = logging.getLogger(__name__)

DEFAULT_DRAIN_GRACE = 1.0


class Connection(Protocol):
    """A live connection owned by the listener."""

    def abort(self) -> None:
        """Close the connection immediately."""
        ...


class ConnectionObserver(Protocol):
    """Receives per-connection and per-request notifications from a listener."""

    def connection_opened(self, connection: Connection) -> int: ...

    def request_started(self, connection_id: int) -> None: ...

    def request_finished(self, connection_id: int) -> None: ...

    def connection_closed(self, connection_id: int) -> None: ...


class Listener(Protocol):
    """A network listener the drain manager can observe and close."""

    def subscribe(self, observer: ConnectionObserver) -> None: ...

    def close(self) -> None:
        """Stop accepting new connections."""
        ...

    async def wait_closed(self) -> None:
        """Return once the listener and all of its connections are closed."""
        ...


@dataclass
class ConnectionRecord:
    id: int
    connection: Connection
    idle: bool = True


class ConnectionDrainManager:
    """Tracks connection activity on a listener and drains it on ``close()``."""

    def __init__(
        self,
        listener: Listener,
        grace: float = DEFAULT_DRAIN_GRACE,
        timers: TimerService | None = None,
    ) -> None:
        """Initialize the manager and start observing the listener.

        Args:
            listener: Listener to observe and close.
            grace: Seconds before active connections are force-closed.
            timers: Scheduler for the grace timer. Defaults to the running loop.
        """
        self._listener = listener
        self._grace = grace
        self._timers = timers or LoopTimers()
        self._connections: dict[int, ConnectionRecord] = {}
        self._ids = itertools.count(1)
        self._draining = False
        self._closing: asyncio.Task[None] | None = None

        listener.subscribe(self)

    @property
    def draining(self) -> bool:
        return self._draining

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    @property
    def active_count(self) -> int:
        return sum(1 for record in self._connections.values() if not record.idle)

    def connection_opened(self, connection: Connection) -> int:
        record = ConnectionRecord(next(self._ids), connection)
        self._connections[record.id] = record
        return record.id

    def request_started(self, connection_id: int) -> None:
        record = self._connections.get(connection_id)
        if record is not None:
            record.idle = False

    def request_finished(self, connection_id: int) -> None:
        record = self._connections.get(connection_id)
        if record is None:
            return
        if self._draining:
            logger.debug("Closing connection %d after its last request", record.id)
            record.connection.abort()
            return
        record.idle = True

    def connection_closed(self, connection_id: int) -> None:
        self._connections.pop(connection_id, None)

    async def close(self) -> None:
        """Drain and close the listener.

        Draining starts within the call: idle connections are aborted, the
        grace timer is armed and the listener stops accepting before the
        first suspension. Resolves once the listener reports full closure
        and the grace timer has been cleared. Repeated calls wait on the
        same closure.
        """
        if self._closing is None:
            grace_timer = self._begin_drain()
            try:
                self._listener.close()
            except Exception:
                grace_timer.cancel()
                raise
            self._closing = asyncio.ensure_future(self._wait_closed(grace_timer))
        await asyncio.shield(self._closing)

    def _begin_drain(self) -> Timer:
        self._draining = True
        idle = [record for record in self._connections.values() if record.idle]
        logger.info(
            "Draining listener: closing %d idle of %d connection(s)",
            len(idle),
            len(self._connections),
        )
        for record in idle:
            record.connection.abort()

        return self._timers.call_later(self._grace, self._close_all)

    async def _wait_closed(self, grace_timer: Timer) -> None:
        try:
            await self._listener.wait_closed()
        finally:
            grace_timer.cancel()
        logger.info("Listener closed")

    def _close_all(self) -> None:
        logger.info("Drain grace elapsed, closing %d connection(s)", len(self._connections))
        for record in list(self._connections.values()):
            record.connection.abort()
