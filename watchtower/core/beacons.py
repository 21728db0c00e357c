# watchtower/core/beacons.py
"""Beacons: caller-held tokens that postpone shutdown completion.

Example:
    >>> async with watchtower.create_beacon({"job": job_id}):
    ...     await process(job_id)
"""

import asyncio
import itertools
import logging
from collections.abc import Callable, Iterator
from typing import Any

from watchtower.core.errors import LogicalMisuseError

logger = logging.getLogger(__name__)


class Beacon:
    """A live keep-alive token. Release it exactly once when done."""

    def __init__(self, registry: "BeaconRegistry", beacon_id: int, context: dict[str, Any]):
        self._registry = registry
        self.id = beacon_id
        self.context = context
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        """Release the beacon. Calls after the first are no-ops."""
        if self._released:
            return
        self._released = True
        self._registry._release(self.id)

    def __enter__(self) -> "Beacon":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.release()

    async def __aenter__(self) -> "Beacon":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.release()

    def __repr__(self) -> str:
        state = "released" if self._released else "live"
        return f"<Beacon id={self.id} {state} context={self.context!r}>"


class BeaconRegistry:
    """Tracks live beacons and signals when the last one is released."""

    def __init__(self, is_shutting_down: Callable[[], bool]) -> None:
        self._is_shutting_down = is_shutting_down
        self._beacons: dict[int, Beacon] = {}
        self._ids = itertools.count(1)
        self._drained = asyncio.Event()
        self._drained.set()

    def create(self, context: dict[str, Any] | None = None) -> Beacon:
        """Create a beacon.

        Args:
            context: Opaque diagnostic payload kept with the beacon.

        Returns:
            The live Beacon.

        Raises:
            LogicalMisuseError: If shutdown has already begun.
        """
        if self._is_shutting_down():
            raise LogicalMisuseError("Cannot create a beacon while shutting down")

        beacon = Beacon(self, next(self._ids), context if context is not None else {})
        self._beacons[beacon.id] = beacon
        self._drained.clear()
        logger.debug("Beacon %d created (%d live)", beacon.id, len(self._beacons))
        return beacon

    @property
    def live_count(self) -> int:
        return len(self._beacons)

    def __iter__(self) -> Iterator[Beacon]:
        return iter(list(self._beacons.values()))

    async def wait_drained(self) -> None:
        """Return once no beacons are live; immediately if none are now."""
        if not self._beacons:
            return

        logger.info(
            "Termination on hold: %d live beacon(s): %s",
            len(self._beacons),
            [beacon.context for beacon in self._beacons.values()],
        )
        await self._drained.wait()
        logger.info("All beacons released")

    def _release(self, beacon_id: int) -> None:
        self._beacons.pop(beacon_id, None)
        logger.debug("Beacon %d released (%d live)", beacon_id, len(self._beacons))
        if not self._beacons:
            self._drained.set()
