# watchtower/core/state.py
"""Forward-only lifecycle state."""

import logging
from enum import IntEnum

logger = logging.getLogger(__name__)


class LifecycleState(IntEnum):
    """Process lifecycle states, ordered along the only allowed path."""

    STARTING = 0
    READY = 1
    SHUTTING_DOWN = 2
    TERMINATED = 3


class StateMachine:
    """Holds the current LifecycleState and refuses to move backwards."""

    def __init__(self) -> None:
        self._state = LifecycleState.STARTING

    @property
    def state(self) -> LifecycleState:
        return self._state

    def advance(self, target: LifecycleState) -> bool:
        """Move to ``target`` if it lies ahead of the current state.

        Returns:
            True if the state changed, False if ``target`` was not ahead.
        """
        if target <= self._state:
            return False
        logger.info("Lifecycle state: %s -> %s", self._state.name, target.name)
        self._state = target
        return True

    @property
    def is_shutting_down(self) -> bool:
        return self._state >= LifecycleState.SHUTTING_DOWN
