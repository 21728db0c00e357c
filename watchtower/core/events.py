# watchtower/core/events.py
"""Lifecycle event surface for logging, metrics and other consumers.

Events are delivered synchronously in registration order. A listener
that raises is logged and skipped so consumers can never change the
orchestrator's behavior.
"""

import logging
from collections.abc import Callable
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

Listener = Callable[..., Any]


class LifecycleEvent(str, Enum):
    """Occurrences emitted by a Watchtower, in contract order."""

    READY = "ready"
    HEALTH_STATE_CHANGE = "health_state_change"
    SHUTDOWN = "shutdown"
    CLOSE = "close"
    ERROR = "error"


class EventEmitter:
    """Minimal observer registry keyed by LifecycleEvent."""

    def __init__(self) -> None:
        self._listeners: dict[LifecycleEvent, list[Listener]] = {
            event: [] for event in LifecycleEvent
        }

    def on(self, event: LifecycleEvent | str, listener: Listener) -> None:
        """Subscribe a listener to an event.

        Args:
            event: Event or its string value (e.g. ``"ready"``).
            listener: Callable receiving the event's arguments.
        """
        self._listeners[LifecycleEvent(event)].append(listener)

    def off(self, event: LifecycleEvent | str, listener: Listener) -> None:
        """Unsubscribe a listener; unknown listeners are ignored."""
        listeners = self._listeners[LifecycleEvent(event)]
        if listener in listeners:
            listeners.remove(listener)

    def emit(self, event: LifecycleEvent, *args: Any) -> None:
        """Deliver an event to every current listener."""
        for listener in list(self._listeners[event]):
            try:
                listener(*args)
            except Exception:
                logger.exception("Error in %s event listener", event.value)

    def listener_count(self, event: LifecycleEvent | str) -> int:
        return len(self._listeners[LifecycleEvent(event)])
