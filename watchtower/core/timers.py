# watchtower/core/timers.py
"""Cancelable delayed callbacks.

Two schedulers are provided:

- LoopTimers schedules on the running asyncio loop. A pending loop timer
  never keeps ``asyncio.run`` alive; when the main coroutine returns the
  timer is simply dropped.
- ThreadTimers schedules on daemon threads. A daemon timer never keeps the
  interpreter alive, but still fires when something else does, which is
  what the post-shutdown watchdog needs.
"""

import asyncio
import threading
from collections.abc import Callable
from typing import Protocol


class Timer(Protocol):
    """Handle to a scheduled callback."""

    def cancel(self) -> None: ...


class TimerService(Protocol):
    """Schedules ``callback`` after ``delay`` seconds."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> Timer: ...


class LoopTimers:
    """TimerService backed by ``loop.call_later`` on the running loop."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> Timer:
        return asyncio.get_running_loop().call_later(delay, callback)


class ThreadTimers:
    """TimerService backed by daemon ``threading.Timer`` instances."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> Timer:
        timer = threading.Timer(delay, callback)
        timer.daemon = True
        timer.start()
        return timer
