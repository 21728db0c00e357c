# watchtower/core/signals.py
"""Termination signal sources.

The controller never touches process-wide signal state directly; it is
handed a SignalSource and subscribes once at construction. Tests swap in
a fake source and deliver signals by hand.
"""

import asyncio
import logging
import signal
from collections.abc import Callable, Iterable
from typing import Protocol

logger = logging.getLogger(__name__)

SignalCallback = Callable[[str], None]
Unsubscribe = Callable[[], None]


class SignalSource(Protocol):
    """Delivers named termination signals to a callback."""

    def subscribe(self, names: Iterable[str], callback: SignalCallback) -> Unsubscribe:
        """Start delivering signals; the returned callable stops delivery."""
        ...


class ProcessSignalSource:
    """SignalSource backed by the real process signal handlers.

    Uses ``loop.add_signal_handler`` when a loop is running in the main
    thread. Outside a loop, or on platforms without loop signal support,
    it falls back to ``signal.signal`` and restores the previous handlers
    on unsubscribe.
    """

    def subscribe(self, names: Iterable[str], callback: SignalCallback) -> Unsubscribe:
        try:
            loop: asyncio.AbstractEventLoop | None = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        loop_signals: list[signal.Signals] = []
        previous: dict[signal.Signals, object] = {}

        for name in names:
            sig = signal.Signals[name]
            if loop is not None:
                try:
                    loop.add_signal_handler(sig, callback, name)
                    loop_signals.append(sig)
                    continue
                except (NotImplementedError, RuntimeError):
                    pass
            previous[sig] = signal.signal(
                sig, lambda _signum, _frame, name=name: callback(name)
            )

        logger.debug("Subscribed to termination signals: %s", ", ".join(names))

        def unsubscribe() -> None:
            for sig in loop_signals:
                if loop is not None and not loop.is_closed():
                    loop.remove_signal_handler(sig)
            for sig, handler in previous.items():
                signal.signal(sig, handler)  # type: ignore[arg-type]
            loop_signals.clear()
            previous.clear()

        return unsubscribe
