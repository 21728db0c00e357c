# watchtower/utils/logging.py
"""JSON log output tagged with the current lifecycle phase.

The shutdown sequence records which phase it is in through a ContextVar,
so every record logged while draining beacons or running shutdown tasks
carries that phase, including records from user shutdown tasks.
"""

import json
import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, TextIO

# Shutdown phase of the current async context, e.g. "drain-beacons"
phase_var: ContextVar[str] = ContextVar("lifecycle_phase", default="")

# LogRecord attributes that are never copied into the "extra" payload
_RESERVED_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__
) | {"message", "asctime", "taskName"}


def set_phase(phase: str) -> None:
    """Set the lifecycle phase for the current context."""
    phase_var.set(phase)


def get_phase() -> str:
    """Get the lifecycle phase for the current context.

    Returns:
        Current phase, or empty string outside the shutdown sequence.
    """
    return phase_var.get()


@contextmanager
def phase(name: str) -> Iterator[None]:
    """Tag records logged inside the block with ``name``, then restore."""
    token = phase_var.set(name)
    try:
        yield
    finally:
        phase_var.reset(token)


class StructuredFormatter(logging.Formatter):
    """One JSON object per record.

    Keys are timestamp, level, logger, message, and, when present, phase,
    exception and any ``extra=`` fields passed to the logging call.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        current_phase = get_phase()
        if current_phase:
            log_data["phase"] = current_phase

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def configure_structured_logging(
    level: int = logging.INFO, stream: TextIO | None = None
) -> logging.Handler:
    """Route root logging through a StructuredFormatter.

    Calling it again replaces the handler installed by the previous call
    instead of stacking a second one.

    Args:
        level: Root logging level (default: logging.INFO).
        stream: Output stream, defaults to stderr.

    Returns:
        The installed handler.
    """
    for existing in list(logging.root.handlers):
        if isinstance(existing.formatter, StructuredFormatter):
            logging.root.removeHandler(existing)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(StructuredFormatter())
    logging.root.addHandler(handler)
    logging.root.setLevel(level)
    return handler


def flush_logging() -> None:
    """Flush every root handler; used right before a hard process exit."""
    for handler in logging.root.handlers:
        try:
            handler.flush()
        except (OSError, ValueError):
            # Stream already closed
            continue
