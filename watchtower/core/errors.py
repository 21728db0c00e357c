# watchtower/core/errors.py
"""Fault taxonomy for the lifecycle orchestrator.

Misuse errors are raised synchronously to the caller. Every other fault
is reported through the ``error`` lifecycle event; the fatal ones are
followed by process termination.
"""


class WatchtowerError(Exception):
    """Base class for every fault raised or reported by watchtower."""

    fatal: bool = False


class LogicalMisuseError(WatchtowerError):
    """A registration call arrived after its registration window closed."""


class TaskFailure(WatchtowerError):
    """A startup task, shutdown task or health probe failed."""


class StartupTaskFailed(TaskFailure):
    """A queued startup task raised; the service cannot safely run."""

    fatal = True


class ShutdownTaskFailed(TaskFailure):
    """A shutdown task raised; sibling tasks still run."""


class HealthProbeFailed(TaskFailure):
    """A health probe raised during evaluation."""


class HealthProbeTimeout(WatchtowerError):
    """Health probes did not settle within the probe deadline."""


class DeadlineExceeded(WatchtowerError):
    """A shutdown phase did not finish before its deadline."""

    fatal = True

    def __init__(self, phase: str, deadline: float) -> None:
        super().__init__(f"{phase} did not finish within {deadline:g}s")
        self.phase = phase
        self.deadline = deadline


class ResidualActivityFault(WatchtowerError):
    """The process stayed alive after the shutdown sequence completed."""

    fatal = True


class SignalWithoutLoop(WatchtowerError):
    """A termination signal arrived while no event loop could run the shutdown."""

    fatal = True

    def __init__(self, signal_name: str) -> None:
        super().__init__(f"{signal_name} received with no running event loop")
        self.signal_name = signal_name
