# watchtower/config.py
"""Lifecycle configuration using pydantic-settings.

Provides the Settings class resolved once when a Watchtower is built.
All durations are in seconds; ``None`` disables the corresponding delay
or deadline.
"""

import signal

from pydantic import NonNegativeFloat, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# SIGHUP does not exist on Windows
DEFAULT_TERMINATION_SIGNALS = tuple(
    name for name in ("SIGTERM", "SIGINT", "SIGHUP") if hasattr(signal, name)
)


class Settings(BaseSettings):
    """Lifecycle settings loaded from keyword arguments and environment.

    Environment variables use the ``WATCHTOWER_`` prefix, e.g.
    ``WATCHTOWER_SHUTDOWN_DEADLINE=15``. The value ``disabled`` maps to
    ``None`` for the optional durations.
    """

    # Sleep before marking unhealthy, so load balancers stop routing first
    shutdown_delay: NonNegativeFloat | None = None

    # Hard limit on the whole shutdown sequence once unhealthy
    shutdown_deadline: NonNegativeFloat | None = 10.0

    # Hard limit on the cleanup phase alone
    shutdown_tasks_deadline: NonNegativeFloat | None = None

    # Time allowed for a single health evaluation
    health_probe_deadline: NonNegativeFloat | None = 1.0

    termination_signals: tuple[str, ...] = DEFAULT_TERMINATION_SIGNALS

    # Grace window before active connections are force-closed
    connection_drain_grace: NonNegativeFloat = 1.0

    model_config = SettingsConfigDict(
        env_prefix="WATCHTOWER_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_parse_none_str="disabled",
        extra="ignore",
        case_sensitive=False,
        frozen=True,
    )

    @field_validator("termination_signals")
    @classmethod
    def _validate_signals(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        """Normalize signal names and reject unknown ones.

        Args:
            value: Signal names such as ``SIGTERM`` or ``term``.

        Returns:
            Upper-cased, de-duplicated ``SIG*`` names in the order given.

        Raises:
            ValueError: If a name is not a signal on this platform.
        """
        names: list[str] = []
        for raw in value:
            name = raw.strip().upper()
            if not name.startswith("SIG"):
                name = f"SIG{name}"
            if name not in signal.Signals.__members__:
                raise ValueError(f"Unknown termination signal: {raw}")
            if name not in names:
                names.append(name)
        return tuple(names)
