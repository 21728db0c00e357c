"""Logging and metrics helpers for the lifecycle orchestrator."""

from watchtower.utils.logging import (
    StructuredFormatter,
    configure_structured_logging,
    flush_logging,
    get_phase,
    phase,
    set_phase,
)
from watchtower.utils.metrics import StartupMetrics

__all__ = [
    "StartupMetrics",
    "StructuredFormatter",
    "configure_structured_logging",
    "flush_logging",
    "get_phase",
    "phase",
    "set_phase",
]
