# tests/conftest.py
"""Shared pytest fixtures for all test modules.

Provides common fixtures for:
- Fake signal source, terminator and watchdog timers
- Watchtower factory isolated from the global Prometheus registry
- Singleton reset
"""

from collections.abc import Callable, Generator
from typing import Any

import pytest
from prometheus_client import CollectorRegistry

from tests.fakes import FakeSignalSource, FakeTerminator, FakeTimers
from watchtower import Settings, Watchtower


@pytest.fixture
def signal_source() -> FakeSignalSource:
    return FakeSignalSource()


@pytest.fixture
def terminator() -> FakeTerminator:
    return FakeTerminator()


@pytest.fixture
def watchdog_timers() -> FakeTimers:
    return FakeTimers()


@pytest.fixture
def make_watchtower(
    signal_source: FakeSignalSource,
    terminator: FakeTerminator,
    watchdog_timers: FakeTimers,
) -> Callable[..., Watchtower]:
    """Build Watchtowers wired to the fakes.

    Keyword arguments are passed to Settings.

    Returns:
        Factory creating a Watchtower per call.
    """

    def factory(**settings: Any) -> Watchtower:
        return Watchtower(
            Settings(**settings),
            signal_source=signal_source,
            terminate=terminator,
            watchdog_timers=watchdog_timers,
            metrics_registry=CollectorRegistry(),
        )

    return factory


@pytest.fixture
def reset_watchtower_singleton() -> Generator[None, None, None]:
    """Reset the global Watchtower before and after test.

    This fixture ensures each test gets a fresh Watchtower instance.
    """
    from watchtower.core.lifecycle import reset_watchtower

    reset_watchtower()

    yield

    reset_watchtower()
