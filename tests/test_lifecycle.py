# tests/test_lifecycle.py
"""Tests for the Watchtower lifecycle controller."""

import asyncio
import signal

import pytest
from prometheus_client import REGISTRY

from tests.fakes import EventRecorder
from watchtower import (
    LifecycleState,
    LogicalMisuseError,
    SignalWithoutLoop,
    StartupTaskFailed,
)
from watchtower.core.lifecycle import get_watchtower, reset_watchtower
from watchtower.utils.metrics import StartupMetrics


class TestStartup:
    """Tests for readiness through the controller."""

    @pytest.mark.asyncio
    async def test_ready_without_tasks_fires_before_return(self, make_watchtower):
        """Test that ready fires inside signal_ready() and health follows."""
        watchtower = make_watchtower()
        recorder = EventRecorder(watchtower)

        watchtower.signal_ready()

        assert recorder.names == ["ready", "health_state_change"]
        assert recorder.args_of("health_state_change") == [(True,)]
        assert watchtower.is_ready()
        assert watchtower.state is LifecycleState.READY
        assert await watchtower.is_healthy()

    @pytest.mark.asyncio
    async def test_not_healthy_while_starting(self, make_watchtower):
        """Test that health is false before readiness."""
        watchtower = make_watchtower()
        watchtower.signal_healthy()

        assert not watchtower.is_ready()
        assert not await watchtower.is_healthy()

    @pytest.mark.asyncio
    async def test_early_signal_healthy_does_not_precede_ready(self, make_watchtower):
        """Test that ready is always the first event, even after an early signal_healthy()."""
        watchtower = make_watchtower()
        recorder = EventRecorder(watchtower)

        watchtower.signal_healthy()
        assert recorder.names == []

        watchtower.signal_ready()

        assert recorder.names[0] == "ready"
        assert recorder.names == ["ready", "health_state_change"]
        assert await watchtower.is_healthy()

    @pytest.mark.asyncio
    async def test_startup_failure_terminates(self, make_watchtower, terminator):
        """Test: 2 tasks resolve at 10ms, 1 rejects at 20ms => terminated."""
        watchtower = make_watchtower()
        recorder = EventRecorder(watchtower)

        async def ok() -> None:
            await asyncio.sleep(0.01)

        async def broken() -> None:
            await asyncio.sleep(0.02)
            raise ConnectionRefusedError("database unreachable")

        watchtower.queue_startup_task(ok())
        watchtower.queue_startup_task(ok())
        watchtower.queue_startup_task(broken())
        watchtower.signal_ready()

        await asyncio.wait_for(terminator.called.wait(), 1)

        assert terminator.codes == [1]
        assert "ready" not in recorder.names
        errors = recorder.args_of("error")
        assert len(errors) == 1
        fault = errors[0][0]
        assert isinstance(fault, StartupTaskFailed)
        assert str(fault) == "startup task failed"
        assert isinstance(fault.__cause__, ConnectionRefusedError)
        assert not await watchtower.wait_ready()

    @pytest.mark.asyncio
    async def test_queue_after_ready_raises(self, make_watchtower):
        """Test that queuing after readiness is rejected."""
        watchtower = make_watchtower()
        watchtower.signal_ready()

        coro = asyncio.sleep(0)
        with pytest.raises(LogicalMisuseError):
            watchtower.queue_startup_task(coro)
        coro.close()

    @pytest.mark.asyncio
    async def test_startup_duration_recorded(self, make_watchtower):
        """Test that the startup gauge is set once ready."""
        watchtower = make_watchtower()

        watchtower.queue_startup_task(asyncio.sleep(0.01))
        watchtower.signal_ready()
        assert await watchtower.wait_ready()

        assert watchtower.metrics.duration_ms is not None
        assert watchtower.metrics.duration_ms > 0
        samples = watchtower.metrics.startup_duration.collect()[0].samples
        assert samples[0].value == watchtower.metrics.duration_ms


class TestRegistrationWindows:
    """Tests for registration after shutdown begins."""

    @pytest.mark.asyncio
    async def test_beacons_and_tasks_rejected_after_shutdown(self, make_watchtower):
        """Test that beacons and shutdown tasks are rejected once shutting down."""
        watchtower = make_watchtower()
        watchtower.signal_ready()

        await watchtower.shutdown()

        with pytest.raises(LogicalMisuseError):
            watchtower.create_beacon()
        with pytest.raises(LogicalMisuseError):
            watchtower.register_shutdown_task(lambda: None)

    @pytest.mark.asyncio
    async def test_probes_accepted_any_time(self, make_watchtower):
        """Test that health probes can be registered after shutdown."""
        watchtower = make_watchtower()
        watchtower.signal_ready()
        await watchtower.shutdown()

        watchtower.register_health_probe(lambda: True)
        assert not await watchtower.is_healthy()


class TestSignals:
    """Tests for termination signal wiring."""

    @pytest.mark.asyncio
    async def test_subscribes_to_configured_signals(self, make_watchtower, signal_source):
        """Test that the configured signal names are subscribed."""
        make_watchtower(termination_signals=("SIGTERM", "SIGINT"))

        assert signal_source.names == ("SIGTERM", "SIGINT")

    @pytest.mark.asyncio
    async def test_signal_triggers_shutdown_with_reason(self, make_watchtower, signal_source):
        """Test that a delivered signal shuts down with its name as reason."""
        watchtower = make_watchtower()
        recorder = EventRecorder(watchtower)
        watchtower.signal_ready()

        signal_source.deliver("SIGTERM")
        await asyncio.wait_for(watchtower.wait_closed(), 1)

        assert recorder.args_of("shutdown") == [("SIGTERM",)]
        assert watchtower.shutdown_reason == "SIGTERM"
        assert signal_source.unsubscribed

    def test_signal_without_running_loop_terminates(
        self, make_watchtower, signal_source, terminator
    ):
        """Test that a signal arriving with no event loop still ends the process."""
        watchtower = make_watchtower()
        recorder = EventRecorder(watchtower)

        signal_source.deliver("SIGTERM")

        assert terminator.codes == [1]
        (fault,) = recorder.args_of("error")[0]
        assert isinstance(fault, SignalWithoutLoop)
        assert fault.signal_name == "SIGTERM"
        assert not watchtower.is_shutting_down()


class TestSingleton:
    """Tests for the global Watchtower helpers."""

    def test_get_watchtower_returns_same_instance(self, reset_watchtower_singleton):
        """Test singleton behavior and reset on the global metrics registry."""
        first = get_watchtower()
        assert get_watchtower() is first

        reset_watchtower()
        second = get_watchtower()
        assert second is not first

        reset_watchtower()
        assert get_watchtower() is not second

    def test_reset_releases_gauge_and_signals(self, reset_watchtower_singleton):
        """Test that reset frees the gauge name and restores signal handlers."""
        previous = signal.getsignal(signal.SIGTERM)
        watchtower = get_watchtower()
        assert signal.getsignal(signal.SIGTERM) != previous

        reset_watchtower()

        assert signal.getsignal(signal.SIGTERM) == previous
        StartupMetrics(REGISTRY).close()
        watchtower.metrics.close()
