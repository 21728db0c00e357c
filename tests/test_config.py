# tests/test_config.py
"""Tests for lifecycle settings."""

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from watchtower.config import Settings


class TestSettings:
    """Tests for Settings."""

    def test_defaults(self):
        """Test default values when nothing is configured."""
        with patch.dict(os.environ, {}, clear=True):
            settings = Settings(_env_file=None)

        assert settings.shutdown_delay is None
        assert settings.shutdown_deadline == 10.0
        assert settings.shutdown_tasks_deadline is None
        assert settings.health_probe_deadline == 1.0
        assert "SIGTERM" in settings.termination_signals
        assert settings.connection_drain_grace == 1.0

    def test_environment_overrides(self):
        """Test WATCHTOWER_* environment variables."""
        env = {
            "WATCHTOWER_SHUTDOWN_DELAY": "5",
            "WATCHTOWER_SHUTDOWN_DEADLINE": "disabled",
            "WATCHTOWER_TERMINATION_SIGNALS": '["term", "SIGINT"]',
        }
        with patch.dict(os.environ, env, clear=True):
            settings = Settings(_env_file=None)

        assert settings.shutdown_delay == 5.0
        assert settings.shutdown_deadline is None
        assert settings.termination_signals == ("SIGTERM", "SIGINT")

    def test_negative_duration_rejected(self):
        """Test that durations must be non-negative."""
        with pytest.raises(ValidationError):
            Settings(shutdown_deadline=-1)

    def test_unknown_signal_rejected(self):
        """Test that unknown signal names fail validation."""
        with pytest.raises(ValidationError):
            Settings(termination_signals=("SIGNOPE",))

    def test_signals_deduplicated(self):
        """Test that duplicate names collapse."""
        settings = Settings(termination_signals=("SIGTERM", "sigterm", "TERM"))

        assert settings.termination_signals == ("SIGTERM",)

    def test_frozen(self):
        """Test that settings cannot change after construction."""
        settings = Settings()

        with pytest.raises(ValidationError):
            settings.shutdown_delay = 3
