# tests/test_api.py
"""Tests for the FastAPI probe endpoints."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from watchtower.interfaces.api.probes import create_probe_router


@pytest.fixture
def app_and_watchtower(make_watchtower):
    """Create an app with probe routes and its Watchtower."""
    watchtower = make_watchtower()
    app = FastAPI()
    app.include_router(create_probe_router(watchtower))
    return app, watchtower


class TestProbeEndpoints:
    """Tests for /health and /ready."""

    def test_starting_service_is_unavailable(self, app_and_watchtower):
        """Test that both probes fail before readiness."""
        app, _ = app_and_watchtower
        client = TestClient(app)

        health = client.get("/health")
        ready = client.get("/ready")

        assert health.status_code == 503
        assert health.json() == {"status": "unhealthy", "state": "starting"}
        assert ready.status_code == 503
        assert ready.json() == {"ready": False, "shutting_down": False}

    def test_ready_service_is_available(self, app_and_watchtower):
        """Test that both probes pass once ready."""
        app, watchtower = app_and_watchtower
        watchtower.signal_ready()
        client = TestClient(app)

        health = client.get("/health")
        ready = client.get("/ready")

        assert health.status_code == 200
        assert health.json() == {"status": "healthy", "state": "ready"}
        assert ready.status_code == 200
        assert ready.json()["ready"] is True

    def test_failing_probe_reports_unhealthy(self, app_and_watchtower):
        """Test that a failing health probe turns /health into 503."""
        app, watchtower = app_and_watchtower
        watchtower.register_health_probe(lambda: False)
        watchtower.signal_ready()
        client = TestClient(app)

        response = client.get("/health")

        assert response.status_code == 503
        assert response.json()["status"] == "unhealthy"
        assert client.get("/ready").status_code == 200

    def test_prefix(self, make_watchtower):
        """Test mounting under a prefix."""
        watchtower = make_watchtower()
        watchtower.signal_ready()
        app = FastAPI()
        app.include_router(create_probe_router(watchtower, prefix="/_probe"))
        client = TestClient(app)

        assert client.get("/_probe/ready").status_code == 200
        assert client.get("/ready").status_code == 404
