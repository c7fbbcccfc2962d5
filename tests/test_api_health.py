"""
Tests for leadcapture/api/health.py and the app factory in leadcapture/main.py.
"""
import pytest
from datetime import datetime
from unittest.mock import AsyncMock, patch
from fastapi import FastAPI
from fastapi.testclient import TestClient

from leadcapture.api.health import health_check, readiness_check
from leadcapture.main import create_app


# ---------------------------------------------------------------------------
# GET /health - basic liveness
# ---------------------------------------------------------------------------


class TestHealthCheck:
    @pytest.mark.asyncio
    async def test_returns_healthy(self):
        result = await health_check()
        assert result["status"] == "healthy"
        assert result["version"] == "1.0.0"
        assert datetime.fromisoformat(result["timestamp"]).tzinfo is not None


# ---------------------------------------------------------------------------
# GET /health/ready - database + generation credentials
# ---------------------------------------------------------------------------


class TestReadinessCheck:
    @pytest.mark.asyncio
    async def test_ready(self):
        mock_db = AsyncMock()
        with patch("leadcapture.api.health.is_generation_configured", return_value=True):
            result = await readiness_check(db=mock_db)

        assert result["status"] == "ready"
        assert result["checks"] == {"database": True, "generation": True}
        mock_db.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_database_down_is_degraded(self):
        mock_db = AsyncMock()
        mock_db.execute = AsyncMock(side_effect=Exception("connection refused"))
        with patch("leadcapture.api.health.is_generation_configured", return_value=True):
            result = await readiness_check(db=mock_db)

        assert result["status"] == "degraded"
        assert result["checks"]["database"] is False

    @pytest.mark.asyncio
    async def test_no_provider_is_degraded(self):
        with patch("leadcapture.api.health.is_generation_configured", return_value=False):
            result = await readiness_check(db=AsyncMock())

        assert result["status"] == "degraded"
        assert result["checks"]["generation"] is False


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


class TestCreateApp:
    def test_routes_registered(self, test_settings):
        with (
            patch("leadcapture.main.get_settings", return_value=test_settings),
            patch("leadcapture.main.configure_structured_logging"),
        ):
            app = create_app()

        assert isinstance(app, FastAPI)
        paths = {route.path for route in app.routes}
        assert "/api/v1/chat/sessions" in paths
        assert "/api/v1/chat/sessions/{session_id}/messages" in paths
        assert "/health" in paths

    def test_correlation_id_echoed(self, test_settings):
        with (
            patch("leadcapture.main.get_settings", return_value=test_settings),
            patch("leadcapture.main.configure_structured_logging"),
        ):
            app = create_app()

        client = TestClient(app)
        resp = client.get("/health", headers={"X-Correlation-ID": "abc-123"})

        assert resp.status_code == 200
        assert resp.headers["X-Correlation-ID"] == "abc-123"

    def test_correlation_id_generated(self, test_settings):
        with (
            patch("leadcapture.main.get_settings", return_value=test_settings),
            patch("leadcapture.main.configure_structured_logging"),
        ):
            app = create_app()

        resp = TestClient(app).get("/health")
        assert resp.headers["X-Correlation-ID"]
