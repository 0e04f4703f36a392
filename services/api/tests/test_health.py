"""
Tests for the health check API router.

Validates the aggregated health endpoint response shape
and service status reporting.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

from fastapi.testclient import TestClient


class TestHealthCheck:
    def test_not_configured_services_are_healthy(self, client: TestClient):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {
            "status": "healthy",
            "services": {"database": "not_configured", "redis": "not_configured"},
        }

    def test_all_backends_up(self, app, client: TestClient):
        app.state.engine = MagicMock()
        app.state.redis_client = MagicMock(health_check=AsyncMock(return_value=True))
        with patch("api.routers.health.check_database_health", AsyncMock(return_value=True)):
            resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["services"] == {"database": "healthy", "redis": "healthy"}

    def test_redis_down_is_degraded(self, app, client: TestClient):
        app.state.redis_client = MagicMock(health_check=AsyncMock(return_value=False))
        resp = client.get("/health")
        assert resp.status_code == 503
        data = resp.json()
        assert data["status"] == "degraded"
        assert data["services"]["redis"] == "unhealthy"

    def test_database_down_is_degraded(self, app, client: TestClient):
        app.state.engine = MagicMock()
        with patch("api.routers.health.check_database_health", AsyncMock(return_value=False)):
            resp = client.get("/health")
        assert resp.status_code == 503
        assert resp.json()["services"]["database"] == "unhealthy"

    def test_health_is_not_rate_limited(self, client: TestClient):
        for _ in range(10):
            assert client.get("/health").status_code == 200
