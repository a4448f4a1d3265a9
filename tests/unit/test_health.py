"""
Tests for health check endpoints.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from carsuggester.config import settings
from carsuggester.features.analytics import build_analytics_context
from carsuggester.main import app

client = TestClient(app)


@pytest.fixture
def app_state(fake_store):
    db_pool = MagicMock()
    db_pool.health_check = AsyncMock(
        return_value={"healthy": True, "pool_stats": {"pool_size": 2}}
    )
    app.state.db_pool = db_pool
    app.state.analytics = build_analytics_context(fake_store, settings)
    yield app.state
    del app.state.db_pool
    del app.state.analytics


def test_healthz_endpoint():
    """Test the basic health check endpoint."""
    response = client.get("/healthz")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["service"] == "carsuggester-analytics"


def test_readyz_all_services_healthy(app_state):
    """Sync disabled means an idle buffer still counts as ready."""
    with (
        patch("carsuggester.routes.health.settings.SUPABASE_DB_URL", "postgresql://test"),
        patch("carsuggester.routes.health.settings.ANALYTICS_SYNC_ENABLED", False),
    ):
        response = client.get("/readyz")

    assert response.status_code == 200
    data = response.json()
    assert data["overall_ok"] is True
    checks = data["checks"]
    assert checks["database"]["ok"] is True
    assert checks["database"]["pool_stats"] == {"pool_size": 2}
    assert isinstance(checks["database"]["latency_ms"], (int, float))
    assert checks["analytics"]["ok"] is True
    assert checks["analytics"]["pending"] == 0
    assert checks["configuration"]["ok"] is True


def test_readyz_database_unhealthy(app_state):
    app_state.db_pool.health_check = AsyncMock(
        return_value={"healthy": False, "error": "Connection refused"}
    )
    with (
        patch("carsuggester.routes.health.settings.SUPABASE_DB_URL", "postgresql://test"),
        patch("carsuggester.routes.health.settings.ANALYTICS_SYNC_ENABLED", False),
    ):
        response = client.get("/readyz")

    data = response.json()
    assert response.status_code == 200
    assert data["overall_ok"] is False
    assert data["checks"]["database"]["ok"] is False
    assert data["checks"]["database"]["error"] == "Connection refused"


def test_readyz_stopped_sync_loop_is_not_ready(app_state):
    with (
        patch("carsuggester.routes.health.settings.SUPABASE_DB_URL", "postgresql://test"),
        patch("carsuggester.routes.health.settings.ANALYTICS_SYNC_ENABLED", True),
    ):
        response = client.get("/readyz")

    data = response.json()
    assert data["overall_ok"] is False
    assert data["checks"]["analytics"]["ok"] is False
    assert data["checks"]["analytics"]["is_running"] is False


def test_readyz_missing_database_url(app_state):
    with (
        patch("carsuggester.routes.health.settings.SUPABASE_DB_URL", ""),
        patch("carsuggester.routes.health.settings.ANALYTICS_SYNC_ENABLED", False),
    ):
        response = client.get("/readyz")

    data = response.json()
    assert data["overall_ok"] is False
    assert "SUPABASE_DB_URL not set" in data["checks"]["configuration"]["issues"]


def test_readyz_without_initialized_services():
    response = client.get("/readyz")

    data = response.json()
    assert response.status_code == 200
    assert data["overall_ok"] is False
    assert data["checks"]["database"]["error"] == "Pool not initialized"
    assert data["checks"]["analytics"]["ok"] is False
