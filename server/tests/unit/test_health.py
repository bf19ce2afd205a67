"""Unit tests for health endpoints."""

import pytest


@pytest.mark.asyncio
async def test_health_check(test_client):
    """Test the health check endpoint."""
    response = await test_client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["service"] == "travelcore-api"
    assert "version" in data


@pytest.mark.asyncio
async def test_ready_check(test_client):
    """Test the readiness check endpoint."""
    response = await test_client.get("/ready")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ready"
    assert data["checks"]["realtime_connections"] == 0
    assert data["checks"]["email"] == "enabled"
    assert set(data["checks"]["workers"]) == {"itinerary_reminder", "notification_retention"}


@pytest.mark.asyncio
async def test_info_endpoint(test_client):
    """Test the service info endpoint."""
    response = await test_client.get("/info")
    assert response.status_code == 200
    data = response.json()
    assert data["endpoints"]["websocket"] == "/ws"
    assert data["features"]["realtime"] is True


@pytest.mark.asyncio
async def test_health_ping(test_client):
    response = await test_client.post("/v1/health/ping")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["version"] == "1.0.0"
    assert data["realtime_connections"] == 0
    assert data["email_enabled"] is True
