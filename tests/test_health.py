"""Tests for health and readiness endpoints."""

from unittest.mock import AsyncMock

import pytest

from whatsdesk.api.main import SERVICE_NAME, VERSION


@pytest.mark.asyncio
async def test_health_reports_environment(client):
    response = await client.get("/health")
    assert response.status_code == 200

    data = response.json()
    assert data["status"] == "healthy"
    assert data["environment"]
    assert "timestamp" in data


@pytest.mark.asyncio
async def test_liveness_check(client):
    response = await client.get("/health/live")
    assert response.json() == {"status": "alive"}


@pytest.mark.asyncio
async def test_ready_with_reachable_storage(client):
    response = await client.get("/health/ready")
    assert response.status_code == 200

    data = response.json()
    assert data["status"] == "ready"
    assert data["checks"] == {"storage": True}
    assert data["pending_events"] == 0


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "health_check",
    [AsyncMock(return_value=False), AsyncMock(side_effect=ConnectionError("datastore unreachable"))],
)
async def test_degraded_when_storage_is_down(client, services, monkeypatch, health_check):
    monkeypatch.setattr(services.storage, "health_check", health_check)

    response = await client.get("/health/ready")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "degraded"
    assert data["checks"] == {"storage": False}


@pytest.mark.asyncio
async def test_root_endpoint(client):
    response = await client.get("/")

    assert response.json() == {"service": SERVICE_NAME, "version": VERSION, "status": "running"}
