"""Health, readiness and version endpoints."""

from httpx import AsyncClient


async def test_health(client: AsyncClient) -> None:
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


async def test_ready_without_redis_or_tenants(client: AsyncClient) -> None:
    response = await client.get("/ready")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ready"
    assert data["checks"] == {"redis": "disabled", "tenants": {}}


async def test_ready_lists_connected_tenants(client: AsyncClient) -> None:
    await client.get("/acme/api/v1/course")
    await client.get("/beta/api/v1/course")
    data = (await client.get("/ready")).json()
    assert data["checks"]["tenants"] == {"acme": "ready", "beta": "ready"}


async def test_version(client: AsyncClient) -> None:
    response = await client.get("/version")
    assert response.status_code == 200
    data = response.json()
    assert data["version"] == "0.1.0"
    assert "environment" in data
