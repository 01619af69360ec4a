"""
Tests for health check endpoints.
"""
from httpx import AsyncClient


async def test_root_endpoint(async_client: AsyncClient):
    """Test the root endpoint returns API info."""
    response = await async_client.get("/")

    assert response.status_code == 200
    data = response.json()
    assert data["name"] == "OrderHub Sync Engine"
    assert "version" in data
    assert data["status"] == "running"


async def test_health_check(async_client: AsyncClient):
    response = await async_client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert "timestamp" in data


async def test_liveness_probe(async_client: AsyncClient):
    response = await async_client.get("/health/live")

    assert response.status_code == 200
    assert response.json()["status"] == "alive"


async def test_readiness_probe(async_client: AsyncClient):
    """Readiness runs a query through the overridden session."""
    response = await async_client.get("/health/ready")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ready"
    assert data["checks"]["database"] == "connected"


async def test_metrics_lists_registered_integrations(async_client: AsyncClient):
    response = await async_client.get("/metrics")

    assert response.status_code == 200
    assert response.json()["integrations"] == ["shopify", "ups", "usps", "woocommerce"]


async def test_request_id_is_echoed(async_client: AsyncClient):
    response = await async_client.get("/health", headers={"X-Request-ID": "req-123"})

    assert response.headers["x-request-id"] == "req-123"
