import pytest
from httpx import AsyncClient

from conftest import auth


@pytest.mark.asyncio
async def test_request_id_is_echoed_or_generated(client: AsyncClient):
    echoed = await client.get("/", headers={"X-Request-ID": "req-123"})
    assert echoed.status_code == 200
    assert echoed.headers["X-Request-ID"] == "req-123"

    generated = await client.get("/")
    assert len(generated.headers["X-Request-ID"]) == 32


@pytest.mark.asyncio
async def test_metrics_endpoint_exposes_counters(client: AsyncClient, buyer_token: str):
    await client.get("/api/v1/cart", headers=auth(buyer_token))

    resp = await client.get("/metrics")
    assert resp.status_code == 200
    assert "marketplace_http_requests_total" in resp.text
    assert "marketplace_auth_login_attempts_total" in resp.text


@pytest.mark.asyncio
async def test_unknown_route_uses_error_body(client: AsyncClient):
    resp = await client.get("/api/v1/nowhere")
    assert resp.status_code == 404
    body = resp.json()
    assert body["success"] is False
    assert body["error"] == "NOT_FOUND"
