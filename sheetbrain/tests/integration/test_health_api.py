from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

from sheetbrain.apps.api.main import create_app
from sheetbrain.tests.utils.fakes import build_test_services


def _client(services) -> AsyncClient:
    app = create_app(services=services)
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
async def test_health_echoes_request_id(session_factory) -> None:
    async with _client(build_test_services(session_factory)) as client:
        echoed = await client.get("/health", headers={"X-Request-Id": "req-123"})
        generated = await client.get("/health")

    assert echoed.status_code == 200
    assert echoed.json() == {"status": "ok"}
    assert echoed.headers["X-Request-Id"] == "req-123"
    assert generated.headers["X-Request-Id"]


@pytest.mark.asyncio
async def test_ops_metrics_reports_requests_and_counters(session_factory) -> None:
    async with _client(build_test_services(session_factory)) as client:
        await client.get("/health")
        await client.post("/api/audit", json={})
        response = await client.get("/ops/metrics")

    body = response.json()
    assert response.status_code == 200
    assert body["window_s"] == 300
    assert body["availability"] == 100.0
    assert body["audit_p95_latency_ms"] is not None
    assert isinstance(body["counters"], dict)
