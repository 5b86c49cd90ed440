# tests/test_api/test_app_meta.py
import uuid

import pytest
from httpx import ASGITransport, AsyncClient

from streamvault.core.limiter import RateLimitState, SlidingWindowLimiter
from streamvault.main import create_app
from tests.fixtures.app import DEVICE_ID


@pytest.mark.anyio
async def test_health_is_plain_liveness(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


@pytest.mark.anyio
async def test_api_responses_carry_security_headers(client):
    resp = await client.get("/api/v1/episodes/nope")
    assert resp.headers["x-content-type-options"] == "nosniff"
    assert resp.headers["x-frame-options"] == "DENY"
    assert "max-age=" in resp.headers["strict-transport-security"]


@pytest.mark.anyio
async def test_request_id_generated_or_echoed(client):
    generated = await client.get("/health")
    assert uuid.UUID(generated.headers["x-request-id"]).version == 4

    rid = str(uuid.uuid4())
    echoed = await client.get("/health", headers={"X-Request-ID": rid})
    assert echoed.headers["x-request-id"] == rid

    replaced = await client.get("/health", headers={"X-Request-ID": "not-a-uuid"})
    assert replaced.headers["x-request-id"] != "not-a-uuid"


@pytest.mark.anyio
async def test_problem_body_carries_request_id(client):
    rid = str(uuid.uuid4())
    resp = await client.get("/api/v1/episodes/nope", headers={"X-Request-ID": rid})
    assert resp.status_code == 404
    assert resp.json()["request_id"] == rid


@pytest.mark.anyio
async def test_metrics_exposed(client):
    resp = await client.get("/metrics")
    assert resp.status_code == 200
    assert "streamvault_ingestions" in resp.text


@pytest.mark.anyio
async def test_rapid_requests_from_one_device_are_limited(services):
    limiter = SlidingWindowLimiter(RateLimitState(), window_seconds=900, max_requests=10)
    app = create_app(services, limiter=limiter)
    headers = {"X-Device-ID": DEVICE_ID}

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        statuses = []
        last = None
        for _ in range(50):
            last = await client.post("/api/v1/playback/token", json={"object_path": "a.m3u8"}, headers=headers)
            statuses.append(last.status_code)
        health = await client.get("/health", headers=headers)

    assert statuses[:10] == [200] * 10
    assert statuses[10:] == [429] * 40
    assert last.json()["kind"] == "RateLimited"
    assert int(last.headers["retry-after"]) > 900
    assert last.json()["retry_after"] == int(last.headers["retry-after"])
    assert health.status_code == 200
    assert app.state.limiter is limiter


@pytest.mark.anyio
async def test_limit_keyed_per_device(services):
    app = create_app(services, limiter=SlidingWindowLimiter(RateLimitState(), window_seconds=60, max_requests=1))
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        first = await client.get("/api/v1/episodes/x", headers={"X-Device-ID": DEVICE_ID})
        second = await client.get("/api/v1/episodes/x", headers={"X-Device-ID": DEVICE_ID})
        other = await client.get("/api/v1/episodes/x", headers={"X-Device-ID": "Pixel8Pro.0042"})

    assert first.status_code == 404
    assert second.status_code == 429
    assert other.status_code == 404
