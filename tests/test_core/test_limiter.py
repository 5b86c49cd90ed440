# tests/test_core/test_limiter.py
import pytest
from starlette.requests import Request

from streamvault.core.exceptions import RateLimited
from streamvault.core.limiter import (
    RateLimitState,
    SlidingWindowLimiter,
    client_ip,
    path_is_exempt,
    rate_limit_key,
)
from tests.fixtures.fakes import FakeClock


def _limiter(clock, *, window=60, max_requests=3, multiplier=2.0, state=None):
    return SlidingWindowLimiter(
        state if state is not None else RateLimitState(),
        window_seconds=window,
        max_requests=max_requests,
        block_multiplier=multiplier,
        clock=clock,
    )


def _request(headers=None, client=("10.0.0.9", 5555)) -> Request:
    raw = [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()]
    return Request({"type": "http", "method": "GET", "path": "/", "headers": raw, "client": client})


@pytest.mark.anyio
async def test_request_after_threshold_is_rejected_then_blocked():
    clock = FakeClock()
    lim = _limiter(clock)

    for _ in range(3):
        assert (await lim.hit("device:a")).allowed

    rejected = await lim.hit("device:a")
    assert not rejected.allowed
    assert rejected.retry_after == 120  # 2 × window

    clock.now += 60
    still = await lim.hit("device:a")
    assert not still.allowed
    assert still.retry_after == 60


@pytest.mark.anyio
async def test_block_expires_after_block_duration():
    clock = FakeClock()
    lim = _limiter(clock)
    for _ in range(4):
        await lim.hit("k")

    clock.now += 120.5
    assert (await lim.hit("k")).allowed


@pytest.mark.anyio
async def test_window_slides_without_blocking():
    clock = FakeClock()
    lim = _limiter(clock)
    for _ in range(3):
        assert (await lim.hit("k")).allowed
        clock.now += 10

    # first timestamp is now older than the window
    clock.now += 31
    assert (await lim.hit("k")).allowed


@pytest.mark.anyio
async def test_keys_are_independent():
    clock = FakeClock()
    lim = _limiter(clock, max_requests=1)
    assert (await lim.hit("ip:1.1.1.1")).allowed
    assert not (await lim.hit("ip:1.1.1.1")).allowed
    assert (await lim.hit("ip:2.2.2.2")).allowed


@pytest.mark.anyio
async def test_fifty_rapid_requests_threshold_ten():
    clock = FakeClock()
    lim = _limiter(clock, window=900, max_requests=10)
    results = [await lim.hit("device:f00d") for _ in range(50)]
    assert all(r.allowed for r in results[:10])
    assert not any(r.allowed for r in results[10:])


@pytest.mark.anyio
async def test_check_raises_rate_limited_with_retry_after():
    clock = FakeClock()
    lim = _limiter(clock, max_requests=1)
    await lim.check("k")
    with pytest.raises(RateLimited) as ei:
        await lim.check("k")
    assert ei.value.retry_after == 120


@pytest.mark.anyio
async def test_sweep_drops_idle_unblocked_keys_only():
    clock = FakeClock()
    state = RateLimitState()
    lim = _limiter(clock, max_requests=1, state=state)
    await lim.hit("idle")
    await lim.hit("blocked")
    await lim.hit("blocked")
    assert len(state) == 2

    clock.now += 61
    removed = state.sweep(clock(), 60)
    assert removed == 1
    assert state.peek("idle") is None
    assert state.peek("blocked") is not None


def test_invalid_configuration_rejected():
    with pytest.raises(ValueError):
        SlidingWindowLimiter(RateLimitState(), window_seconds=0, max_requests=1)
    with pytest.raises(ValueError):
        SlidingWindowLimiter(RateLimitState(), window_seconds=10, max_requests=1, block_multiplier=1.0)


def test_client_ip_prefers_forwarded_headers():
    assert client_ip(_request({"X-Forwarded-For": "203.0.113.7, 10.0.0.1"})) == "203.0.113.7"
    assert client_ip(_request({"X-Real-IP": "198.51.100.3"})) == "198.51.100.3"
    assert client_ip(_request()) == "10.0.0.9"


def test_rate_limit_key_uses_fingerprint_when_present():
    req = _request()
    assert rate_limit_key(req, "abc123") == "device:abc123"
    assert rate_limit_key(req, None) == "ip:10.0.0.9"


@pytest.mark.parametrize(
    "path, exempt",
    [("/health", True), ("/health/live", True), ("/healthz", False), ("/api/v1/episodes/x", False)],
)
def test_path_is_exempt(path, exempt):
    assert path_is_exempt(path, ["/health"]) is exempt
