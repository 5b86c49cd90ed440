from __future__ import annotations

"""
StreamVault — Sliding-Window Rate Limiting
==========================================

Highlights
----------
- **Device aware** keying: ``device:<fingerprint>`` when a valid device id is
  presented, else ``ip:<addr>``.
- **Sliding window** of request timestamps per key, pruned lazily.
- **Escalating block**: once a key reaches the threshold inside the window it
  is blocked for ``block_multiplier × window`` (longer than the window itself).
  While blocked, requests are rejected immediately without touching the window.
- **Explicit state**: counters live in a `RateLimitState` created at startup
  and injected into the limiter; each key has its own ``asyncio.Lock`` so
  concurrent requests from one client can't undercount.

Known limitation
----------------
State is per process. Multi-instance deployments under-enforce the limit.

Usage
-----
    state = RateLimitState()
    limiter = SlidingWindowLimiter(state, window_seconds=900, max_requests=1000)
    decision = await limiter.hit("device:ab12...")
    if not decision.allowed:
        raise RateLimited(decision.retry_after)
"""

import asyncio
import math
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, Optional

from loguru import logger
from slowapi.util import get_remote_address
from starlette.requests import Request

from streamvault.core.exceptions import RateLimited


# ──────────────────────────────────────────────────────────────
# 🧱 State
# ──────────────────────────────────────────────────────────────
@dataclass
class RateWindow:
    timestamps: Deque[float] = field(default_factory=deque)
    blocked_until: float = 0.0


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    retry_after: int = 0


class RateLimitState:
    """Process-lifetime map of client key → `RateWindow`, with per-key locks."""

    def __init__(self) -> None:
        self._windows: Dict[str, RateWindow] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def __len__(self) -> int:
        return len(self._windows)

    def lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks.setdefault(key, asyncio.Lock())
        return lock

    def window_for(self, key: str) -> RateWindow:
        window = self._windows.get(key)
        if window is None:
            window = self._windows.setdefault(key, RateWindow())
        return window

    def peek(self, key: str) -> Optional[RateWindow]:
        return self._windows.get(key)

    def sweep(self, now: float, window_seconds: float) -> int:
        """Drop idle, unblocked keys whose timestamps have all aged out."""
        removed = 0
        for key in list(self._windows):
            win = self._windows[key]
            lock = self._locks.get(key)
            if lock is not None and lock.locked():
                continue
            if win.blocked_until > now:
                continue
            if win.timestamps and now - win.timestamps[-1] < window_seconds:
                continue
            self._windows.pop(key, None)
            self._locks.pop(key, None)
            removed += 1
        return removed


# ──────────────────────────────────────────────────────────────
# 🚦 Limiter
# ──────────────────────────────────────────────────────────────
class SlidingWindowLimiter:
    """Sliding-window limiter with escalating blocks (see module docs)."""

    def __init__(
        self,
        state: RateLimitState,
        *,
        window_seconds: float,
        max_requests: int,
        block_multiplier: float = 2.0,
        clock: Callable[[], float] = time.monotonic,
        sweep_every: int = 1024,
    ) -> None:
        if window_seconds <= 0 or max_requests < 1:
            raise ValueError("window_seconds must be > 0 and max_requests >= 1")
        if block_multiplier <= 1.0:
            raise ValueError("block_multiplier must be > 1 so blocks outlast the window")
        self.state = state
        self.window_seconds = float(window_seconds)
        self.max_requests = int(max_requests)
        self.block_seconds = self.window_seconds * float(block_multiplier)
        self._clock = clock
        self._sweep_every = max(1, int(sweep_every))
        self._hits = 0

    async def hit(self, key: str) -> RateDecision:
        """Record one request for ``key`` and decide whether it may proceed."""
        async with self.state.lock_for(key):
            now = self._clock()
            win = self.state.window_for(key)

            # ── [Step 1] Already blocked → reject without re-evaluating ──────
            if win.blocked_until > now:
                return RateDecision(False, math.ceil(win.blocked_until - now))
            win.blocked_until = 0.0

            # ── [Step 2] Prune timestamps outside the window ────────────────
            cutoff = now - self.window_seconds
            while win.timestamps and win.timestamps[0] <= cutoff:
                win.timestamps.popleft()

            # ── [Step 3] Threshold reached → escalate to a block ────────────
            if len(win.timestamps) >= self.max_requests:
                win.blocked_until = now + self.block_seconds
                logger.warning(
                    "[RateLimit] blocking key for {}s after {} requests in {}s",
                    int(self.block_seconds), len(win.timestamps), int(self.window_seconds),
                )
                return RateDecision(False, math.ceil(self.block_seconds))

            # ── [Step 4] Record + allow ─────────────────────────────────────
            win.timestamps.append(now)

        self._hits += 1
        if self._hits % self._sweep_every == 0:
            self.state.sweep(self._clock(), self.window_seconds)
        return RateDecision(True)

    async def check(self, key: str) -> None:
        """Like `hit`, but raises `RateLimited` on rejection."""
        decision = await self.hit(key)
        if not decision.allowed:
            raise RateLimited(decision.retry_after)


# ──────────────────────────────────────────────────────────────
# 🧠 Keying
# ──────────────────────────────────────────────────────────────
def client_ip(request: Request) -> str:
    """
    Best-effort client IP:
    1) X-Forwarded-For (first hop)
    2) X-Real-IP
    3) ASGI client.host
    """
    xff = request.headers.get("x-forwarded-for")
    if xff:
        ip = xff.split(",")[0].strip()
        if ip:
            return ip
    xri = request.headers.get("x-real-ip")
    if xri and xri.strip():
        return xri.strip()
    return get_remote_address(request) or "unknown"


def rate_limit_key(request: Request, fingerprint: Optional[str]) -> str:
    """``device:<fingerprint>`` when available, else ``ip:<addr>``."""
    if fingerprint:
        return f"device:{fingerprint}"
    return f"ip:{client_ip(request)}"


def path_is_exempt(path: str, prefixes) -> bool:
    for prefix in prefixes:
        if not prefix:
            continue
        if prefix.endswith("/"):
            if path.startswith(prefix):
                return True
        elif path == prefix or path.startswith(prefix + "/"):
            return True
    return False


__all__ = [
    "RateWindow",
    "RateDecision",
    "RateLimitState",
    "SlidingWindowLimiter",
    "client_ip",
    "rate_limit_key",
    "path_is_exempt",
]
