# streamvault/middleware/rate_limit.py
from __future__ import annotations

"""
# StreamVault — Rate Limit Middleware (ASGI)

- Runs the sliding-window limiter before routing, so rejected requests never
  reach DeviceGuard, the pipeline, or storage.
- Keys by device fingerprint when `X-Device-ID` is well-formed, else by IP.
- Exempt path prefixes (default `/health`) bypass the limiter entirely.
- Rejections are rendered as problem+json 429 with `retry_after` and a
  `Retry-After` header.
- Pure ASGI middleware (no BaseHTTPMiddleware pitfalls).
"""

from typing import Iterable, Optional, Tuple

from starlette.requests import Request
from starlette.types import ASGIApp, Receive, Scope, Send

from streamvault.core.exception_handlers import problem_response
from streamvault.core.exceptions import RateLimited
from streamvault.core.limiter import SlidingWindowLimiter, path_is_exempt, rate_limit_key
from streamvault.core.metrics import inc_limiter_block
from streamvault.services.device_guard import DeviceGuard, is_valid_device_id


class RateLimitMiddleware:
    """Gate every HTTP request through a `SlidingWindowLimiter`."""

    def __init__(
        self,
        app: ASGIApp,
        *,
        limiter: SlidingWindowLimiter,
        device_guard: DeviceGuard,
        device_header: str = "X-Device-ID",
        exempt_paths: Iterable[str] = ("/health",),
        enabled: bool = True,
    ) -> None:
        self.app = app
        self.limiter = limiter
        self.device_guard = device_guard
        self.device_header = device_header
        self.exempt_paths: Tuple[str, ...] = tuple(exempt_paths)
        self.enabled = enabled

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope.get("type") != "http" or not self.enabled:
            return await self.app(scope, receive, send)
        if path_is_exempt(scope.get("path", ""), self.exempt_paths):
            return await self.app(scope, receive, send)

        request = Request(scope)
        raw_device: Optional[str] = request.headers.get(self.device_header)
        fingerprint = self.device_guard.fingerprint(raw_device) if is_valid_device_id(raw_device) else None
        key = rate_limit_key(request, fingerprint)

        decision = await self.limiter.hit(key)
        if decision.allowed:
            return await self.app(scope, receive, send)

        inc_limiter_block()
        exc = RateLimited(decision.retry_after)
        request_id = (scope.get("state") or {}).get("request_id")
        response = problem_response(exc, instance=scope.get("path", ""), request_id=request_id)
        await response(scope, receive, send)


__all__ = ["RateLimitMiddleware"]
