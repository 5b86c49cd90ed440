# streamvault/security_headers.py
from __future__ import annotations

"""
# StreamVault — Security Headers

- **Headers**: HSTS, CSP, X-Content-Type-Options, X-Frame-Options,
  X-XSS-Protection, Referrer-Policy, Permissions-Policy.
- **Skip list**: configurable path prefixes (health/docs) to avoid CSP noise.
- **Cache helper**: `set_sensitive_cache()` for token/URL responses.

## Env knobs
- SECURITY_SKIP_PATHS (CSV; default "/health,/docs,/redoc,/openapi.json")
- HSTS_MAX_AGE (31536000), HSTS_INCLUDE_SUBDOMAINS ("true")
- CSP (full policy string override)
- REFERRER_POLICY (default "strict-origin-when-cross-origin")
- PERMISSIONS_POLICY (default "geolocation=(), microphone=(), camera=()")
"""

import os
from dataclasses import dataclass
from typing import List, Tuple

from fastapi import Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send


@dataclass(frozen=True)
class SecurityHeadersConfig:
    """Runtime configuration for security headers (env-driven)."""

    hsts_max_age: int = int(os.getenv("HSTS_MAX_AGE", "31536000"))
    hsts_include_subdomains: bool = os.getenv("HSTS_INCLUDE_SUBDOMAINS", "true").lower() == "true"
    csp: str = os.getenv(
        "CSP",
        "default-src 'self'; script-src 'self'; style-src 'self' 'unsafe-inline'; frame-ancestors 'none'",
    )
    referrer_policy: str = os.getenv("REFERRER_POLICY", "strict-origin-when-cross-origin")
    permissions_policy: str = os.getenv("PERMISSIONS_POLICY", "geolocation=(), microphone=(), camera=()")
    skip_paths_csv: str = os.getenv("SECURITY_SKIP_PATHS", "/health,/docs,/redoc,/openapi.json")

    def header_pairs(self) -> List[Tuple[str, str]]:
        hsts = f"max-age={self.hsts_max_age}"
        if self.hsts_include_subdomains:
            hsts += "; includeSubDomains"
        return [
            ("Strict-Transport-Security", hsts),
            ("X-Content-Type-Options", "nosniff"),
            ("X-Frame-Options", "DENY"),
            ("X-XSS-Protection", "1; mode=block"),
            ("Content-Security-Policy", self.csp),
            ("Referrer-Policy", self.referrer_policy),
            ("Permissions-Policy", self.permissions_policy),
        ]


class SecurityHeadersMiddleware:
    """ASGI middleware applying security headers idempotently on every response."""

    def __init__(self, app: ASGIApp, cfg: SecurityHeadersConfig | None = None) -> None:
        self.app = app
        self.cfg = cfg or SecurityHeadersConfig()
        self._skip_prefixes: Tuple[str, ...] = tuple(
            p.strip() for p in (self.cfg.skip_paths_csv or "").split(",") if p.strip()
        )
        self._pairs = [(k.lower().encode("latin-1"), v.encode("latin-1")) for k, v in self.cfg.header_pairs()]

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope.get("type") != "http":
            return await self.app(scope, receive, send)
        path = scope.get("path", "")
        if any(path.startswith(prefix) for prefix in self._skip_prefixes):
            return await self.app(scope, receive, send)

        async def send_wrapper(message: Message) -> None:
            if message.get("type") == "http.response.start":
                raw: List[Tuple[bytes, bytes]] = message.setdefault("headers", [])
                present = {k.lower() for k, _ in raw}
                for name, value in self._pairs:
                    if name not in present:
                        raw.append((name, value))
            await send(message)

        await self.app(scope, receive, send_wrapper)


def set_sensitive_cache(response: Response, *, seconds: int = 0) -> None:
    """
    Mark a response as sensitive for caching.

    `seconds > 0` enables a short **private** cache; otherwise `no-store`.
    """
    if seconds <= 0:
        response.headers["Cache-Control"] = "no-store"
        response.headers["Pragma"] = "no-cache"
        response.headers["Expires"] = "0"
    else:
        response.headers["Cache-Control"] = f"private, max-age={seconds}"


__all__ = ["SecurityHeadersConfig", "SecurityHeadersMiddleware", "set_sensitive_cache"]
