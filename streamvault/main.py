# streamvault/main.py
from __future__ import annotations

"""
# StreamVault API — Application Entrypoint (FastAPI)

ASGI application factory and lifecycle for the StreamVault ingestion and
secure playback backend.

## Design Goals
- Deterministic, testable **app factory** (`create_app`) with explicit lifespan.
- Explicit **middleware order** (outermost first):
  1) request id → 2) security headers → 3) rate limits.
  Rate limiting runs before routing, so blocked clients never reach the
  device check, the pipeline or storage.
- Centralized problem+json exception handling.
- Service graph injectable through `create_app(services=...)`.

## Probes
- `/health` — liveness (process up); never rate limited.
- `/metrics` — Prometheus exposition.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional
import logging
import os

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import Response

# -- Logging bootstrap (Loguru + stdlib intercept) ----------------------------
from streamvault.core import logger as _logsetup  # noqa: F401

from streamvault.api.deps import Services
from streamvault.api.v1.routers import router as api_v1_router
from streamvault.core.config import settings
from streamvault.core.exception_handlers import (
    app_exception_handler,
    global_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from streamvault.core.exceptions import AppException
from streamvault.core.limiter import RateLimitState, SlidingWindowLimiter
from streamvault.middleware.rate_limit import RateLimitMiddleware
from streamvault.middleware.request_id import RequestIDMiddleware
from streamvault.security_headers import SecurityHeadersMiddleware
from streamvault.services.device_guard import DeviceGuard

logger = logging.getLogger("streamvault")


# ─────────────────────────────────────────────────────────────────────────────
# 🔄 Lifespan: startup & shutdown
# ─────────────────────────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Application lifecycle manager.

    Startup:
        - Create tables when `DB_CREATE_ALL` is set (local/dev).

    Shutdown:
        - Wait for post-disconnect ingestion cleanups still in flight.
        - Dispose the DB engine.
    """
    logger.info("✅ StreamVault API starting up")
    if settings.DB_CREATE_ALL:
        from streamvault.db.session import create_all

        await create_all()

    try:
        yield
    finally:
        services: Optional[Services] = getattr(app.state, "services", None)
        if services is not None:
            await services.pipeline.drain()

        from streamvault.db.session import dispose_engine

        await dispose_engine()
        logger.info("🛑 StreamVault API shutting down")


# ─────────────────────────────────────────────────────────────────────────────
# 🏗️ App factory
# ─────────────────────────────────────────────────────────────────────────────
def create_app(services: Optional[Services] = None, *, limiter: Optional[SlidingWindowLimiter] = None) -> FastAPI:
    """
    Build and configure the FastAPI app instance.

    Args:
        services: pre-built service graph; built from settings on first use when omitted.
        limiter: limiter to enforce; a fresh one over new `RateLimitState` when omitted.

    Returns:
        FastAPI: fully wired application.
    """
    enable_docs = settings.ENABLE_DOCS
    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        docs_url="/docs" if enable_docs else None,
        redoc_url="/redoc" if enable_docs else None,
        openapi_url="/openapi.json" if enable_docs else None,
        lifespan=lifespan,
    )
    app.state.services = services

    # Limiter state lives for the app's lifetime, one per process
    if limiter is None:
        limiter = SlidingWindowLimiter(
            RateLimitState(),
            window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS,
            max_requests=settings.RATE_LIMIT_MAX_REQUESTS,
            block_multiplier=settings.RATE_LIMIT_BLOCK_MULTIPLIER,
        )
    app.state.limiter = limiter
    app.state.rate_limit_state = limiter.state

    # ── Middlewares (added innermost first) ─────────────────────────────────
    guard = services.device_guard if services else DeviceGuard(settings.DEVICE_ID_SALT.get_secret_value())
    app.add_middleware(
        RateLimitMiddleware,
        limiter=limiter,
        device_guard=guard,
        device_header=settings.DEVICE_ID_HEADER,
        exempt_paths=settings.rate_limit_exempt_paths,
        enabled=settings.RATE_LIMIT_ENABLED,
    )
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # ── Exception handlers (problem+json) ───────────────────────────────────
    app.add_exception_handler(AppException, app_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(HTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, global_exception_handler)  # type: ignore[arg-type]

    # ── Routers (versioned API) ─────────────────────────────────────────────
    app.include_router(api_v1_router, prefix=settings.API_V1_STR)

    # ── Meta endpoints ──────────────────────────────────────────────────────
    @app.get("/health", tags=["meta"])
    async def health() -> dict[str, str]:
        """Liveness probe. No external checks."""
        return {"status": "ok"}

    @app.get("/metrics", tags=["meta"], include_in_schema=False)
    async def metrics() -> Response:
        """Prometheus exposition of the streamvault_* counters."""
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return app


# ─────────────────────────────────────────────────────────────────────────────
# 🚀 Module-level ASGI app for Uvicorn
# ─────────────────────────────────────────────────────────────────────────────
app = create_app()
__all__ = ["create_app", "app"]


# Local dev runner (prefer: `uvicorn streamvault.main:app --reload`)
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "streamvault.main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        reload=os.getenv("RELOAD", "1") == "1",
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
    )
