"""
🧭 StreamVault • API v1 Router Aggregator
========================================

Exports the combined `router` plus a `build_v1_router()` factory.

Quick usage
-----------
    from streamvault.api.v1.routers import router as v1_router
    app.include_router(v1_router, prefix="/api/v1")

Rate limits and device checks live in middleware and child-router
dependencies; this module only composes.
"""

from fastapi import APIRouter

from .episodes import router as episodes_router
from .playback import router as playback_router
from .uploads import router as uploads_router


def build_v1_router() -> APIRouter:
    """Compose episodes, playback and uploads into a single `APIRouter`."""
    v1 = APIRouter()
    v1.include_router(episodes_router)
    v1.include_router(playback_router)
    v1.include_router(uploads_router)
    return v1


router = build_v1_router()

__all__ = ["router", "build_v1_router", "episodes_router", "playback_router", "uploads_router"]
