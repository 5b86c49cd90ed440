from __future__ import annotations

"""
StreamVault · API Dependencies
==============================

One `Services` container per application, stored on ``app.state.services``.
`create_app` accepts a pre-built container (tests inject fakes); otherwise the
production graph is built from `settings` on first use:

    S3ObjectStore ─┬─ TranscodeJobRunner(MediaConvertService)
                   ├─ ManifestRewriter
                   └─ EpisodeIngestionPipeline(SqlCatalogStore, runner, rewriter)
    DeviceGuard ── TokenVault ── PlaybackService

Route dependencies (`get_pipeline`, `get_playback`, ...) only read from the
container, so handlers never construct clients themselves.
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from streamvault.core.config import Settings, settings
from streamvault.repositories.catalog import CatalogStoreProtocol
from streamvault.services.device_guard import DeviceGuard
from streamvault.services.ingestion_pipeline import EpisodeIngestionPipeline
from streamvault.services.manifest_rewriter import ManifestRewriter
from streamvault.services.playback import PlaybackService
from streamvault.services.token_vault import TokenVault
from streamvault.services.transcode_runner import TranscodeJobRunner
from streamvault.utils.aws import ObjectStore
from streamvault.utils.mediaconvert import TranscodingService


@dataclass
class Services:
    store: ObjectStore
    catalog: CatalogStoreProtocol
    device_guard: DeviceGuard
    vault: TokenVault
    runner: TranscodeJobRunner
    rewriter: ManifestRewriter
    pipeline: EpisodeIngestionPipeline
    playback: PlaybackService


def build_services(
    *,
    store: ObjectStore,
    catalog: CatalogStoreProtocol,
    transcoder: TranscodingService,
    config: Optional[Settings] = None,
    **runner_overrides,
) -> Services:
    """Wire the service graph from explicit adapters plus configuration."""
    cfg = config or settings
    guard = DeviceGuard(cfg.DEVICE_ID_SALT.get_secret_value())
    vault = TokenVault(
        encryption_key=cfg.encryption_key_bytes,
        signing_key=cfg.JWT_SECRET_KEY.get_secret_value(),
        device_guard=guard,
        algorithm=cfg.JWT_ALGORITHM,
    )
    runner_kwargs = dict(
        input_scheme=cfg.TRANSCODE_INPUT_SCHEME,
        poll_interval=cfg.TRANSCODE_POLL_INTERVAL_SECONDS,
        timeout=cfg.TRANSCODE_TIMEOUT_SECONDS,
        cancel_on_disconnect=cfg.TRANSCODE_CANCEL_ON_DISCONNECT,
    )
    runner_kwargs.update(runner_overrides)
    runner = TranscodeJobRunner(service=transcoder, store=store, **runner_kwargs)
    rewriter = ManifestRewriter(
        store,
        concurrency=cfg.MANIFEST_SIGNING_CONCURRENCY,
        cache_seconds=cfg.MANIFEST_CACHE_SECONDS,
    )
    pipeline = EpisodeIngestionPipeline(
        catalog=catalog,
        store=store,
        runner=runner,
        rewriter=rewriter,
        max_videos=cfg.MAX_VIDEOS_PER_EPISODE,
        hls_prefix=cfg.HLS_PREFIX,
        quality_profile=cfg.TRANSCODE_QUALITY_PROFILE,
        segment_ttl=cfg.SEGMENT_URL_TTL_SECONDS,
    )
    playback = PlaybackService(
        catalog=catalog,
        store=store,
        vault=vault,
        rewriter=rewriter,
        token_ttl=cfg.PLAYBACK_TOKEN_TTL_SECONDS,
        max_token_ttl=cfg.PLAYBACK_TOKEN_MAX_TTL_SECONDS,
        playlist_ttl=cfg.PLAYLIST_URL_TTL_SECONDS,
    )
    return Services(
        store=store,
        catalog=catalog,
        device_guard=guard,
        vault=vault,
        runner=runner,
        rewriter=rewriter,
        pipeline=pipeline,
        playback=playback,
    )


def build_default_services() -> Services:
    """Production graph: S3 + MediaConvert + SQL catalog."""
    from streamvault.db.session import get_session_maker
    from streamvault.repositories.catalog import SqlCatalogStore
    from streamvault.utils.aws import S3ObjectStore
    from streamvault.utils.mediaconvert import MediaConvertService

    return build_services(
        store=S3ObjectStore(),
        catalog=SqlCatalogStore(get_session_maker()),
        transcoder=MediaConvertService(),
    )


# ─────────────────────────────────────────────────────────────────────────────
# 🔌 FastAPI dependencies
# ─────────────────────────────────────────────────────────────────────────────
def get_services(request: Request) -> Services:
    services: Optional[Services] = getattr(request.app.state, "services", None)
    if services is None:
        services = build_default_services()
        request.app.state.services = services
    return services


def get_pipeline(request: Request) -> EpisodeIngestionPipeline:
    return get_services(request).pipeline


def get_catalog(request: Request) -> CatalogStoreProtocol:
    return get_services(request).catalog


def get_playback(request: Request) -> PlaybackService:
    return get_services(request).playback


def get_store(request: Request) -> ObjectStore:
    return get_services(request).store


def require_device(request: Request) -> str:
    """Validate the caller's device id and expose its fingerprint.

    Returns the raw device id (needed to bind or verify tokens); the derived
    fingerprint is stored on ``request.state.device_fingerprint``. Raises
    `InvalidDeviceId` when the header is missing or malformed.
    """
    guard = get_services(request).device_guard
    raw = guard.validate_device_id(request.headers.get(settings.DEVICE_ID_HEADER))
    request.state.device_fingerprint = guard.fingerprint(raw)
    return raw


__all__ = [
    "Services",
    "build_services",
    "build_default_services",
    "get_services",
    "get_pipeline",
    "get_catalog",
    "get_playback",
    "get_store",
    "require_device",
]
