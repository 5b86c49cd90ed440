from __future__ import annotations

"""
StreamVault • Episodes
======================

Route Index
-----------
- POST /episodes/ingest                     → transcode + sign + commit one episode
- GET  /episodes/{episode_id}               → committed episode lookup
- GET  /episodes/{episode_id}/hls-url       → fresh signed playlist URL for one language
- GET  /episodes/{episode_id}/playback-token → device-bound token for one language

Notes
-----
- Ingestion is synchronous: the request stays open until every language has
  been transcoded and signed (or everything was rolled back).
- Provisional (in-flight) episodes are invisible to lookups.
- Signed URL and token responses are `no-store`.
- Every route requires a well-formed device id header (`InvalidDeviceId` otherwise),
  checked before any catalog, transcoder or signing call.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from streamvault.api.deps import get_catalog, get_pipeline, get_playback, require_device
from streamvault.api.http_utils import json_no_store
from streamvault.core.exceptions import NotFound
from streamvault.db.models import EPISODE_STATUS_COMMITTED
from streamvault.repositories.catalog import CatalogStoreProtocol
from streamvault.schemas.episodes import EpisodeIngestIn, EpisodeOut, HlsUrlOut
from streamvault.schemas.playback import PlaybackTokenOut
from streamvault.services.ingestion_pipeline import EpisodeIngestionPipeline, IngestionRequest, VideoSource
from streamvault.services.playback import PlaybackService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/episodes", tags=["Episodes"])
__all__ = ["router"]


@router.post(
    "/ingest",
    response_model=EpisodeOut,
    status_code=status.HTTP_201_CREATED,
    summary="Ingest an episode (one video per language)",
)
async def ingest_episode(
    payload: EpisodeIngestIn,
    _device: str = Depends(require_device),
    pipeline: EpisodeIngestionPipeline = Depends(get_pipeline),
):
    request = IngestionRequest(
        series_id=payload.series_id,
        episode_number=payload.episode_number,
        title=payload.title,
        description=payload.description,
        videos=tuple(VideoSource(source_path=v.source_path, language=v.language) for v in payload.videos),
    )
    record = await pipeline.ingest(request)
    # Response carries signed playlist URLs
    return json_no_store(EpisodeOut.from_record(record), status_code=status.HTTP_201_CREATED)


@router.get("/{episode_id}", response_model=EpisodeOut, summary="Get a committed episode")
async def get_episode(
    episode_id: str,
    _device: str = Depends(require_device),
    catalog: CatalogStoreProtocol = Depends(get_catalog),
):
    record = await catalog.find_episode(episode_id)
    if record is None or record.status != EPISODE_STATUS_COMMITTED:
        raise NotFound("Episode not found", details={"episode_id": episode_id})
    return json_no_store(EpisodeOut.from_record(record))


@router.get("/{episode_id}/hls-url", response_model=HlsUrlOut, summary="Re-sign a track playlist")
async def refresh_hls_url(
    episode_id: str,
    lang: str = Query(..., min_length=2, max_length=5),
    _device: str = Depends(require_device),
    playback: PlaybackService = Depends(get_playback),
):
    url = await playback.refresh_hls_url(episode_id, lang)
    return json_no_store(HlsUrlOut(episode_id=episode_id, language=lang, url=url))


@router.get(
    "/{episode_id}/playback-token",
    response_model=PlaybackTokenOut,
    summary="Issue a playback token for a track playlist",
)
async def episode_playback_token(
    episode_id: str,
    lang: str = Query(..., min_length=2, max_length=5),
    subject_id: Optional[str] = Query(None, max_length=128),
    device_id: str = Depends(require_device),
    playback: PlaybackService = Depends(get_playback),
):
    issued = await playback.issue_track_token(episode_id, lang, device_id, subject_id)
    return json_no_store(PlaybackTokenOut(token=issued.token, expires_at=issued.expires_at))
