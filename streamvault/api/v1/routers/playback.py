from __future__ import annotations

"""
StreamVault • Playback Tokens
=============================

Route Index
-----------
- POST /playback/token   → device-bound encrypted token for an object path
- GET  /playback/redeem  → verify token for the calling device, 307 to a presigned GET

Security
--------
- `X-Device-ID` is mandatory on both routes and must match the device the
  token was issued to.
- Every verification failure is the same 401 `InvalidToken`.
- Responses are `no-store`; tokens and URLs are never logged.
"""

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import RedirectResponse

from streamvault.api.deps import get_playback, require_device
from streamvault.api.http_utils import json_no_store
from streamvault.schemas.playback import PlaybackTokenIn, PlaybackTokenOut, RedeemOut
from streamvault.security_headers import set_sensitive_cache
from streamvault.services.playback import PlaybackService

router = APIRouter(prefix="/playback", tags=["Playback"])
__all__ = ["router"]


@router.post("/token", response_model=PlaybackTokenOut, summary="Issue a playback token")
async def issue_playback_token(
    payload: PlaybackTokenIn,
    device_id: str = Depends(require_device),
    playback: PlaybackService = Depends(get_playback),
):
    issued = playback.issue_token(payload.object_path, device_id, payload.subject_id, payload.ttl_seconds)
    return json_no_store(PlaybackTokenOut(token=issued.token, expires_at=issued.expires_at))


@router.get("/redeem", response_model=RedeemOut, summary="Redeem a playback token")
async def redeem_playback_token(
    token: str = Query(..., min_length=1, max_length=4096),
    redirect: bool = Query(True),
    device_id: str = Depends(require_device),
    playback: PlaybackService = Depends(get_playback),
):
    url = await playback.redeem(token, device_id)
    if not redirect:
        return json_no_store(RedeemOut(url=url))
    response = RedirectResponse(url, status_code=status.HTTP_307_TEMPORARY_REDIRECT)
    set_sensitive_cache(response)
    return response
