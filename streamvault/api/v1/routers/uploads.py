from __future__ import annotations

"""
StreamVault • Upload URLs
=========================

- POST /uploads/signed-url → presigned PUT under `UPLOADS_PREFIX` with a fresh
  random key; the returned `source_uri` can be passed straight to ingestion.
"""

import re

from fastapi import APIRouter, Depends

from streamvault.api.deps import get_store, require_device
from streamvault.api.http_utils import json_no_store
from streamvault.core.config import settings
from streamvault.core.exceptions import BadRequest, StorageFailure
from streamvault.schemas.playback import UploadUrlIn, UploadUrlOut
from streamvault.utils.aws import ObjectStore, StorageError

router = APIRouter(prefix="/uploads", tags=["Uploads"])
__all__ = ["router"]

_EXT_RE = re.compile(r"^[A-Za-z0-9]{1,10}$")


@router.post("/signed-url", response_model=UploadUrlOut, summary="Presigned PUT for a source video")
async def create_upload_url(
    payload: UploadUrlIn,
    _device: str = Depends(require_device),
    store: ObjectStore = Depends(get_store),
):
    ext = payload.extension.strip().lstrip(".")
    if not _EXT_RE.fullmatch(ext):
        raise BadRequest("Invalid file extension", details={"extension": payload.extension})
    try:
        signed = await store.signed_write(settings.UPLOADS_PREFIX, ext, settings.UPLOAD_URL_TTL_SECONDS)
    except StorageError as e:
        raise StorageFailure(f"Could not create upload URL: {e}") from e
    return json_no_store(UploadUrlOut(url=signed.url, path=signed.path, source_uri=store.uri_for(signed.path)))
