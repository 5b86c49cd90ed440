"""Playback token and upload URL schemas."""

from typing import Optional

from pydantic import BaseModel, Field


class PlaybackTokenIn(BaseModel):
    object_path: str = Field(..., min_length=1, max_length=1024)
    subject_id: Optional[str] = Field(None, max_length=128)
    ttl_seconds: Optional[int] = Field(None, ge=1, description="Clamped to PLAYBACK_TOKEN_MAX_TTL_SECONDS")


class PlaybackTokenOut(BaseModel):
    token: str
    expires_at: float


class RedeemOut(BaseModel):
    url: str


class UploadUrlIn(BaseModel):
    extension: str = Field(..., min_length=1, max_length=10, examples=["mp4"])


class UploadUrlOut(BaseModel):
    url: str
    path: str
    source_uri: str = Field(..., description="Pass as `source_path` when ingesting")
