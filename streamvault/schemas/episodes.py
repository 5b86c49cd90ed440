from __future__ import annotations

"""
StreamVault • Episode Schemas
=============================

Request/response models for episode ingestion and lookup. Field-level format
rules (language code, source scheme, limits) are enforced by the ingestion
pipeline so that every entry point returns the same `BadRequest` kinds; these
models only shape the JSON.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from streamvault.repositories.catalog import EpisodeRecord


class VideoIn(BaseModel):
    """One source video and the language of its audio track."""

    source_path: str = Field(..., description="Transcoder-readable URI, e.g. s3://bucket/uploads/x.mp4")
    language: str = Field(..., description="ISO 639-1 code, optionally with region: en, pt-br")


class EpisodeIngestIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    series_id: Optional[str] = None
    episode_number: Optional[int] = None
    title: str = Field(..., max_length=255)
    description: Optional[str] = None
    videos: List[VideoIn] = Field(default_factory=list)


class TrackOut(BaseModel):
    language: str
    playlist_path: str
    first_segment_path: Optional[str] = None
    playback_url: str


class EpisodeOut(BaseModel):
    episode_id: str
    series_id: str
    episode_number: int
    title: str
    description: Optional[str] = None
    status: str
    tracks: List[TrackOut] = Field(default_factory=list)

    @classmethod
    def from_record(cls, record: EpisodeRecord) -> "EpisodeOut":
        return cls(
            episode_id=record.id,
            series_id=record.series_id,
            episode_number=record.episode_number,
            title=record.title,
            description=record.description,
            status=record.status,
            tracks=[TrackOut(**t.to_dict()) for t in record.tracks],
        )


class HlsUrlOut(BaseModel):
    episode_id: str
    language: str
    url: str
