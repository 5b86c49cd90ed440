from __future__ import annotations

"""
🎬 StreamVault — Episode
=======================

One episode of a `Series`, with its per-language HLS tracks.

Lifecycle
---------
• Created **provisional** (no tracks) before any transcoding starts.
• Flipped to **committed** together with the full track list, only after every
  language finished transcoding and signing.
• Deleted outright if any language fails (compensating rollback).

Integrity
---------
• `(series_id, episode_number)` is unique at the DB level; a violation is the
  authoritative `Conflict` signal.
• `episode_number` is 1-based.
• `tracks` is a JSON list of ``{language, playlist_path, first_segment_path, playback_url}``.
"""

import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, CheckConstraint, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from streamvault.db.base_class import Base, TimestampMixin, UUIDPKMixin

EPISODE_STATUS_PROVISIONAL = "provisional"
EPISODE_STATUS_COMMITTED = "committed"


class Episode(UUIDPKMixin, TimestampMixin, Base):
    __tablename__ = "episodes"

    series_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("series.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    episode_number: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=EPISODE_STATUS_PROVISIONAL)
    tracks: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)

    series: Mapped["Series"] = relationship(back_populates="episodes")  # noqa: F821

    __table_args__ = (
        UniqueConstraint("series_id", "episode_number", name="uq_episodes_series_number"),
        CheckConstraint("episode_number >= 1", name="episode_number_positive"),
        CheckConstraint("status IN ('provisional', 'committed')", name="status_valid"),
    )
