from __future__ import annotations

"""
📺 StreamVault — Series
======================

The catalog parent of episodes. The ingestion pipeline only reads it
(existence check); CRUD lives outside this service.
"""

from typing import List, Optional

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from streamvault.db.base_class import Base, TimestampMixin, UUIDPKMixin


class Series(UUIDPKMixin, TimestampMixin, Base):
    __tablename__ = "series"

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    episodes: Mapped[List["Episode"]] = relationship(  # noqa: F821
        back_populates="series",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
