from __future__ import annotations

"""
StreamVault — declarative base for the catalog tables (`series`, `episodes`).

Constraint names are pinned through ``NAMING_CONVENTION`` so Alembic
autogenerate produces the same names on Postgres and SQLite. Models declare
their own ``__tablename__``.
"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, MetaData, Uuid, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

# Columns shown by __repr__, in order, when a model has them
_REPR_KEYS = ("id", "series_id", "number", "title", "status")


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=NAMING_CONVENTION)

    def __repr__(self) -> str:
        shown = ", ".join(
            f"{key}={getattr(self, key)!r}" for key in _REPR_KEYS if key in self.__dict__
        )
        return f"<{type(self).__name__} {shown}>"


class UUIDPKMixin:
    """Client-side ``uuid4`` primary key; native UUID on Postgres, CHAR(32) on SQLite."""

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)


class TimestampMixin:
    """Server-stamped row times. Never read back by the catalog store."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


__all__ = ["Base", "UUIDPKMixin", "TimestampMixin", "NAMING_CONVENTION"]
