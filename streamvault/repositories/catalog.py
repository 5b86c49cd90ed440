from __future__ import annotations

"""Catalog store.

The narrow slice of the catalog the ingestion pipeline reads and writes:
series lookup plus episode create/find/save/delete. Two implementations share
one interface:

- `SqlCatalogStore` — SQLAlchemy async, one short transaction per call. The
  `(series_id, episode_number)` unique constraint is authoritative; an
  ``IntegrityError`` surfaces as `Conflict`.
- `MemoryCatalogStore` — dict-backed, same semantics, for tests and local runs.
"""

import uuid
from dataclasses import asdict, dataclass, field, replace
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from streamvault.core.exceptions import Conflict, NotFound
from streamvault.db.models import EPISODE_STATUS_PROVISIONAL, Episode, Series


# ─────────────────────────────────────────────────────────────
# 🧱 Records
# ─────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class LanguageTrack:
    language: str
    playlist_path: str
    first_segment_path: Optional[str]
    playback_url: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LanguageTrack":
        return cls(
            language=str(data["language"]),
            playlist_path=str(data["playlist_path"]),
            first_segment_path=data.get("first_segment_path"),
            playback_url=str(data.get("playback_url") or ""),
        )


@dataclass(frozen=True)
class SeriesRecord:
    id: str
    title: str
    description: Optional[str] = None


@dataclass(frozen=True)
class EpisodeRecord:
    id: str
    series_id: str
    episode_number: int
    title: str
    description: Optional[str] = None
    status: str = EPISODE_STATUS_PROVISIONAL
    tracks: List[LanguageTrack] = field(default_factory=list)

    def track_for(self, language: str) -> Optional[LanguageTrack]:
        return next((t for t in self.tracks if t.language == language), None)


def _as_uuid(value: Any) -> Optional[uuid.UUID]:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        return None


def _conflict(series_id: str, episode_number: int) -> Conflict:
    return Conflict(
        "Episode number already exists in this series",
        details={"series_id": str(series_id), "episode_number": episode_number},
    )


# ─────────────────────────────────────────────────────────────
# 📜 Interface
# ─────────────────────────────────────────────────────────────
class CatalogStoreProtocol:
    async def find_series(self, series_id: str) -> Optional[SeriesRecord]:
        raise NotImplementedError

    async def create_series(self, title: str, description: Optional[str] = None) -> SeriesRecord:
        raise NotImplementedError

    async def create_episode(
        self,
        *,
        series_id: str,
        episode_number: int,
        title: str,
        description: Optional[str] = None,
    ) -> EpisodeRecord:
        raise NotImplementedError

    async def find_episode(self, episode_id: str) -> Optional[EpisodeRecord]:
        raise NotImplementedError

    async def save_episode(self, record: EpisodeRecord) -> EpisodeRecord:
        raise NotImplementedError

    async def delete_episode(self, episode_id: str) -> bool:
        raise NotImplementedError

    async def find_episode_by_number_in_series(
        self,
        series_id: str,
        episode_number: int,
        excluding_id: Optional[str] = None,
    ) -> Optional[EpisodeRecord]:
        raise NotImplementedError


# ─────────────────────────────────────────────────────────────
# 🗄️ SQLAlchemy implementation
# ─────────────────────────────────────────────────────────────
def _series_record(row: Series) -> SeriesRecord:
    return SeriesRecord(id=str(row.id), title=row.title, description=row.description)


def _episode_record(row: Episode) -> EpisodeRecord:
    return EpisodeRecord(
        id=str(row.id),
        series_id=str(row.series_id),
        episode_number=row.episode_number,
        title=row.title,
        description=row.description,
        status=row.status,
        tracks=[LanguageTrack.from_dict(t) for t in (row.tracks or [])],
    )


class SqlCatalogStore(CatalogStoreProtocol):
    """Catalog store over an `async_sessionmaker`; each call is its own transaction."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self._session_maker = session_maker

    async def find_series(self, series_id: str) -> Optional[SeriesRecord]:
        sid = _as_uuid(series_id)
        if sid is None:
            return None
        async with self._session_maker() as db:
            row = await db.get(Series, sid)
            return _series_record(row) if row else None

    async def create_series(self, title: str, description: Optional[str] = None) -> SeriesRecord:
        async with self._session_maker() as db:
            row = Series(title=title, description=description)
            db.add(row)
            await db.commit()
            return _series_record(row)

    async def create_episode(
        self,
        *,
        series_id: str,
        episode_number: int,
        title: str,
        description: Optional[str] = None,
    ) -> EpisodeRecord:
        sid = _as_uuid(series_id)
        if sid is None:
            raise NotFound("Series not found", details={"series_id": str(series_id)})
        async with self._session_maker() as db:
            row = Episode(
                series_id=sid,
                episode_number=episode_number,
                title=title,
                description=description,
                status=EPISODE_STATUS_PROVISIONAL,
                tracks=[],
            )
            db.add(row)
            try:
                await db.commit()
            except IntegrityError as e:
                await db.rollback()
                raise _conflict(series_id, episode_number) from e
            return _episode_record(row)

    async def find_episode(self, episode_id: str) -> Optional[EpisodeRecord]:
        eid = _as_uuid(episode_id)
        if eid is None:
            return None
        async with self._session_maker() as db:
            row = await db.get(Episode, eid)
            return _episode_record(row) if row else None

    async def save_episode(self, record: EpisodeRecord) -> EpisodeRecord:
        eid = _as_uuid(record.id)
        async with self._session_maker() as db:
            row = await db.get(Episode, eid) if eid else None
            if row is None:
                raise NotFound("Episode not found", details={"episode_id": record.id})
            row.episode_number = record.episode_number
            row.title = record.title
            row.description = record.description
            row.status = record.status
            row.tracks = [t.to_dict() for t in record.tracks]
            try:
                await db.commit()
            except IntegrityError as e:
                await db.rollback()
                raise _conflict(record.series_id, record.episode_number) from e
            return _episode_record(row)

    async def delete_episode(self, episode_id: str) -> bool:
        eid = _as_uuid(episode_id)
        if eid is None:
            return False
        async with self._session_maker() as db:
            result = await db.execute(delete(Episode).where(Episode.id == eid))
            await db.commit()
            return bool(result.rowcount)

    async def find_episode_by_number_in_series(
        self,
        series_id: str,
        episode_number: int,
        excluding_id: Optional[str] = None,
    ) -> Optional[EpisodeRecord]:
        sid = _as_uuid(series_id)
        if sid is None:
            return None
        stmt = select(Episode).where(Episode.series_id == sid, Episode.episode_number == episode_number)
        exclude = _as_uuid(excluding_id) if excluding_id else None
        if exclude is not None:
            stmt = stmt.where(Episode.id != exclude)
        async with self._session_maker() as db:
            row = (await db.execute(stmt.limit(1))).scalar_one_or_none()
            return _episode_record(row) if row else None


# ─────────────────────────────────────────────────────────────
# 🧪 In-memory implementation
# ─────────────────────────────────────────────────────────────
class MemoryCatalogStore(CatalogStoreProtocol):
    """Dict-backed store with the same uniqueness semantics as the SQL store."""

    def __init__(self) -> None:
        self.series: Dict[str, SeriesRecord] = {}
        self.episodes: Dict[str, EpisodeRecord] = {}

    def _taken(self, series_id: str, number: int, excluding_id: Optional[str]) -> Optional[EpisodeRecord]:
        for ep in self.episodes.values():
            if ep.series_id == series_id and ep.episode_number == number and ep.id != excluding_id:
                return ep
        return None

    async def find_series(self, series_id: str) -> Optional[SeriesRecord]:
        return self.series.get(str(series_id))

    async def create_series(self, title: str, description: Optional[str] = None) -> SeriesRecord:
        rec = SeriesRecord(id=str(uuid.uuid4()), title=title, description=description)
        self.series[rec.id] = rec
        return rec

    async def create_episode(
        self,
        *,
        series_id: str,
        episode_number: int,
        title: str,
        description: Optional[str] = None,
    ) -> EpisodeRecord:
        if str(series_id) not in self.series:
            raise NotFound("Series not found", details={"series_id": str(series_id)})
        if self._taken(str(series_id), episode_number, None):
            raise _conflict(series_id, episode_number)
        rec = EpisodeRecord(
            id=str(uuid.uuid4()),
            series_id=str(series_id),
            episode_number=episode_number,
            title=title,
            description=description,
        )
        self.episodes[rec.id] = rec
        return rec

    async def find_episode(self, episode_id: str) -> Optional[EpisodeRecord]:
        return self.episodes.get(str(episode_id))

    async def save_episode(self, record: EpisodeRecord) -> EpisodeRecord:
        if record.id not in self.episodes:
            raise NotFound("Episode not found", details={"episode_id": record.id})
        if self._taken(record.series_id, record.episode_number, record.id):
            raise _conflict(record.series_id, record.episode_number)
        saved = replace(record, tracks=list(record.tracks))
        self.episodes[record.id] = saved
        return saved

    async def delete_episode(self, episode_id: str) -> bool:
        return self.episodes.pop(str(episode_id), None) is not None

    async def find_episode_by_number_in_series(
        self,
        series_id: str,
        episode_number: int,
        excluding_id: Optional[str] = None,
    ) -> Optional[EpisodeRecord]:
        return self._taken(str(series_id), episode_number, excluding_id)


__all__ = [
    "LanguageTrack",
    "SeriesRecord",
    "EpisodeRecord",
    "CatalogStoreProtocol",
    "SqlCatalogStore",
    "MemoryCatalogStore",
]
