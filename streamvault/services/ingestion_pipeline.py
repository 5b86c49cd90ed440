from __future__ import annotations

"""
🧩 StreamVault • Episode Ingestion Pipeline
==========================================

Top-level orchestrator: validates a batch of (source video, language) pairs,
creates a provisional episode, transcodes + signs every language, and either
commits all tracks at once or rolls everything back.

State machine (per call)
------------------------
::

    Validating → CatalogRecordCreated
               → per language: Submitted → Polling → Rewriting → TrackReady
               → Finalizing → Committed
    (any per-language failure) ─────────────────────────────▶ RolledBack

Guarantees
----------
- Validation errors (``BadRequest``/``NotFound``/``Conflict``) happen before any
  record or external job exists.
- Readers never see partial results: tracks are persisted only in the final
  commit, together with ``status="committed"``.
- On failure the provisional record is deleted and every output folder already
  handed to the transcoder is deleted best-effort. Cleanup problems are logged
  and never replace the original error.
- Caller disconnect: the record and outputs are still cleaned up. When the
  runner leaves the external job running, cleanup waits for the job to reach a
  terminal state first so its output can't be written after deletion. A
  disconnect during submission still waits for the job handle.
- Timed-out jobs are cancelled by the runner before the rollback deletes
  their folder.
"""

import asyncio
import enum
import logging
import re
from dataclasses import dataclass, replace
from typing import List, Optional, Sequence, Set

from streamvault.core.exceptions import AppException, BadRequest, Conflict, NotFound, UpstreamFailure
from streamvault.core.metrics import inc_ingestion
from streamvault.db.models import EPISODE_STATUS_COMMITTED
from streamvault.repositories.catalog import CatalogStoreProtocol, EpisodeRecord, LanguageTrack
from streamvault.services.manifest_rewriter import ManifestRewriter
from streamvault.services.transcode_runner import TranscodeJob, TranscodeJobRunner
from streamvault.utils.aws import ObjectStore

logger = logging.getLogger(__name__)

LANGUAGE_RE = re.compile(r"^[a-z]{2}(-[a-z]{2})?$")


class IngestionStage(str, enum.Enum):
    VALIDATING = "Validating"
    RECORD_CREATED = "CatalogRecordCreated"
    SUBMITTED = "Submitted"
    POLLING = "Polling"
    REWRITING = "Rewriting"
    TRACK_READY = "TrackReady"
    FINALIZING = "Finalizing"
    COMMITTED = "Committed"
    ROLLED_BACK = "RolledBack"


@dataclass(frozen=True)
class VideoSource:
    source_path: str
    language: str


@dataclass(frozen=True)
class IngestionRequest:
    series_id: Optional[str]
    episode_number: Optional[int]
    title: str
    videos: Sequence[VideoSource]
    description: Optional[str] = None


class EpisodeIngestionPipeline:
    """Drive one `IngestionRequest` to a committed episode or a full rollback."""

    def __init__(
        self,
        *,
        catalog: CatalogStoreProtocol,
        store: ObjectStore,
        runner: TranscodeJobRunner,
        rewriter: ManifestRewriter,
        max_videos: int = 2,
        hls_prefix: str = "hls/",
        quality_profile: str = "abr",
        segment_ttl: int = 7 * 24 * 3600,
    ) -> None:
        self.catalog = catalog
        self.store = store
        self.runner = runner
        self.rewriter = rewriter
        self.max_videos = max_videos
        self.hls_prefix = hls_prefix
        self.quality_profile = quality_profile
        self.segment_ttl = segment_ttl
        self._background: Set[asyncio.Task] = set()

    # ────────────────────────────────────────────────────────────────────────
    # ✅ Validation (no side effects)
    # ────────────────────────────────────────────────────────────────────────
    def validate(self, request: IngestionRequest) -> None:
        if not request.series_id or not str(request.series_id).strip():
            raise BadRequest("series_id is required")
        if request.episode_number is None:
            raise BadRequest("episode_number is required")
        if int(request.episode_number) < 1:
            raise BadRequest("episode_number must be >= 1")
        if not request.title or not request.title.strip():
            raise BadRequest("title is required")
        if not request.videos:
            raise BadRequest("At least one video is required")
        if len(request.videos) > self.max_videos:
            raise BadRequest(
                f"At most {self.max_videos} videos per episode",
                details={"max_videos": self.max_videos, "received": len(request.videos)},
            )
        seen: Set[str] = set()
        for video in request.videos:
            if not LANGUAGE_RE.fullmatch(video.language or ""):
                raise BadRequest("Invalid language code", details={"language": video.language})
            if video.language in seen:
                raise BadRequest("Duplicate language", details={"language": video.language})
            seen.add(video.language)
            self.runner.check_input_path(video.source_path)

    def output_folder(self, episode_id: str, language: str) -> str:
        return f"{self.hls_prefix}{episode_id}/{language}/"

    # ────────────────────────────────────────────────────────────────────────
    # 🚀 Ingest
    # ────────────────────────────────────────────────────────────────────────
    async def ingest(self, request: IngestionRequest) -> EpisodeRecord:
        # ── [Step 1] Validating ─────────────────────────────────────────────
        try:
            self.validate(request)
            series_id = str(request.series_id)
            number = int(request.episode_number)  # type: ignore[arg-type]
            if await self.catalog.find_series(series_id) is None:
                raise NotFound("Series not found", details={"series_id": series_id})
            if await self.catalog.find_episode_by_number_in_series(series_id, number):
                raise Conflict(
                    "Episode number already exists in this series",
                    details={"series_id": series_id, "episode_number": number},
                )

            # ── [Step 2] CatalogRecordCreated (provisional) ─────────────────
            record = await self.catalog.create_episode(
                series_id=series_id,
                episode_number=number,
                title=request.title.strip(),
                description=request.description,
            )
        except AppException:
            inc_ingestion("rejected")
            raise
        logger.info("Episode %s provisional; %d language(s) queued", record.id, len(request.videos))

        folders: List[str] = []
        tracks: List[LanguageTrack] = []
        current: Optional[TranscodeJob] = None
        submitting: Optional[asyncio.Future] = None
        try:
            # ── [Step 3] Per language: submit → poll → rewrite ──────────────
            for video in request.videos:
                folder = self.output_folder(record.id, video.language)
                folders.append(folder)
                # Shielded so a disconnect mid-submit still yields the job handle
                submitting = asyncio.ensure_future(
                    self.runner.submit(video.source_path, folder, self.quality_profile)
                )
                current = await asyncio.shield(submitting)
                submitting = None
                self._stage(record.id, video.language, IngestionStage.POLLING)
                result = await self.runner.await_completion(current)
                if not result.succeeded:
                    raise UpstreamFailure(
                        f"Transcoding {result.state.value} for language '{video.language}'"
                        + (f": {result.error_message}" if result.error_message else ""),
                        details={
                            "episode_id": record.id,
                            "language": video.language,
                            "job_id": result.job_id,
                            "state": result.state.value,
                        },
                    )
                current = None

                self._stage(record.id, video.language, IngestionStage.REWRITING)
                rewritten = await self.rewriter.rewrite(result.playlist_path, folder, self.segment_ttl)
                tracks.append(
                    LanguageTrack(
                        language=video.language,
                        playlist_path=result.playlist_path,
                        first_segment_path=rewritten.first_segment_path,
                        playback_url=rewritten.signed_playlist_url,
                    )
                )
                self._stage(record.id, video.language, IngestionStage.TRACK_READY)

            # ── [Step 4] Finalizing → Committed ─────────────────────────────
            committed = await self.catalog.save_episode(
                replace(record, status=EPISODE_STATUS_COMMITTED, tracks=tracks)
            )
        except asyncio.CancelledError:
            self._rollback_after_cancel(record, folders, current, submitting)
            raise
        except Exception as e:
            await self._rollback(record, folders, reason=str(e))
            inc_ingestion("rolled_back")
            raise

        inc_ingestion("committed")
        logger.info("Episode %s committed with %d track(s)", committed.id, len(committed.tracks))
        return committed

    # ────────────────────────────────────────────────────────────────────────
    # ↩️ Compensating rollback
    # ────────────────────────────────────────────────────────────────────────
    async def _rollback(self, record: EpisodeRecord, folders: Sequence[str], *, reason: str) -> None:
        logger.warning("Rolling back episode %s: %s", record.id, reason)
        try:
            await self.catalog.delete_episode(record.id)
        except Exception as e:
            logger.error("Rollback could not delete episode %s: %s", record.id, e)
        for folder in folders:
            try:
                removed = await self.store.delete_by_prefix(folder)
                logger.info("Rollback removed %d object(s) under %s", removed, folder)
            except Exception as e:
                logger.warning("Rollback could not clean %s: %s", folder, e)
        logger.info("Episode %s %s", record.id, IngestionStage.ROLLED_BACK.value)

    def _rollback_after_cancel(
        self,
        record: EpisodeRecord,
        folders: Sequence[str],
        job: Optional[TranscodeJob],
        submitting: Optional[asyncio.Future] = None,
    ) -> None:
        async def _finish() -> None:
            pending = job
            if submitting is not None:
                try:
                    pending = await submitting
                except AppException as e:
                    logger.info("Submission for episode %s failed after disconnect: %s", record.id, e)
                    pending = None
                else:
                    # The runner never saw this cancellation, so apply the policy here
                    if self.runner.cancel_on_disconnect:
                        await self.runner.cancel(pending)
            if pending is not None and not pending.is_terminal and not self.runner.cancel_on_disconnect:
                await self.runner.await_completion(pending)
            await self._rollback(record, folders, reason="caller disconnected")
            inc_ingestion("rolled_back")

        task = asyncio.get_running_loop().create_task(_finish())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    @staticmethod
    def _stage(episode_id: str, language: str, stage: IngestionStage) -> None:
        logger.info("Episode %s [%s] %s", episode_id, language, stage.value)

    async def drain(self) -> None:
        """Wait for any post-disconnect cleanup still in flight (used at shutdown)."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)


__all__ = [
    "LANGUAGE_RE",
    "IngestionStage",
    "VideoSource",
    "IngestionRequest",
    "EpisodeIngestionPipeline",
]
