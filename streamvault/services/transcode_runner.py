from __future__ import annotations

"""
🎬 StreamVault • Transcode Job Runner
====================================

Submits one source video to the transcoding service and waits for it to reach
a terminal state.

Job state machine
-----------------
::

    Pending ──(COMPLETE)──────────────▶ Succeeded
       │ ────(ERROR / CANCELED)───────▶ Failed     (carries service error text)
       └─────(deadline reached)───────▶ TimedOut

Terminal states are immutable; a second transition raises ``RuntimeError``.

Output layout
-------------
HLS, single directory, 10 s TS segments with video + one AAC track muxed in
each rendition::

    {output_folder}playlist.m3u8          (master)
    {output_folder}playlist_sd.m3u8       (variant, when profile is sd/abr)
    {output_folder}playlist_sd_00001.ts
    {output_folder}playlist_hd.m3u8       (variant, when profile is hd/abr)
    ...

Polling
-------
``await_completion`` sleeps the poll interval *before* each status check (no
busy loop) and gives up at the deadline. Transport errors during a poll are
logged and the loop simply continues on its cadence. A job that times out is
cancelled at the service so it stops writing output.

Cancellation
------------
If the awaiting task is cancelled (client disconnect), the external job keeps
running unless ``cancel_on_disconnect`` is enabled, in which case the runner
asks the service to cancel it before re-raising.
"""

import asyncio
import enum
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from streamvault.core.exceptions import BadRequest, UpstreamFailure
from streamvault.core.metrics import inc_transcode_job
from streamvault.utils.aws import ObjectStore
from streamvault.utils.mediaconvert import TranscodingError, TranscodingService

logger = logging.getLogger(__name__)

PLAYLIST_BASENAME = "playlist"
SEGMENT_SECONDS = 10
AUDIO_SELECTOR = "Audio Selector 1"


class JobState(str, enum.Enum):
    PENDING = "Pending"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    TIMED_OUT = "TimedOut"


TERMINAL_STATES = frozenset({JobState.SUCCEEDED, JobState.FAILED, JobState.TIMED_OUT})

# MediaConvert status → runner state (anything else stays Pending)
_SERVICE_STATUS_MAP: Dict[str, JobState] = {
    "COMPLETE": JobState.SUCCEEDED,
    "ERROR": JobState.FAILED,
    "CANCELED": JobState.FAILED,
}


@dataclass
class TranscodeJob:
    job_id: str
    input_path: str
    output_folder: str
    submitted_at: float
    state: JobState = JobState.PENDING
    last_polled_at: Optional[float] = None
    error_message: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def playlist_path(self) -> str:
        return f"{self.output_folder}{PLAYLIST_BASENAME}.m3u8"

    def transition(self, state: JobState, error_message: Optional[str] = None) -> None:
        if self.is_terminal:
            raise RuntimeError(f"job {self.job_id} already terminal ({self.state.value})")
        self.state = state
        if error_message is not None:
            self.error_message = error_message


@dataclass(frozen=True)
class TranscodeResult:
    job_id: str
    state: JobState
    output_folder: str
    playlist_path: str
    error_message: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.state is JobState.SUCCEEDED


# ─────────────────────────────────────────────────────────────────────────────
# 🪜 Encode ladder
# ─────────────────────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class Rendition:
    name: str
    width: int
    height: int
    video_bitrate: int
    audio_bitrate: int = 96_000
    profile: str = "MAIN"


RENDITIONS: Dict[str, Rendition] = {
    "sd": Rendition("sd", 640, 360, 800_000, profile="BASELINE"),
    "hd": Rendition("hd", 1280, 720, 3_000_000, audio_bitrate=128_000),
}

QUALITY_PROFILES: Dict[str, List[str]] = {
    "sd": ["sd"],
    "hd": ["hd"],
    "abr": ["sd", "hd"],
}


def _output_for(r: Rendition) -> Dict[str, Any]:
    return {
        "NameModifier": f"_{r.name}",
        "ContainerSettings": {"Container": "M3U8", "M3u8Settings": {}},
        "VideoDescription": {
            "Width": r.width,
            "Height": r.height,
            "CodecSettings": {
                "Codec": "H_264",
                "H264Settings": {
                    "RateControlMode": "CBR",
                    "Bitrate": r.video_bitrate,
                    "CodecProfile": r.profile,
                    "GopSize": 2,
                    "GopSizeUnits": "SECONDS",
                    "SceneChangeDetect": "TRANSITION_DETECTION",
                },
            },
        },
        "AudioDescriptions": [
            {
                "AudioSourceName": AUDIO_SELECTOR,
                "CodecSettings": {
                    "Codec": "AAC",
                    "AacSettings": {
                        "Bitrate": r.audio_bitrate,
                        "CodingMode": "CODING_MODE_2_0",
                        "SampleRate": 48_000,
                    },
                },
            }
        ],
    }


def build_job_settings(input_uri: str, destination_uri: str, quality_profile: str) -> Dict[str, Any]:
    """Build MediaConvert job ``Settings`` for one HLS output group."""
    try:
        names = QUALITY_PROFILES[quality_profile]
    except KeyError:
        raise BadRequest(f"Unknown quality profile '{quality_profile}'")
    return {
        "TimecodeConfig": {"Source": "ZEROBASED"},
        "Inputs": [
            {
                "FileInput": input_uri,
                "TimecodeSource": "ZEROBASED",
                "AudioSelectors": {AUDIO_SELECTOR: {"DefaultSelection": "DEFAULT"}},
                "VideoSelector": {},
            }
        ],
        "OutputGroups": [
            {
                "Name": "HLS",
                "OutputGroupSettings": {
                    "Type": "HLS_GROUP_SETTINGS",
                    "HlsGroupSettings": {
                        "Destination": destination_uri,
                        "SegmentLength": SEGMENT_SECONDS,
                        "MinSegmentLength": 0,
                        "SegmentControl": "SEGMENTED_FILES",
                        "DirectoryStructure": "SINGLE_DIRECTORY",
                        "ManifestDurationFormat": "INTEGER",
                        "OutputSelection": "MANIFESTS_AND_SEGMENTS",
                    },
                },
                "Outputs": [_output_for(RENDITIONS[n]) for n in names],
            }
        ],
    }


# ─────────────────────────────────────────────────────────────────────────────
# 🏃 Runner
# ─────────────────────────────────────────────────────────────────────────────
@dataclass
class TranscodeJobRunner:
    """Submit / poll / timeout driver for one transcoding service."""

    service: TranscodingService
    store: ObjectStore
    input_scheme: str = "s3://"
    poll_interval: float = 5.0
    timeout: float = 600.0
    cancel_on_disconnect: bool = False
    sleep: Callable[[float], Awaitable[Any]] = field(default=asyncio.sleep)
    clock: Callable[[], float] = field(default=time.monotonic)

    def check_input_path(self, input_path: str) -> str:
        """Raise `BadRequest` unless ``input_path`` has the required scheme and a real key."""
        path = str(input_path or "").strip()
        if not path.startswith(self.input_scheme) or len(path) <= len(self.input_scheme) + 3:
            raise BadRequest(
                f"Source path must start with '{self.input_scheme}'",
                details={"source_path": input_path},
            )
        return path

    async def submit(self, input_path: str, output_folder: str, quality_profile: str) -> TranscodeJob:
        """Create the external job and return immediately with its handle."""
        source = self.check_input_path(input_path)
        destination = self.store.uri_for(f"{output_folder}{PLAYLIST_BASENAME}")
        job_settings = build_job_settings(source, destination, quality_profile)
        try:
            job_id = await self.service.create_job(job_settings)
        except TranscodingError as e:
            inc_transcode_job("submit_error")
            raise UpstreamFailure(f"Transcode submission failed: {e}") from e
        logger.info("Transcode job %s submitted (profile=%s, output=%s)", job_id, quality_profile, output_folder)
        return TranscodeJob(
            job_id=job_id,
            input_path=source,
            output_folder=output_folder,
            submitted_at=time.time(),
        )

    async def await_completion(self, job: TranscodeJob, timeout: Optional[float] = None) -> TranscodeResult:
        """Poll until terminal or the deadline passes. Never raises for job failures."""
        limit = float(self.timeout if timeout is None else timeout)
        deadline = self.clock() + limit
        try:
            while not job.is_terminal:
                now = self.clock()
                if now >= deadline:
                    job.transition(JobState.TIMED_OUT, f"No terminal state after {int(limit)}s")
                    break
                await self.sleep(min(self.poll_interval, deadline - now))
                await self._poll_once(job)
            if job.state is JobState.TIMED_OUT:
                # Stop the service writing into a folder the caller is about to delete
                await self.cancel(job)
        except asyncio.CancelledError:
            await self._on_cancelled(job)
            raise

        inc_transcode_job(job.state.value)
        logger.info("Transcode job %s finished: %s", job.job_id, job.state.value)
        return TranscodeResult(
            job_id=job.job_id,
            state=job.state,
            output_folder=job.output_folder,
            playlist_path=job.playlist_path,
            error_message=job.error_message,
        )

    async def _poll_once(self, job: TranscodeJob) -> None:
        try:
            status = await self.service.get_job(job.job_id)
        except TranscodingError as e:
            logger.warning("Polling job %s failed, will retry on next tick: %s", job.job_id, e)
            return
        job.last_polled_at = time.time()
        state = _SERVICE_STATUS_MAP.get(status.status.upper())
        if state is None:
            return
        if state is JobState.FAILED:
            message = status.error or ("Job was canceled" if status.status.upper() == "CANCELED" else "Job failed")
            job.transition(state, message)
        else:
            job.transition(state)

    async def cancel(self, job: TranscodeJob) -> bool:
        """Ask the service to stop ``job``. Best effort: failures are logged, never raised."""
        try:
            await asyncio.shield(self.service.cancel_job(job.job_id))
        except TranscodingError as e:
            logger.warning("Could not cancel transcode job %s: %s", job.job_id, e)
            return False
        logger.info("Transcode job %s cancelled (%s)", job.job_id, job.state.value)
        return True

    async def _on_cancelled(self, job: TranscodeJob) -> None:
        if not self.cancel_on_disconnect:
            logger.info("Caller went away; transcode job %s left running", job.job_id)
            return
        await self.cancel(job)


__all__ = [
    "JobState",
    "TranscodeJob",
    "TranscodeResult",
    "TranscodeJobRunner",
    "build_job_settings",
    "QUALITY_PROFILES",
]
