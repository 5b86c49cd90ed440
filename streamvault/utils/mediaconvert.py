# streamvault/utils/mediaconvert.py
from __future__ import annotations

"""
🎞️ StreamVault • Transcoding Service (AWS Elemental MediaConvert)
================================================================

Thin async wrapper over the MediaConvert job API. The transcoder is a black
box reachable through three calls:

- ``create_job(job_settings) -> job_id``
- ``get_job(job_id) -> JobStatus(status, error)``
- ``cancel_job(job_id)``

``status`` is MediaConvert's raw value: ``SUBMITTED``, ``PROGRESSING``,
``COMPLETE``, ``CANCELED`` or ``ERROR``. Mapping to the runner's state machine
happens in `streamvault.services.transcode_runner`.

boto3 calls run in a worker thread (``asyncio.to_thread``); every botocore
failure is re-raised as ``TranscodingError``.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

from botocore.exceptions import BotoCoreError, ClientError

from streamvault.core.config import settings
from streamvault.utils.aws import boto_client

logger = logging.getLogger(__name__)


class TranscodingError(RuntimeError):
    """Raised when the transcoding service cannot be reached or rejects a call."""


@dataclass(frozen=True)
class JobStatus:
    status: str
    error: Optional[str] = None


class TranscodingService(Protocol):
    async def create_job(self, job_settings: Dict[str, Any]) -> str: ...

    async def get_job(self, job_id: str) -> JobStatus: ...

    async def cancel_job(self, job_id: str) -> None: ...


class MediaConvertService:
    """`TranscodingService` backed by AWS Elemental MediaConvert."""

    def __init__(
        self,
        *,
        client: Any = None,
        role_arn: Optional[str] = None,
        queue_arn: Optional[str] = None,
    ) -> None:
        self.role_arn = role_arn or settings.MEDIACONVERT_ROLE_ARN
        if not self.role_arn:
            raise TranscodingError("MEDIACONVERT_ROLE_ARN not configured")
        self.queue_arn = queue_arn or settings.MEDIACONVERT_QUEUE_ARN
        self.client = client or boto_client("mediaconvert", endpoint_url=settings.MEDIACONVERT_ENDPOINT_URL)

    async def create_job(self, job_settings: Dict[str, Any]) -> str:
        kwargs: Dict[str, Any] = {"Role": self.role_arn, "Settings": job_settings}
        if self.queue_arn:
            kwargs["Queue"] = self.queue_arn
        try:
            resp = await asyncio.to_thread(self.client.create_job, **kwargs)
        except (BotoCoreError, ClientError) as e:
            raise TranscodingError(f"create_job failed: {e}") from e
        job_id = (resp.get("Job") or {}).get("Id")
        if not job_id:
            raise TranscodingError("create_job returned no job id")
        return job_id

    async def get_job(self, job_id: str) -> JobStatus:
        try:
            resp = await asyncio.to_thread(self.client.get_job, Id=job_id)
        except (BotoCoreError, ClientError) as e:
            raise TranscodingError(f"get_job failed: {e}") from e
        job = resp.get("Job") or {}
        return JobStatus(status=str(job.get("Status") or "UNKNOWN"), error=job.get("ErrorMessage"))

    async def cancel_job(self, job_id: str) -> None:
        try:
            await asyncio.to_thread(self.client.cancel_job, Id=job_id)
        except (BotoCoreError, ClientError) as e:
            raise TranscodingError(f"cancel_job failed: {e}") from e


__all__ = ["TranscodingError", "JobStatus", "TranscodingService", "MediaConvertService"]
