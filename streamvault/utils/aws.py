# streamvault/utils/aws.py
from __future__ import annotations

"""
🧊 StreamVault • Object Store (S3)
==================================

The narrow storage contract the ingestion pipeline, the manifest rewriter and
the playback endpoints depend on, plus its S3 implementation.

🔗 Contract (`ObjectStore`)
--------------------------
- ``put(path, data, content_type, cache_control)``
- ``get_text(path) -> str``
- ``list_by_prefix(prefix) -> list[str]``
- ``signed_read(path, ttl) -> str``                 (presigned GET)
- ``signed_write(folder, extension, ttl) -> SignedWrite``  (presigned PUT, fresh key)
- ``delete_by_prefix(prefix) -> int``
- ``uri_for(path) -> str``                         (``s3://bucket/key`` for the transcoder)

All methods are coroutines. boto3 is synchronous, so each call is pushed to a
worker thread with ``asyncio.to_thread``; the event loop is never blocked.

Implementation notes
--------------------
- Keys are normalized (no leading ``/``, no ``..``, strict charset).
- Every failure surfaces as ``StorageError``; callers translate it into the
  ``StorageFailure`` kind at the service boundary.
- Presigned URLs are never logged.
"""

import asyncio
import logging
import mimetypes
import re
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from streamvault.core.config import settings
from streamvault.core.metrics import inc_signed_url

logger = logging.getLogger(__name__)

# ─────────────────────────────────────────────────────────────────────────────
# 🧱 Exceptions & types
# ─────────────────────────────────────────────────────────────────────────────


class StorageError(RuntimeError):
    """Raised when a storage operation fails (network, auth, policy, missing key)."""


@dataclass(frozen=True)
class SignedWrite:
    url: str
    path: str


class ObjectStore(Protocol):
    async def put(self, path: str, data: bytes, content_type: str, cache_control: Optional[str] = None) -> None: ...

    async def get_text(self, path: str) -> str: ...

    async def list_by_prefix(self, prefix: str) -> List[str]: ...

    async def signed_read(self, path: str, ttl: int) -> str: ...

    async def signed_write(self, folder: str, extension: str, ttl: int) -> SignedWrite: ...

    async def delete_by_prefix(self, prefix: str) -> int: ...

    def uri_for(self, path: str) -> str: ...


# ─────────────────────────────────────────────────────────────────────────────
# 🧰 Key validation
# ─────────────────────────────────────────────────────────────────────────────

_KEY_ALLOWED_RE = re.compile(r"[A-Za-z0-9._\-/+=@() ]+")
_EXT_RE = re.compile(r"^[A-Za-z0-9]{1,10}$")


def normalize_key(key: str, *, allow_folder: bool = False) -> str:
    """
    Normalize and validate S3 object keys.

    Steps
    -----
    1) Coerce to str, strip whitespace
    2) Remove leading '/'
    3) Collapse '//' runs
    4) Reject path traversal ('..') and disallowed characters

    Raises
    ------
    StorageError
        If key is empty or contains unsafe characters.
    """
    k = str(key or "").strip().lstrip("/")
    k = re.sub(r"/{2,}", "/", k)
    if not k:
        raise StorageError("Invalid storage key: empty")
    if ".." in k:
        raise StorageError("Invalid storage key: path traversal detected")
    if not _KEY_ALLOWED_RE.fullmatch(k):
        raise StorageError("Invalid storage key: contains forbidden characters")
    if k.endswith("/") and not allow_folder:
        raise StorageError("Invalid storage key: expected an object, got a folder")
    return k


def normalize_folder(folder: str) -> str:
    """`normalize_key` for prefixes; always returns `a/b/` form."""
    return normalize_key(str(folder or "").rstrip("/") + "/", allow_folder=True)


def _secret_value(v: Any) -> Optional[str]:
    if v is None:
        return None
    return v.get_secret_value() if hasattr(v, "get_secret_value") else str(v)


def boto_client(service: str, *, endpoint_url: Optional[str] = None, **config: Any):
    """Build a boto3 client from settings (explicit keys if present, else the default chain)."""
    cfg = BotoConfig(
        retries={"max_attempts": 5, "mode": "standard"},
        connect_timeout=3,
        read_timeout=10,
        **config,
    )
    kwargs: Dict[str, Any] = {"config": cfg, "region_name": settings.AWS_REGION}
    if endpoint_url:
        kwargs["endpoint_url"] = endpoint_url
    ak = settings.AWS_ACCESS_KEY_ID
    sk = _secret_value(settings.AWS_SECRET_ACCESS_KEY)
    st = _secret_value(settings.AWS_SESSION_TOKEN)
    if ak and sk:
        kwargs["aws_access_key_id"] = ak
        kwargs["aws_secret_access_key"] = sk
        if st:
            kwargs["aws_session_token"] = st
    return boto3.client(service, **kwargs)


# ─────────────────────────────────────────────────────────────────────────────
# 📦 S3 implementation
# ─────────────────────────────────────────────────────────────────────────────


class S3ObjectStore:
    """
    `ObjectStore` over a single private S3 bucket.

    Parameters
    ----------
    bucket : str | None
        Bucket name. Defaults to `settings.AWS_BUCKET_NAME`.
    client : botocore client | None
        Pre-built S3 client (tests inject a stubbed one). Built from settings otherwise.
    """

    _DELETE_BATCH = 1000

    def __init__(self, bucket: Optional[str] = None, *, client: Any = None) -> None:
        self.bucket = bucket or settings.AWS_BUCKET_NAME
        if not self.bucket:
            raise StorageError("AWS_BUCKET_NAME not configured")
        if client is None:
            try:
                client = boto_client(
                    "s3",
                    endpoint_url=settings.AWS_S3_ENDPOINT_URL,
                    signature_version="s3v4",
                    s3={"addressing_style": "virtual"},
                )
            except (BotoCoreError, ValueError) as e:  # pragma: no cover
                raise StorageError(f"Failed to create S3 client: {e}") from e
        self.client = client

    def __repr__(self) -> str:  # pragma: no cover
        return f"S3ObjectStore(bucket={self.bucket})"

    def uri_for(self, path: str) -> str:
        return f"s3://{self.bucket}/{normalize_key(path, allow_folder=True)}"

    # ────────────────────────────────────────────────────────────────────────
    # 🚀 Object I/O
    # ────────────────────────────────────────────────────────────────────────

    async def put(self, path: str, data: bytes, content_type: str, cache_control: Optional[str] = None) -> None:
        key = normalize_key(path)
        args: Dict[str, Any] = {"Bucket": self.bucket, "Key": key, "Body": data, "ContentType": content_type}
        if cache_control:
            args["CacheControl"] = cache_control
        try:
            await asyncio.to_thread(self.client.put_object, **args)
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to upload object: {e}") from e

    async def get_text(self, path: str) -> str:
        key = normalize_key(path)
        try:
            resp = await asyncio.to_thread(self.client.get_object, Bucket=self.bucket, Key=key)
            body = await asyncio.to_thread(resp["Body"].read)
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to read object: {e}") from e
        try:
            return body.decode("utf-8")
        except UnicodeDecodeError as e:
            raise StorageError("Object is not valid UTF-8 text") from e

    async def list_by_prefix(self, prefix: str) -> List[str]:
        pfx = normalize_folder(prefix)
        return await asyncio.to_thread(self._list_sync, pfx)

    def _list_sync(self, prefix: str) -> List[str]:
        keys: List[str] = []
        try:
            paginator = self.client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                keys.extend(obj["Key"] for obj in page.get("Contents", []) or [])
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to list objects: {e}") from e
        return keys

    async def delete_by_prefix(self, prefix: str) -> int:
        pfx = normalize_folder(prefix)
        keys = await self.list_by_prefix(pfx)
        deleted = 0
        for i in range(0, len(keys), self._DELETE_BATCH):
            batch = keys[i : i + self._DELETE_BATCH]
            try:
                resp = await asyncio.to_thread(
                    self.client.delete_objects,
                    Bucket=self.bucket,
                    Delete={"Objects": [{"Key": k} for k in batch], "Quiet": True},
                )
            except (BotoCoreError, ClientError) as e:
                raise StorageError(f"Failed to delete objects: {e}") from e
            errors = resp.get("Errors") or []
            if errors:
                raise StorageError(f"Failed to delete {len(errors)} object(s) under {pfx}")
            deleted += len(batch)
        return deleted

    # ────────────────────────────────────────────────────────────────────────
    # 🔐 Signed URLs
    # ────────────────────────────────────────────────────────────────────────

    async def signed_read(self, path: str, ttl: int) -> str:
        key = normalize_key(path)
        try:
            url = await asyncio.to_thread(
                self.client.generate_presigned_url,
                ClientMethod="get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=int(ttl),
            )
        except (BotoCoreError, ClientError) as e:
            inc_signed_url("read", "error")
            raise StorageError(f"Failed to create presigned GET: {e}") from e
        inc_signed_url("read", "ok")
        return url

    async def signed_write(self, folder: str, extension: str, ttl: int) -> SignedWrite:
        ext = str(extension or "").strip().lstrip(".").lower()
        if not _EXT_RE.fullmatch(ext):
            raise StorageError("Invalid file extension")
        key = f"{normalize_folder(folder)}{uuid.uuid4().hex}.{ext}"
        content_type = mimetypes.guess_type(key)[0] or "application/octet-stream"
        try:
            url = await asyncio.to_thread(
                self.client.generate_presigned_url,
                ClientMethod="put_object",
                Params={"Bucket": self.bucket, "Key": key, "ContentType": content_type},
                ExpiresIn=int(ttl),
                HttpMethod="PUT",
            )
        except (BotoCoreError, ClientError) as e:
            inc_signed_url("write", "error")
            raise StorageError(f"Failed to create presigned PUT: {e}") from e
        inc_signed_url("write", "ok")
        return SignedWrite(url=url, path=key)


__all__ = [
    "StorageError",
    "SignedWrite",
    "ObjectStore",
    "S3ObjectStore",
    "normalize_key",
    "normalize_folder",
    "boto_client",
]
