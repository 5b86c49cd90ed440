# streamvault/core/exceptions.py
from __future__ import annotations

"""
StreamVault — Application Exceptions
====================================
A small, consistent layer on top of FastAPI/Starlette's `HTTPException` that
attaches a stable machine-readable `kind` to every error and integrates with
the problem+json shape rendered by `streamvault.core.exception_handlers`.

Taxonomy
--------
| kind             | status | raised by                                   |
|------------------|--------|---------------------------------------------|
| BadRequest       | 400    | input validation (ingestion, uploads)       |
| NotFound         | 404    | series/episode/track lookups                |
| InvalidDeviceId  | 400    | DeviceGuard                                 |
| InvalidToken     | 401    | TokenVault.verify (single generic message)  |
| RateLimited      | 429    | RateLimiter (carries `retry_after`)         |
| UpstreamFailure  | 502    | transcode submit/Failed/TimedOut            |
| StorageFailure   | 503    | object store read/write/list/sign           |
| Conflict         | 409    | episode number collision within a series    |

Usage
-----
    raise NotFound("Series not found", details={"series_id": sid})
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status

__all__ = [
    "AppException",
    "BadRequest",
    "NotFound",
    "InvalidDeviceId",
    "InvalidToken",
    "RateLimited",
    "UpstreamFailure",
    "StorageFailure",
    "Conflict",
]


# ──────────────────────────────────────────────────────────────
# 📦 Core: AppException
# ──────────────────────────────────────────────────────────────
class AppException(HTTPException):
    """Base application-level exception with a stable `kind`.

    Attributes
    -----------
    status_code : int
        HTTP status code.
    message : str
        Human-readable error message (serialized as `detail` as well).
    kind : str
        Stable machine-readable error kind (class attribute by default).
    details : dict | list | str | None
        Machine-readable details (e.g., offending field, language).
    extra : dict | None
        Additional non-sensitive top-level fields for the problem body.
    headers : dict | None
        Optional headers (e.g., `{"Retry-After": "30"}`).
    """

    kind: str = "Error"
    default_status: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Unexpected error"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        status_code: Optional[int] = None,
        details: Optional[Any] = None,
        extra: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        msg = message or self.default_message
        super().__init__(status_code=status_code or self.default_status, detail=msg, headers=headers)
        self.message: str = msg
        self.details: Optional[Any] = details
        self.extra: Dict[str, Any] = extra or {}

    def __str__(self) -> str:
        return f"{self.kind}: {self.message}"

    # ── [Helper] Canonical body used by handlers ───────────────────────────
    def to_problem(self, *, instance: str = "", request_id: Optional[str] = None) -> Dict[str, Any]:
        """Return a problem+json body for this error."""
        body: Dict[str, Any] = {
            "type": "about:blank",
            "title": self.kind,
            "status": self.status_code,
            "detail": self.message,
            "kind": self.kind,
            "instance": instance,
            "request_id": request_id or "N/A",
        }
        if self.details is not None:
            body["details"] = self.details
        extra_sanitized = dict(self.extra)
        for k in ("token", "authorization", "password", "secret", "url"):
            extra_sanitized.pop(k, None)
        body.update(extra_sanitized)
        return body


# ──────────────────────────────────────────────────────────────
# 🧾 Input / lookup errors
# ──────────────────────────────────────────────────────────────
class BadRequest(AppException):
    """Client input is malformed (missing fields, bad language code, too many videos)."""

    kind = "BadRequest"
    default_status = status.HTTP_400_BAD_REQUEST
    default_message = "Bad request"


class NotFound(AppException):
    kind = "NotFound"
    default_status = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class Conflict(AppException):
    """Episode number already taken within the series."""

    kind = "Conflict"
    default_status = status.HTTP_409_CONFLICT
    default_message = "Conflict"


# ──────────────────────────────────────────────────────────────
# 🔐 Access-control errors
# ──────────────────────────────────────────────────────────────
class InvalidDeviceId(AppException):
    kind = "InvalidDeviceId"
    default_status = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid device ID format"


class InvalidToken(AppException):
    """Raised for every token verification failure; the message never varies."""

    kind = "InvalidToken"
    default_status = status.HTTP_401_UNAUTHORIZED
    default_message = "Invalid or expired token"

    def __init__(self) -> None:
        super().__init__()


class RateLimited(AppException):
    kind = "RateLimited"
    default_status = status.HTTP_429_TOO_MANY_REQUESTS
    default_message = "Too many requests"

    def __init__(self, retry_after: int, message: Optional[str] = None) -> None:
        retry_after = max(1, int(retry_after))
        super().__init__(
            message,
            extra={"retry_after": retry_after},
            headers={"Retry-After": str(retry_after)},
        )
        self.retry_after = retry_after


# ──────────────────────────────────────────────────────────────
# ☁️ Dependency failures
# ──────────────────────────────────────────────────────────────
class UpstreamFailure(AppException):
    """Transcode submission failed, or the job ended Failed/TimedOut."""

    kind = "UpstreamFailure"
    default_status = status.HTTP_502_BAD_GATEWAY
    default_message = "Upstream transcoding failure"


class StorageFailure(AppException):
    kind = "StorageFailure"
    default_status = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "Storage unavailable"
