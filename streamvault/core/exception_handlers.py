from __future__ import annotations

"""
Problem+JSON exception handlers (RFC 7807).

Installed by `streamvault.main.create_app`. Every HTTP error is rendered as
application/problem+json; `AppException` subclasses additionally carry a
stable `kind` so clients can branch without parsing messages.
"""

import logging
from typing import Optional

from fastapi import Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from streamvault.core.exceptions import AppException, BadRequest

logger = logging.getLogger(__name__)

PROBLEM_MEDIA_TYPE = "application/problem+json"


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "") or "N/A"


def problem_response(exc: AppException, *, instance: str, request_id: Optional[str] = None) -> JSONResponse:
    """Render an `AppException` outside of FastAPI's handler chain (e.g. from middleware)."""
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_problem(instance=instance, request_id=request_id),
        headers=exc.headers,
        media_type=PROBLEM_MEDIA_TYPE,
    )


def _problem(title: str, detail: str, status_code: int, request: Request) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "type": "about:blank",
            "title": title,
            "detail": detail,
            "status": status_code,
            "instance": str(request.url.path),
            "request_id": _request_id(request),
        },
        media_type=PROBLEM_MEDIA_TYPE,
    )


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:  # type: ignore
    if exc.status_code >= 500:
        logger.warning("%s on %s: %s", exc.kind, request.url.path, exc.message)
    return problem_response(exc, instance=str(request.url.path), request_id=_request_id(request))


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:  # type: ignore
    title = exc.__class__.__name__.replace("Exception", "").strip() or "Error"
    detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    response = _problem(title, detail, exc.status_code, request)
    for k, v in (getattr(exc, "headers", None) or {}).items():
        response.headers[k] = v
    return response


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:  # type: ignore
    # Malformed bodies, params and headers share the BadRequest kind and status
    bad = BadRequest("Validation error", extra={"errors": jsonable_encoder(exc.errors())})
    return problem_response(bad, instance=str(request.url.path), request_id=_request_id(request))


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:  # type: ignore
    # Hide internals; the stack trace goes to the log only.
    logger.exception("Unhandled error on %s", request.url.path)
    return _problem("Internal Server Error", "An unexpected error occurred.", status.HTTP_500_INTERNAL_SERVER_ERROR, request)


__all__ = [
    "PROBLEM_MEDIA_TYPE",
    "problem_response",
    "app_exception_handler",
    "http_exception_handler",
    "validation_exception_handler",
    "global_exception_handler",
]
