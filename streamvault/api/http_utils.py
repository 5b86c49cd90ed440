from __future__ import annotations

"""
StreamVault · HTTP Utilities
============================

Shared helpers for API routers. Token and signed-URL responses must never be
cached by intermediaries, so they all go through `json_no_store`.
"""

from typing import Any, Optional

from fastapi import Response
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from streamvault.security_headers import set_sensitive_cache

__all__ = ["json_no_store"]


def json_no_store(
    payload: Any,
    status_code: int = 200,
    *,
    response: Optional[Response] = None,
) -> JSONResponse:
    """
    Return a JSON response with strict `no-store` caching.

    Accepts Pydantic models, dataclasses or plain containers. Propagates
    `Location` from an upstream Response if supplied.
    """
    resp = JSONResponse(content=jsonable_encoder(payload), status_code=status_code)
    set_sensitive_cache(resp)
    if response is not None and "Location" in response.headers:
        resp.headers["Location"] = response.headers["Location"]
    return resp
