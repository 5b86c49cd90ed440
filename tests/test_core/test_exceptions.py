# tests/test_core/test_exceptions.py
import pytest

from streamvault.core.exceptions import (
    AppException,
    BadRequest,
    Conflict,
    InvalidDeviceId,
    InvalidToken,
    NotFound,
    RateLimited,
    StorageFailure,
    UpstreamFailure,
)


@pytest.mark.parametrize(
    "exc, status, kind",
    [
        (BadRequest(), 400, "BadRequest"),
        (NotFound(), 404, "NotFound"),
        (InvalidDeviceId(), 400, "InvalidDeviceId"),
        (InvalidToken(), 401, "InvalidToken"),
        (RateLimited(30), 429, "RateLimited"),
        (UpstreamFailure(), 502, "UpstreamFailure"),
        (StorageFailure(), 503, "StorageFailure"),
        (Conflict(), 409, "Conflict"),
    ],
)
def test_taxonomy_status_and_kind(exc, status, kind):
    assert isinstance(exc, AppException)
    assert exc.status_code == status
    assert exc.kind == kind
    body = exc.to_problem(instance="/x", request_id="rid")
    assert body["status"] == status
    assert body["kind"] == kind
    assert body["title"] == kind
    assert body["instance"] == "/x"
    assert body["request_id"] == "rid"


def test_invalid_token_message_never_varies():
    assert InvalidToken().message == InvalidToken().message == "Invalid or expired token"


def test_rate_limited_carries_retry_after_everywhere():
    exc = RateLimited(12.2)
    assert exc.retry_after == 12
    assert exc.headers == {"Retry-After": "12"}
    assert exc.to_problem()["retry_after"] == 12


def test_rate_limited_retry_after_at_least_one():
    assert RateLimited(0).retry_after == 1


def test_problem_body_includes_details_and_drops_sensitive_extra():
    exc = UpstreamFailure(
        "Transcoding Failed for language 'fr'",
        details={"language": "fr"},
        extra={"url": "https://secret", "job": "j-1"},
    )
    body = exc.to_problem(instance="/api/v1/episodes/ingest")
    assert body["details"] == {"language": "fr"}
    assert body["job"] == "j-1"
    assert "url" not in body
    assert body["request_id"] == "N/A"
