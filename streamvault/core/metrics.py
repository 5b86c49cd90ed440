from __future__ import annotations

"""Prometheus counters for ingestion, transcoding, signing, playback tokens and the limiter.

Helpers never raise; a broken metrics backend must not fail a request.
"""

from prometheus_client import Counter

ingestions_total = Counter(
    "streamvault_ingestions_total",
    "Episode ingestion outcomes",
    labelnames=("result",),
)
transcode_jobs_total = Counter(
    "streamvault_transcode_jobs_total",
    "Transcode jobs by terminal state",
    labelnames=("state",),
)
signed_urls_total = Counter(
    "streamvault_signed_urls_total",
    "Signed URL generations",
    labelnames=("kind", "result"),
)
playback_tokens_total = Counter(
    "streamvault_playback_tokens_total",
    "Playback tokens issued/verified",
    labelnames=("action", "result"),
)
limiter_blocks_total = Counter(
    "streamvault_limiter_blocks_total",
    "Requests rejected by the sliding-window limiter",
)


def inc_ingestion(result: str) -> None:
    try:
        ingestions_total.labels(result=result).inc()
    except Exception:  # pragma: no cover
        pass


def inc_transcode_job(state: str) -> None:
    try:
        transcode_jobs_total.labels(state=state).inc()
    except Exception:  # pragma: no cover
        pass


def inc_signed_url(kind: str, result: str) -> None:
    try:
        signed_urls_total.labels(kind=kind, result=result).inc()
    except Exception:  # pragma: no cover
        pass


def inc_playback_token(action: str, result: str) -> None:
    try:
        playback_tokens_total.labels(action=action, result=result).inc()
    except Exception:  # pragma: no cover
        pass


def inc_limiter_block() -> None:
    try:
        limiter_blocks_total.inc()
    except Exception:  # pragma: no cover
        pass


__all__ = [
    "inc_ingestion",
    "inc_transcode_job",
    "inc_signed_url",
    "inc_playback_token",
    "inc_limiter_block",
]
