# streamvault/core/logger.py
from __future__ import annotations

"""
StreamVault — Logging (Loguru)
------------------------------
One Loguru pipeline for the whole process:

- console sink, pretty by default or one JSON object per line (`LOG_JSON=1`)
- optional rotating file sink (`LOG_TO_FILE=1`)
- stdlib loggers (uvicorn, fastapi, `streamvault.*` modules using
  ``logging.getLogger(__name__)``) are intercepted and re-emitted here
- `request_id` (bound by RequestIDMiddleware) is attached to every line
- presigned query strings are masked before any sink sees the message, so a
  signed URL that slips into a log line is not replayable

Env
---
LOG_LEVEL=INFO|DEBUG|WARNING|ERROR (default: INFO)
LOG_JSON=1
LOG_TO_FILE=1, LOG_DIR=logs, LOG_FILE=streamvault.log, LOG_ROTATION=10 MB
APP_DEBUG=1 (backtrace/diagnose on the console sink)
"""

import json
import logging
import os
import re
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict

from dotenv import load_dotenv
from loguru import logger

load_dotenv()

_TRUTHY = {"1", "true", "yes", "on"}

# Loggers routed through the intercept handler
INTERCEPTED_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access", "fastapi", "starlette", "streamvault")

# Promoted to top-level JSON fields when bound
CONTEXT_FIELDS = ("request_id", "episode_id", "language", "job_id")

_SIGNED_QUERY_RE = re.compile(r"(https?://[^\s?]+)\?[^\s]*(?:X-Amz-Signature|Signature)=[^\s]*")


def _env_flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in _TRUTHY


@dataclass(frozen=True)
class LogConfig:
    level: str = "INFO"
    json_logs: bool = False
    debug: bool = False
    to_file: bool = False
    log_dir: Path = Path("logs")
    log_file: str = "streamvault.log"
    rotation: str = "10 MB"

    @classmethod
    def from_env(cls) -> "LogConfig":
        return cls(
            level=os.getenv("LOG_LEVEL", "INFO").upper(),
            json_logs=_env_flag("LOG_JSON"),
            debug=_env_flag("APP_DEBUG"),
            to_file=_env_flag("LOG_TO_FILE"),
            log_dir=Path(os.getenv("LOG_DIR", "logs")),
            log_file=os.getenv("LOG_FILE", "streamvault.log"),
            rotation=os.getenv("LOG_ROTATION", "10 MB"),
        )


# ─────────────────────────────────────────────────────────────
# 🔏 Redaction
# ─────────────────────────────────────────────────────────────
def redact_signed_urls(text: str) -> str:
    """Replace the query string of any presigned URL with ``?<signed>``."""
    return _SIGNED_QUERY_RE.sub(r"\1?<signed>", text)


def _patch_record(record) -> None:
    record["message"] = redact_signed_urls(record["message"])
    record["extra"].setdefault("request_id", "N/A")


# ─────────────────────────────────────────────────────────────
# 🧾 Formatters
# ─────────────────────────────────────────────────────────────
def _fmt_pretty(record) -> str:
    name = record["name"].replace("<", "[").replace(">", "]")
    return (
        "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
        f"<cyan>{name}</cyan>:<cyan>{{line}}</cyan> - "
        "<level>{message}</level> | rid={extra[request_id]}\n{exception}"
    )


def _fmt_json(record) -> str:
    payload: Dict[str, Any] = {
        "time": record["time"].isoformat(),
        "level": record["level"].name,
        "logger": record["name"],
        "line": record["line"],
        "message": record["message"],
    }
    extra = record["extra"]
    for key in CONTEXT_FIELDS:
        if key in extra:
            payload[key] = extra[key]
    if record["exception"] is not None:
        payload["exception"] = repr(record["exception"].value)
    extra["_json"] = json.dumps(payload, ensure_ascii=False, default=str)
    return "{extra[_json]}\n"


# ─────────────────────────────────────────────────────────────
# 🔁 Intercept stdlib logging → Loguru
# ─────────────────────────────────────────────────────────────
class InterceptHandler(logging.Handler):
    """Re-emit stdlib records through Loguru at the caller's frame."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame is not None and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1
        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(config: LogConfig | None = None) -> None:
    """(Re)install sinks and the stdlib intercept. Safe to call more than once."""
    cfg = config or LogConfig.from_env()
    fmt = _fmt_json if cfg.json_logs else _fmt_pretty

    logger.remove()
    logger.configure(patcher=_patch_record)
    logger.add(sys.stdout, level=cfg.level, format=fmt, enqueue=True, backtrace=cfg.debug, diagnose=cfg.debug)
    if cfg.to_file:
        cfg.log_dir.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(cfg.log_dir / cfg.log_file),
            level=cfg.level,
            format=_fmt_json,
            rotation=cfg.rotation,
            enqueue=True,
        )

    for name in INTERCEPTED_LOGGERS:
        std = logging.getLogger(name)
        std.handlers = [InterceptHandler()]
        std.setLevel(cfg.level)
        std.propagate = False


setup_logging()

__all__ = ["InterceptHandler", "LogConfig", "redact_signed_urls", "setup_logging", "logger"]
