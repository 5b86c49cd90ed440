# tests/conftest.py
"""
Global test bootstrap
- Seeds the secrets and AWS settings BEFORE anything imports `streamvault`
  (Settings is instantiated at import time).
- Runs async tests on asyncio through the anyio plugin.
- Pulls in the shared fakes and app fixtures.
"""

from __future__ import annotations

import os

import pytest

# ──────────────────────────────────────────────────────────────────────────────
# 🌱 Test env (must precede streamvault imports)
# ──────────────────────────────────────────────────────────────────────────────
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret-key-0123456789abcdef")
os.environ.setdefault(
    "TOKEN_ENCRYPTION_KEY",
    "00112233445566778899aabbccddeeff00112233445566778899aabbccddeeff",
)
os.environ.setdefault("DEVICE_ID_SALT", "test-device-salt-0123456789")
os.environ.setdefault("AWS_BUCKET_NAME", "streamvault-test")
os.environ.setdefault("AWS_REGION", "us-east-1")
os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")
os.environ.setdefault("MEDIACONVERT_ROLE_ARN", "arn:aws:iam::123456789012:role/MediaConvertRole")
os.environ.setdefault("MEDIACONVERT_ENDPOINT_URL", "https://mediaconvert.us-east-1.amazonaws.com")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("LOG_TO_FILE", "0")


@pytest.fixture(scope="session", autouse=True)
def anyio_backend():
    return "asyncio"


# ──────────────────────────────────────────────────────────────────────────────
# 📦 Shared fixtures
# ──────────────────────────────────────────────────────────────────────────────
from tests.fixtures.fakes import *  # noqa: E402,F401,F403
from tests.fixtures.app import *    # noqa: E402,F401,F403
