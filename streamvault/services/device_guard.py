from __future__ import annotations

"""
🛡️ StreamVault • Device Guard
=============================

Validates client-supplied device identifiers and derives a stable,
pseudonymous fingerprint from them.

- Accepted ids: 8–64 chars of ``[A-Za-z0-9.]`` (e.g. ``BP22.250325.006``).
- Fingerprint: ``HMAC-SHA256(salt, device_id)`` as lowercase hex. The raw id
  is never stored or logged; only the fingerprint leaves this module.
- The salt is process-wide configuration (``DEVICE_ID_SALT``).
"""

import hashlib
import hmac
import re
from typing import Optional

from streamvault.core.exceptions import InvalidDeviceId

DEVICE_ID_RE = re.compile(r"^[A-Za-z0-9.]{8,64}$")


def is_valid_device_id(raw: Optional[str]) -> bool:
    return isinstance(raw, str) and DEVICE_ID_RE.fullmatch(raw) is not None


class DeviceGuard:
    """Device id validator + keyed fingerprinting."""

    __slots__ = ("_salt",)

    def __init__(self, salt: str | bytes) -> None:
        if isinstance(salt, str):
            salt = salt.encode("utf-8")
        if not salt:
            raise ValueError("device salt must not be empty")
        self._salt = salt

    def validate_device_id(self, raw: Optional[str]) -> str:
        """Return ``raw`` unchanged when valid, else raise `InvalidDeviceId`."""
        if not is_valid_device_id(raw):
            raise InvalidDeviceId()
        return raw  # type: ignore[return-value]

    def fingerprint(self, raw: str) -> str:
        """Deterministic one-way fingerprint of a (validated) device id."""
        return hmac.new(self._salt, raw.encode("utf-8"), hashlib.sha256).hexdigest()

    def matches(self, raw: str, fingerprint: str) -> bool:
        return hmac.compare_digest(self.fingerprint(raw), fingerprint)


__all__ = ["DEVICE_ID_RE", "DeviceGuard", "is_valid_device_id"]
