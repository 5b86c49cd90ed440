from __future__ import annotations

"""
🔐 StreamVault • Token Vault
===========================

Issues and verifies **device-bound, time-limited playback tokens**.

Token anatomy
-------------
Two layers, both mandatory:

1) **AES-256-GCM** over the JSON payload::

       {"object_path", "fingerprint", "subject_id", "issued_at", "expires_at"}

   giving confidentiality + integrity (ciphertext, 96-bit IV, 128-bit tag).

2) **Signed JWT envelope** (python-jose, HS256 by default) carrying the
   base64url pieces ``ct``/``iv``/``tag`` plus its own ``iat``/``exp``.

Verification
------------
``verify(token, device_id)`` rejects, in order: malformed token, bad signature
or expired envelope, decrypt/tag failure, payload ``expires_at`` in the past
(even if the envelope's ``exp`` has not elapsed), fingerprint mismatch.
Every rejection raises the same ``InvalidToken``; callers and clients can never
tell which check failed.
"""

import base64
import binascii
import json
import os
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from jose import JWTError, jwt

from streamvault.core.exceptions import BadRequest, InvalidDeviceId, InvalidToken
from streamvault.core.metrics import inc_playback_token
from streamvault.services.device_guard import DeviceGuard

_IV_BYTES = 12
_TAG_BYTES = 16
_AAD = b"streamvault.playback.v1"
_TOKEN_TYPE = "playback"


def _b64e(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64d(value: str) -> bytes:
    pad = "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(value + pad)


@dataclass(frozen=True)
class AccessToken:
    token: str
    issued_at: float
    expires_at: float


class TokenVault:
    """Encrypt-then-sign playback token issuer/verifier.

    Parameters
    ----------
    encryption_key : bytes
        32-byte AES-256 key.
    signing_key : str
        HMAC secret for the JWT envelope.
    device_guard : DeviceGuard
        Supplies the device fingerprint bound into each token.
    algorithm : str
        JWT HMAC algorithm (``HS256``/``HS384``/``HS512``).
    clock : callable
        Returns "now" in epoch seconds; injectable for tests.
    """

    def __init__(
        self,
        *,
        encryption_key: bytes,
        signing_key: str,
        device_guard: DeviceGuard,
        algorithm: str = "HS256",
        clock: Callable[[], float] = time.time,
    ) -> None:
        if len(encryption_key) != 32:
            raise ValueError("encryption_key must be 32 bytes")
        self._aead = AESGCM(encryption_key)
        self._signing_key = signing_key
        self._algorithm = algorithm
        self._guard = device_guard
        self._clock = clock

    # ────────────────────────────────────────────────────────────────────────
    # 🔒 Authenticated encryption
    # ────────────────────────────────────────────────────────────────────────
    def encrypt(self, payload: Dict[str, Any]) -> Dict[str, str]:
        """Encrypt a JSON-able payload. Returns base64url ``ct``/``iv``/``tag``."""
        iv = os.urandom(_IV_BYTES)
        plaintext = json.dumps(payload, separators=(",", ":"), sort_keys=True).encode("utf-8")
        sealed = self._aead.encrypt(iv, plaintext, _AAD)
        ct, tag = sealed[:-_TAG_BYTES], sealed[-_TAG_BYTES:]
        return {"ct": _b64e(ct), "iv": _b64e(iv), "tag": _b64e(tag)}

    def decrypt(self, blob: Dict[str, Any]) -> Dict[str, Any]:
        """Inverse of `encrypt`. Raises `InvalidToken` on any failure."""
        try:
            ct = _b64d(str(blob["ct"]))
            iv = _b64d(str(blob["iv"]))
            tag = _b64d(str(blob["tag"]))
            if len(iv) != _IV_BYTES or len(tag) != _TAG_BYTES:
                raise InvalidToken()
            plaintext = self._aead.decrypt(iv, ct + tag, _AAD)
            payload = json.loads(plaintext.decode("utf-8"))
        except (KeyError, TypeError, ValueError, binascii.Error, InvalidTag):
            raise InvalidToken()
        if not isinstance(payload, dict):
            raise InvalidToken()
        return payload

    # ────────────────────────────────────────────────────────────────────────
    # 🎟️ Issue / verify
    # ────────────────────────────────────────────────────────────────────────
    def issue(
        self,
        object_path: str,
        device_id: str,
        subject_id: Optional[str],
        ttl: int,
    ) -> AccessToken:
        """Issue a token for ``object_path`` bound to ``device_id``.

        Raises
        ------
        InvalidDeviceId
            When ``device_id`` is malformed.
        BadRequest
            When ``object_path`` is empty or ``ttl`` is not positive.
        """
        self._guard.validate_device_id(device_id)
        if not object_path or not str(object_path).strip():
            raise BadRequest("object_path is required")
        if int(ttl) <= 0:
            raise BadRequest("ttl must be positive")

        issued_at = float(self._clock())
        expires_at = issued_at + int(ttl)
        payload = {
            "object_path": object_path,
            "fingerprint": self._guard.fingerprint(device_id),
            "subject_id": subject_id,
            "issued_at": issued_at,
            "expires_at": expires_at,
        }
        claims: Dict[str, Any] = dict(self.encrypt(payload))
        claims.update({"typ": _TOKEN_TYPE, "iat": int(issued_at), "exp": int(expires_at) + 1})
        token = jwt.encode(claims, self._signing_key, algorithm=self._algorithm)
        inc_playback_token("issue", "ok")
        return AccessToken(token=token, issued_at=issued_at, expires_at=expires_at)

    def verify(self, token: str, device_id: str) -> str:
        """Return the bound object path, or raise the generic `InvalidToken`."""
        try:
            path = self._verify(token, device_id)
        except InvalidToken:
            inc_playback_token("verify", "rejected")
            raise
        inc_playback_token("verify", "ok")
        return path

    def _verify(self, token: str, device_id: str) -> str:
        if not token or not isinstance(token, str):
            raise InvalidToken()
        try:
            self._guard.validate_device_id(device_id)
        except InvalidDeviceId:
            raise InvalidToken()

        # ── [Step 1] Envelope: signature + exp ──────────────────────────────
        try:
            claims = jwt.decode(token, self._signing_key, algorithms=[self._algorithm])
        except JWTError:
            raise InvalidToken()
        if claims.get("typ") != _TOKEN_TYPE:
            raise InvalidToken()

        # ── [Step 2] Decrypt + authenticate payload ─────────────────────────
        payload = self.decrypt(claims)

        # ── [Step 3] Payload expiry (independent of envelope exp) ───────────
        try:
            expires_at = float(payload["expires_at"])
            object_path = str(payload["object_path"])
            bound_fp = str(payload["fingerprint"])
        except (KeyError, TypeError, ValueError):
            raise InvalidToken()
        if expires_at < self._clock():
            raise InvalidToken()

        # ── [Step 4] Device binding ─────────────────────────────────────────
        if not self._guard.matches(device_id, bound_fp):
            raise InvalidToken()
        return object_path


__all__ = ["AccessToken", "TokenVault"]
