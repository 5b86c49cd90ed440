from __future__ import annotations

"""
▶️ StreamVault • Playback Service
================================

Read-side glue between the catalog, the token vault and the object store:

- issue a device-bound token for an arbitrary object path or for a committed
  episode track's playlist;
- redeem a token into a short-lived presigned GET URL;
- re-sign a committed track's playlist when its playback URL has expired.

Signed URLs are returned to callers only and never logged.
"""

import logging
import posixpath
from typing import Optional

from streamvault.core.exceptions import NotFound, StorageFailure
from streamvault.db.models import EPISODE_STATUS_COMMITTED
from streamvault.repositories.catalog import CatalogStoreProtocol, LanguageTrack
from streamvault.services.manifest_rewriter import ManifestRewriter
from streamvault.services.token_vault import AccessToken, TokenVault
from streamvault.utils.aws import ObjectStore, StorageError

logger = logging.getLogger(__name__)


class PlaybackService:
    def __init__(
        self,
        *,
        catalog: CatalogStoreProtocol,
        store: ObjectStore,
        vault: TokenVault,
        rewriter: ManifestRewriter,
        token_ttl: int = 60,
        max_token_ttl: int = 3600,
        playlist_ttl: int = 3600,
    ) -> None:
        self.catalog = catalog
        self.store = store
        self.vault = vault
        self.rewriter = rewriter
        self.token_ttl = token_ttl
        self.max_token_ttl = max_token_ttl
        self.playlist_ttl = playlist_ttl

    def _ttl(self, requested: Optional[int]) -> int:
        if requested is None:
            return self.token_ttl
        return min(int(requested), self.max_token_ttl)

    async def _committed_track(self, episode_id: str, language: str) -> LanguageTrack:
        record = await self.catalog.find_episode(episode_id)
        if record is None or record.status != EPISODE_STATUS_COMMITTED:
            raise NotFound("Episode not found", details={"episode_id": episode_id})
        track = record.track_for(language)
        if track is None:
            raise NotFound("No track for language", details={"episode_id": episode_id, "language": language})
        return track

    # ── Tokens ──────────────────────────────────────────────────────────────
    def issue_token(
        self,
        object_path: str,
        device_id: str,
        subject_id: Optional[str] = None,
        ttl: Optional[int] = None,
    ) -> AccessToken:
        return self.vault.issue(object_path, device_id, subject_id, self._ttl(ttl))

    async def issue_track_token(
        self,
        episode_id: str,
        language: str,
        device_id: str,
        subject_id: Optional[str] = None,
        ttl: Optional[int] = None,
    ) -> AccessToken:
        track = await self._committed_track(episode_id, language)
        return self.issue_token(track.playlist_path, device_id, subject_id, ttl)

    async def redeem(self, token: str, device_id: str) -> str:
        """Verify ``token`` for ``device_id`` and return a presigned GET for its object."""
        object_path = self.vault.verify(token, device_id)
        try:
            return await self.store.signed_read(object_path, self.playlist_ttl)
        except StorageError as e:
            raise StorageFailure(f"Could not sign object: {e}") from e

    # ── Refresh ─────────────────────────────────────────────────────────────
    async def refresh_hls_url(self, episode_id: str, language: str) -> str:
        """Re-sign a committed track from its pristine playlist source."""
        track = await self._committed_track(episode_id, language)
        folder = posixpath.dirname(track.playlist_path)
        folder = f"{folder}/" if folder else ""
        result = await self.rewriter.rewrite(track.playlist_path, folder, self.playlist_ttl, from_source=True)
        logger.info("Re-signed playlist for episode %s [%s]", episode_id, language)
        return result.signed_playlist_url


__all__ = ["PlaybackService"]
