from __future__ import annotations

"""
📝 StreamVault • Manifest Rewriter
=================================

Turns a freshly transcoded HLS playlist into a self-contained set of expiring
references: every segment line is replaced with its own presigned GET URL and
the rewritten playlist is uploaded back over the original.

Line classification (`classify_line`)
-------------------------------------
- ``SEGMENT``     non-comment line naming a file with a media-segment extension
                  (``.ts .m4s .aac .m4a .mp4 .vtt``; query strings ignored)
- ``VARIANT``     non-comment line naming a nested ``.m3u8`` (master playlists)
- ``PASSTHROUGH`` everything else: tags, comments, blanks, absolute URLs

Passthrough lines are copied byte-for-byte; line order and count never change.

Master playlists
----------------
Each ``VARIANT`` is rewritten first (one level deep) and then replaced by the
signed URL of the rewritten variant.

Source copies
-------------
Before publishing, the untouched text is kept at ``<playlist>.source`` so the
playlist can be re-signed later (`rewrite(..., from_source=True)`) without
re-scanning already signed URLs.

Failure policy
--------------
The master and all of its variants are fetched, signed and reassembled in
memory before the first upload. Any storage or signing failure in that phase
aborts the rewrite with ``StorageFailure`` and nothing is uploaded.
"""

import asyncio
import enum
import logging
import posixpath
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from streamvault.core.exceptions import StorageFailure
from streamvault.utils.aws import ObjectStore, StorageError

logger = logging.getLogger(__name__)

MANIFEST_CONTENT_TYPE = "application/vnd.apple.mpegurl"
SEGMENT_EXTENSIONS: Tuple[str, ...] = (".ts", ".m4s", ".aac", ".m4a", ".mp4", ".vtt")
PLAYLIST_EXTENSION = ".m3u8"
SOURCE_SUFFIX = ".source"
MAX_VARIANT_DEPTH = 1


class LineKind(str, enum.Enum):
    SEGMENT = "segment"
    VARIANT = "variant"
    PASSTHROUGH = "passthrough"


def classify_line(line: str) -> LineKind:
    """Decide whether a playlist line is a segment ref, a variant ref, or neither."""
    s = line.strip()
    if not s or s.startswith("#") or "://" in s:
        return LineKind.PASSTHROUGH
    name = s.split("?", 1)[0].lower()
    if name.endswith(SEGMENT_EXTENSIONS):
        return LineKind.SEGMENT
    if name.endswith(PLAYLIST_EXTENSION):
        return LineKind.VARIANT
    return LineKind.PASSTHROUGH


def _split_line(raw: str) -> Tuple[str, str]:
    """Split ``raw`` into (content, line ending)."""
    body = raw.rstrip("\r\n")
    return body, raw[len(body):]


def _object_path(folder: str, ref: str) -> str:
    name = ref.strip().split("?", 1)[0]
    return posixpath.normpath(posixpath.join(folder, name)).lstrip("/")


@dataclass(frozen=True)
class RewriteResult:
    signed_playlist_url: str
    first_segment_path: Optional[str]
    segment_count: int


@dataclass
class _Rendered:
    """One playlist signed in memory, waiting to be uploaded."""

    playlist_path: str
    text: str
    signed_url: str
    first_segment_path: Optional[str]
    segment_count: int
    source_text: Optional[str] = None  # set when the pristine copy must be kept
    variants: List["_Rendered"] = field(default_factory=list)


class ManifestRewriter:
    """Signs every segment of a playlist and republishes it."""

    def __init__(
        self,
        store: ObjectStore,
        *,
        concurrency: int = 16,
        cache_seconds: int = 30,
        preserve_source: bool = True,
    ) -> None:
        self.store = store
        self.concurrency = max(1, int(concurrency))
        self.cache_control = f"private, max-age={int(cache_seconds)}"
        self.preserve_source = preserve_source

    async def rewrite(
        self,
        playlist_path: str,
        output_folder: str,
        expiry: int,
        *,
        from_source: bool = False,
    ) -> RewriteResult:
        """Rewrite ``playlist_path`` in place; returns its signed URL and first segment path."""
        sem = asyncio.Semaphore(self.concurrency)
        try:
            rendered = await self._render(playlist_path, output_folder, int(expiry), sem, from_source, depth=0)
            await self._publish(rendered)
        except StorageError as e:
            logger.warning("Manifest rewrite failed for %s: %s", playlist_path, e)
            raise StorageFailure(f"Manifest rewrite failed: {e}", details={"playlist": playlist_path}) from e
        logger.info("Rewrote %s (%d segment refs)", playlist_path, rendered.segment_count)
        return RewriteResult(
            signed_playlist_url=rendered.signed_url,
            first_segment_path=rendered.first_segment_path,
            segment_count=rendered.segment_count,
        )

    async def _render(
        self,
        playlist_path: str,
        folder: str,
        expiry: int,
        sem: asyncio.Semaphore,
        from_source: bool,
        *,
        depth: int,
    ) -> _Rendered:
        # ── [Step 1] Fetch + classify ───────────────────────────────────────
        source_path = playlist_path + SOURCE_SUFFIX
        text = await self.store.get_text(source_path if from_source else playlist_path)
        lines: List[Tuple[str, str]] = [_split_line(raw) for raw in text.splitlines(keepends=True)]
        kinds = [classify_line(body) for body, _ in lines]

        segments: Dict[str, str] = {}  # object path → signed URL (filled below)
        variants: Dict[str, str] = {}
        first_segment: Optional[str] = None
        for (body, _), kind in zip(lines, kinds):
            if kind is LineKind.SEGMENT:
                path = _object_path(folder, body)
                segments.setdefault(path, "")
                first_segment = first_segment or path
            elif kind is LineKind.VARIANT and depth < MAX_VARIANT_DEPTH:
                variants.setdefault(_object_path(folder, body), "")

        # ── [Step 2] Nested variant playlists (master only) ─────────────────
        children: List[_Rendered] = []
        segment_count = len(segments)
        for vpath in variants:
            vfolder = posixpath.dirname(vpath)
            vfolder = f"{vfolder}/" if vfolder else ""
            child = await self._render(vpath, vfolder, expiry, sem, from_source, depth=depth + 1)
            variants[vpath] = child.signed_url
            children.append(child)
            segment_count += child.segment_count
            first_segment = first_segment or child.first_segment_path

        # ── [Step 3] Sign all segments concurrently (bounded) ───────────────
        async def _sign(path: str) -> Tuple[str, str]:
            async with sem:
                return path, await self.store.signed_read(path, expiry)

        signed = await asyncio.gather(*(_sign(p) for p in segments))
        for path, url in signed:
            if not url:
                raise StorageError(f"Empty signed URL for {path}")
            segments[path] = url

        # ── [Step 4] Reassemble, order and line count preserved ─────────────
        out: List[str] = []
        for (body, ending), kind in zip(lines, kinds):
            if kind is LineKind.SEGMENT:
                out.append(segments[_object_path(folder, body)] + ending)
            elif kind is LineKind.VARIANT and depth < MAX_VARIANT_DEPTH:
                out.append(variants[_object_path(folder, body)] + ending)
            else:
                out.append(body + ending)

        # Presigning needs no existing object, so the URL is minted before upload
        url = await self.store.signed_read(playlist_path, expiry)
        if not url:
            raise StorageError(f"Empty signed URL for {playlist_path}")
        return _Rendered(
            playlist_path=playlist_path,
            text="".join(out),
            signed_url=url,
            first_segment_path=first_segment,
            segment_count=segment_count,
            source_text=text if self.preserve_source and not from_source else None,
            variants=children,
        )

    async def _publish(self, rendered: _Rendered) -> None:
        # Variants before the master that points at them; pristine copy before its playlist
        for child in rendered.variants:
            await self._publish(child)
        if rendered.source_text is not None:
            await self.store.put(
                rendered.playlist_path + SOURCE_SUFFIX,
                rendered.source_text.encode("utf-8"),
                MANIFEST_CONTENT_TYPE,
                "no-store",
            )
        await self.store.put(
            rendered.playlist_path, rendered.text.encode("utf-8"), MANIFEST_CONTENT_TYPE, self.cache_control
        )


__all__ = [
    "LineKind",
    "classify_line",
    "ManifestRewriter",
    "RewriteResult",
    "MANIFEST_CONTENT_TYPE",
    "SEGMENT_EXTENSIONS",
    "SOURCE_SUFFIX",
]
