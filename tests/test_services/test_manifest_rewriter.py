# tests/test_services/test_manifest_rewriter.py
import pytest

from streamvault.core.exceptions import StorageFailure
from streamvault.services.manifest_rewriter import (
    MANIFEST_CONTENT_TYPE,
    LineKind,
    ManifestRewriter,
    classify_line,
)
from tests.fixtures.fakes import MASTER_PLAYLIST, FakeObjectStore, variant_playlist

FOLDER = "hls/ep-1/en/"
TTL = 604800


def _seed(store: FakeObjectStore, path: str, text: str) -> None:
    store.objects[path] = text.encode("utf-8")


@pytest.mark.parametrize(
    "line, kind",
    [
        ("#EXTM3U", LineKind.PASSTHROUGH),
        ("#EXTINF:10.000,", LineKind.PASSTHROUGH),
        ("", LineKind.PASSTHROUGH),
        ("   ", LineKind.PASSTHROUGH),
        ("segment_00001.ts", LineKind.SEGMENT),
        ("SEG.TS", LineKind.SEGMENT),
        ("chunk.m4s?v=2", LineKind.SEGMENT),
        ("audio.aac", LineKind.SEGMENT),
        ("subs/en.vtt", LineKind.SEGMENT),
        ("playlist_sd.m3u8", LineKind.VARIANT),
        ("https://cdn.example.test/a.ts", LineKind.PASSTHROUGH),
        ("notes.txt", LineKind.PASSTHROUGH),
    ],
)
def test_classify_line(line, kind):
    assert classify_line(line) is kind


@pytest.mark.anyio
async def test_segments_replaced_in_place_line_count_preserved():
    store = FakeObjectStore()
    original = variant_playlist(4)
    _seed(store, FOLDER + "index.m3u8", original)

    result = await ManifestRewriter(store).rewrite(FOLDER + "index.m3u8", FOLDER, TTL)

    out_lines = store.text(FOLDER + "index.m3u8").splitlines()
    in_lines = original.splitlines()
    assert len(out_lines) == len(in_lines)
    for before, after in zip(in_lines, out_lines):
        if before.endswith(".ts"):
            assert after.startswith(f"https://cdn.example.test/{FOLDER}{before}?")
            assert f"X-Amz-Expires={TTL}" in after
        else:
            assert after == before

    segment_urls = [ln for ln in out_lines if ln.startswith("https://")]
    assert len(set(segment_urls)) == 4
    assert result.segment_count == 4
    assert result.first_segment_path == FOLDER + "playlist_sd_00001.ts"
    assert result.signed_playlist_url.startswith(f"https://cdn.example.test/{FOLDER}index.m3u8?")
    assert store.content_types[FOLDER + "index.m3u8"] == MANIFEST_CONTENT_TYPE


@pytest.mark.anyio
async def test_original_kept_as_source_copy():
    store = FakeObjectStore()
    original = variant_playlist(2)
    _seed(store, FOLDER + "index.m3u8", original)

    await ManifestRewriter(store).rewrite(FOLDER + "index.m3u8", FOLDER, TTL)

    assert store.text(FOLDER + "index.m3u8.source") == original
    assert store.cache_controls[FOLDER + "index.m3u8.source"] == "no-store"


@pytest.mark.anyio
async def test_master_playlist_rewrites_variants_first():
    store = FakeObjectStore()
    _seed(store, FOLDER + "index.m3u8", MASTER_PLAYLIST)
    _seed(store, FOLDER + "playlist_sd.m3u8", variant_playlist(3))

    result = await ManifestRewriter(store).rewrite(FOLDER + "index.m3u8", FOLDER, TTL)

    master = store.text(FOLDER + "index.m3u8").splitlines()
    assert master[-1].startswith(f"https://cdn.example.test/{FOLDER}playlist_sd.m3u8?")
    assert master[:3] == MASTER_PLAYLIST.splitlines()[:3]

    variant = store.text(FOLDER + "playlist_sd.m3u8")
    assert ".ts\n" not in variant
    assert variant.count("https://cdn.example.test/") == 3
    assert result.segment_count == 3
    assert result.first_segment_path == FOLDER + "playlist_sd_00001.ts"


@pytest.mark.anyio
async def test_crlf_endings_and_absolute_urls_preserved():
    store = FakeObjectStore()
    text = "#EXTM3U\r\n#EXTINF:4,\r\na.ts\r\n#EXTINF:4,\r\nhttps://other.example/b.ts\r\n"
    _seed(store, FOLDER + "index.m3u8", text)

    await ManifestRewriter(store).rewrite(FOLDER + "index.m3u8", FOLDER, TTL)

    out = store.text(FOLDER + "index.m3u8")
    assert out.count("\r\n") == 5
    assert "https://other.example/b.ts\r\n" in out
    assert store.signed.count(FOLDER + "a.ts") == 1
    assert FOLDER + "b.ts" not in store.signed


@pytest.mark.anyio
async def test_query_string_ignored_when_resolving_segment():
    store = FakeObjectStore()
    _seed(store, FOLDER + "index.m3u8", "#EXTM3U\nseg1.m4s?token=abc\n")

    await ManifestRewriter(store).rewrite(FOLDER + "index.m3u8", FOLDER, TTL)

    assert FOLDER + "seg1.m4s" in store.signed
    assert "token=abc" not in store.text(FOLDER + "index.m3u8")


@pytest.mark.anyio
async def test_resign_from_source_yields_fresh_urls():
    store = FakeObjectStore()
    _seed(store, FOLDER + "index.m3u8", variant_playlist(2))
    rewriter = ManifestRewriter(store)

    await rewriter.rewrite(FOLDER + "index.m3u8", FOLDER, TTL)
    first = store.text(FOLDER + "index.m3u8")
    second_result = await rewriter.rewrite(FOLDER + "index.m3u8", FOLDER, 3600, from_source=True)
    second = store.text(FOLDER + "index.m3u8")

    assert first != second
    assert "X-Amz-Expires=3600" in second
    assert len(second.splitlines()) == len(first.splitlines())
    assert second_result.segment_count == 2


@pytest.mark.anyio
async def test_signing_failure_aborts_without_upload():
    store = FakeObjectStore()
    original = variant_playlist(3)
    _seed(store, FOLDER + "index.m3u8", original)
    store.fail_sign.add(FOLDER + "playlist_sd_00002.ts")

    with pytest.raises(StorageFailure) as ei:
        await ManifestRewriter(store).rewrite(FOLDER + "index.m3u8", FOLDER, TTL)

    assert ei.value.status_code == 503
    assert store.text(FOLDER + "index.m3u8") == original
    assert FOLDER + "index.m3u8.source" not in store.objects


@pytest.mark.anyio
async def test_missing_playlist_is_storage_failure():
    with pytest.raises(StorageFailure):
        await ManifestRewriter(FakeObjectStore()).rewrite(FOLDER + "index.m3u8", FOLDER, TTL)


@pytest.mark.anyio
async def test_failed_refresh_republishes_no_variant():
    store = FakeObjectStore()
    master = MASTER_PLAYLIST + "#EXT-X-STREAM-INF:BANDWIDTH=3000000,RESOLUTION=1280x720\nplaylist_hd.m3u8\n"
    _seed(store, FOLDER + "index.m3u8", master)
    _seed(store, FOLDER + "playlist_sd.m3u8", variant_playlist(2))
    _seed(store, FOLDER + "playlist_hd.m3u8", variant_playlist(2, name="playlist_hd"))
    rewriter = ManifestRewriter(store)
    await rewriter.rewrite(FOLDER + "index.m3u8", FOLDER, TTL)
    names = ("index.m3u8", "playlist_sd.m3u8", "playlist_hd.m3u8")
    published = {FOLDER + name: store.text(FOLDER + name) for name in names}

    store.fail_sign.add(FOLDER + "playlist_hd_00002.ts")
    with pytest.raises(StorageFailure):
        await rewriter.rewrite(FOLDER + "index.m3u8", FOLDER, 3600, from_source=True)

    for path, text in published.items():
        assert store.text(path) == text
