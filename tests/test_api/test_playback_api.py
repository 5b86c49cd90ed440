# tests/test_api/test_playback_api.py
import pytest

from tests.fixtures.app import DEVICE_ID, OTHER_DEVICE_ID

OBJECT = "hls/ep-1/en/playlist.m3u8"


async def _token(client, device=DEVICE_ID, **extra):
    resp = await client.post(
        "/api/v1/playback/token",
        json={"object_path": OBJECT, **extra},
        headers={"X-Device-ID": device},
    )
    assert resp.status_code == 200, resp.text
    return resp.json()


@pytest.mark.anyio
async def test_issue_token_is_no_store(client):
    resp = await client.post(
        "/api/v1/playback/token", json={"object_path": OBJECT}, headers={"X-Device-ID": DEVICE_ID}
    )
    assert resp.status_code == 200
    assert resp.headers["cache-control"] == "no-store"
    assert OBJECT not in resp.text


@pytest.mark.anyio
async def test_redeem_redirects_to_presigned_get(client):
    token = (await _token(client))["token"]
    resp = await client.get(
        "/api/v1/playback/redeem", params={"token": token}, headers={"X-Device-ID": DEVICE_ID}
    )
    assert resp.status_code == 307
    assert resp.headers["location"].startswith(f"https://cdn.example.test/{OBJECT}?")
    assert resp.headers["cache-control"] == "no-store"


@pytest.mark.anyio
async def test_redeem_as_json(client):
    token = (await _token(client))["token"]
    resp = await client.get(
        "/api/v1/playback/redeem",
        params={"token": token, "redirect": "false"},
        headers={"X-Device-ID": DEVICE_ID},
    )
    assert resp.status_code == 200
    assert resp.json()["url"].startswith(f"https://cdn.example.test/{OBJECT}?")


@pytest.mark.anyio
async def test_token_unusable_from_other_device(client):
    token = (await _token(client))["token"]
    other = await client.get(
        "/api/v1/playback/redeem", params={"token": token}, headers={"X-Device-ID": OTHER_DEVICE_ID}
    )
    garbage = await client.get(
        "/api/v1/playback/redeem", params={"token": token[:-4] + "AAAA"}, headers={"X-Device-ID": DEVICE_ID}
    )

    for resp in (other, garbage):
        assert resp.status_code == 401
        assert resp.json()["kind"] == "InvalidToken"
    assert other.json()["detail"] == garbage.json()["detail"]


@pytest.mark.anyio
async def test_missing_device_header_is_400(client):
    del client.headers["X-Device-ID"]
    resp = await client.post("/api/v1/playback/token", json={"object_path": OBJECT})
    assert resp.status_code == 400
    assert resp.json()["kind"] == "InvalidDeviceId"


@pytest.mark.anyio
async def test_malformed_device_header_is_400(client, fake_store):
    resp = await client.post(
        "/api/v1/playback/token", json={"object_path": OBJECT}, headers={"X-Device-ID": "bad id!"}
    )
    assert resp.status_code == 400
    assert resp.json()["kind"] == "InvalidDeviceId"
    assert fake_store.signed == []


@pytest.mark.anyio
async def test_upload_url(client):
    resp = await client.post("/api/v1/uploads/signed-url", json={"extension": ".mp4"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["path"].startswith("uploads/") and data["path"].endswith(".mp4")
    assert data["source_uri"] == f"s3://streamvault-test/{data['path']}"
    assert resp.headers["cache-control"] == "no-store"


@pytest.mark.anyio
async def test_upload_url_bad_extension(client):
    resp = await client.post("/api/v1/uploads/signed-url", json={"extension": "mp4;x"})
    assert resp.status_code == 400
    assert resp.json()["kind"] == "BadRequest"


@pytest.mark.anyio
async def test_upload_url_requires_device(client):
    resp = await client.post(
        "/api/v1/uploads/signed-url", json={"extension": "mp4"}, headers={"X-Device-ID": "bad id!"}
    )
    assert resp.status_code == 400
    assert resp.json()["kind"] == "InvalidDeviceId"
