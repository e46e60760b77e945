from __future__ import annotations
from datetime import datetime, timedelta, timezone
import threading
import pytest
from conftest import ADMIN, JUDGE_OVERALL, auth, camera_jpeg
from picfight.services.judge_client import JudgeError

PLAYER = "player@ex.com"
OTHER = "other@ex.com"


async def _board(client, **kw):
    body = {
        "name": "Sunset Showdown",
        "is_public": True,
        "max_submissions_per_user": 2,
        "contest_type": "photography",
        "contest_prompt": "Best sunset photos",
        "allow_image_submissions": True,
        "max_image_size": 20 * 1024 * 1024,
    }
    body.update(kw)
    r = await client.post("/boards", json=body, headers=auth(ADMIN))
    assert r.status_code == 201, r.text
    return r.json()


@pytest.mark.asyncio
async def test_text_submission_round_trip(client):
    board = await _board(client)
    r = await client.post(f"/boards/{board['id']}/submissions/text",
                          json={"prompt": "Sunset behind the lighthouse"}, headers=auth("Player@Ex.com"))
    assert r.status_code == 201, r.text
    sub = r.json()
    assert sub["owner_email"] == PLAYER
    assert sub["rating"] == JUDGE_OVERALL and sub["is_processed"] is True
    assert "image_key" not in sub

    mine = (await client.get(f"/boards/{board['id']}/submissions?mine=1", headers=auth(PLAYER))).json()
    assert [s["id"] for s in mine] == [sub["id"]]
    assert (await client.get(f"/boards/{board['id']}/submissions?mine=1", headers=auth(OTHER))).json() == []


@pytest.mark.asyncio
async def test_full_listing_needs_board_management(client):
    board = await _board(client)
    await client.post(f"/boards/{board['id']}/submissions/text", json={"prompt": "a"}, headers=auth(PLAYER))
    assert (await client.get(f"/boards/{board['id']}/submissions?mine=0", headers=auth(OTHER))).status_code == 403
    everything = (await client.get(f"/boards/{board['id']}/submissions?mine=0", headers=auth(ADMIN))).json()
    assert len(everything) == 1


@pytest.mark.asyncio
async def test_rejections_map_to_status_codes(client, judge):
    board = await _board(client, max_submissions_per_user=1)
    url = f"/boards/{board['id']}/submissions/text"
    assert (await client.post(url, json={"prompt": "one"}, headers=auth(PLAYER))).status_code == 201

    r = await client.post(url, json={"prompt": "two"}, headers=auth(PLAYER))
    assert r.status_code == 409
    assert r.json()["detail"]["kind"] == "quota_exceeded"

    private = await _board(client, is_public=False)
    r = await client.post(f"/boards/{private['id']}/submissions/text", json={"prompt": "x"}, headers=auth(PLAYER))
    assert r.status_code == 403

    judge.error = JudgeError("Judge returned HTTP 500")
    r = await client.post(url, json={"prompt": "x"}, headers=auth(OTHER))
    assert r.status_code == 502
    assert r.json()["detail"]["kind"] == "judge_failure"

    r = await client.post("/boards/0b7e7a1e-3333-4000-8000-000000000000/submissions/text",
                          json={"prompt": "x"}, headers=auth(PLAYER))
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_expired_board_is_a_conflict(client):
    past = (datetime.now(timezone.utc) - timedelta(hours=1)).isoformat()
    board = await _board(client, expires_at=past)
    r = await client.post(f"/boards/{board['id']}/submissions/text", json={"prompt": "late"}, headers=auth(PLAYER))
    assert r.status_code == 409
    assert r.json()["detail"]["policy"] == "expired"


@pytest.mark.asyncio
async def test_image_upload_and_rescore(client, judge, object_storage):
    board = await _board(client)
    files = {"file": ("IMG_2041.jpg", camera_jpeg(), "image/jpeg")}
    data = {"last_modified": (datetime.now(timezone.utc) - timedelta(minutes=2)).isoformat()}

    judge.error = JudgeError("timeout")
    r = await client.post(f"/boards/{board['id']}/submissions/image", files=files, data=data, headers=auth(PLAYER))
    assert r.status_code == 502
    submission_id = r.json()["detail"]["submission_id"]
    assert len(object_storage.objects) == 1

    judge.error = None
    r = await client.post(f"/submissions/{submission_id}/rescore", headers=auth(PLAYER))
    assert r.status_code == 200, r.text
    sub = r.json()
    assert sub["id"] == submission_id and sub["is_processed"] is True
    assert sub["image_url"].startswith("https://storage.test/contest-submissions/")


@pytest.mark.asyncio
async def test_stale_image_is_unprocessable(client, judge):
    board = await _board(client)
    files = {"file": ("IMG_2041.jpg", camera_jpeg(), "image/jpeg")}
    data = {"last_modified": (datetime.now(timezone.utc) - timedelta(hours=5)).isoformat()}
    r = await client.post(f"/boards/{board['id']}/submissions/image", files=files, data=data, headers=auth(PLAYER))
    assert r.status_code == 422
    assert any("not recent" in reason for reason in r.json()["detail"]["reasons"])
    assert judge.requests == []


@pytest.mark.asyncio
async def test_delete_submission_frees_quota(client):
    board = await _board(client, max_submissions_per_user=1)
    url = f"/boards/{board['id']}/submissions/text"
    sub = (await client.post(url, json={"prompt": "one"}, headers=auth(PLAYER))).json()

    assert (await client.delete(f"/submissions/{sub['id']}", headers=auth(OTHER))).status_code == 403
    assert (await client.delete(f"/submissions/{sub['id']}", headers=auth(PLAYER))).status_code == 204
    assert (await client.delete(f"/submissions/{sub['id']}", headers=auth(PLAYER))).status_code == 404
    assert (await client.post(url, json={"prompt": "two"}, headers=auth(PLAYER))).status_code == 201


@pytest.mark.asyncio
async def test_image_bytes_are_served_to_owner_and_admin(client):
    board = await _board(client)
    photo = camera_jpeg()
    files = {"file": ("IMG_2041.jpg", photo, "image/jpeg")}
    data = {"last_modified": datetime.now(timezone.utc).isoformat()}
    r = await client.post(f"/boards/{board['id']}/submissions/image", files=files, data=data, headers=auth(PLAYER))
    assert r.status_code == 201, r.text
    sub_id = r.json()["id"]

    r = await client.get(f"/submissions/{sub_id}/image", headers=auth(PLAYER))
    assert r.status_code == 200
    assert r.content == photo and r.headers["content-type"] == "image/jpeg"
    assert (await client.get(f"/submissions/{sub_id}/image", headers=auth(ADMIN))).status_code == 200
    assert (await client.get(f"/submissions/{sub_id}/image", headers=auth(OTHER))).status_code == 403


@pytest.mark.asyncio
async def test_storage_calls_run_off_the_event_loop(client, object_storage, monkeypatch):
    board = await _board(client)
    files = {"file": ("IMG_2041.jpg", camera_jpeg(), "image/jpeg")}
    data = {"last_modified": datetime.now(timezone.utc).isoformat()}
    r = await client.post(f"/boards/{board['id']}/submissions/image", files=files, data=data, headers=auth(PLAYER))
    assert r.status_code == 201, r.text
    sub_id = r.json()["id"]

    loop_thread = threading.get_ident()
    seen = []
    presign, get_bytes = object_storage.presign_get, object_storage.get_bytes

    def presign_get(key):
        seen.append(("presign_get", threading.get_ident()))
        return presign(key)

    def read(key):
        seen.append(("get_bytes", threading.get_ident()))
        return get_bytes(key)

    monkeypatch.setattr(object_storage, "presign_get", presign_get)
    monkeypatch.setattr(object_storage, "get_bytes", read)

    r = await client.get(f"/boards/{board['id']}/submissions", headers=auth(PLAYER))
    assert r.status_code == 200
    assert r.json()[0]["image_url"].startswith("https://storage.test/contest-submissions/")
    assert (await client.get(f"/submissions/{sub_id}/image", headers=auth(PLAYER))).status_code == 200

    assert [name for name, _ in seen] == ["presign_get", "get_bytes"]
    assert all(ident != loop_thread for _, ident in seen)
