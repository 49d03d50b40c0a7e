from __future__ import annotations

from urllib.parse import urlsplit

import pytest

from core.security import create_upload_ticket
from core.storage import get_blob_store, new_storage_id
from models.property_object import STATUS_COMPLETED, STATUS_RELEASED
import storage.router as storage_router

JPEG_BYTES = b"\xff\xd8\xff\xe0fake-jpeg-payload\xff\xd9"


@pytest.fixture()
def upload(client):
    """Run the two-step upload and return the storage id."""

    def _upload(headers: dict, data: bytes = JPEG_BYTES) -> str:
        target = client.post("/storage/upload-url", headers=headers)
        assert target.status_code == 200, target.text
        body = target.json()
        res = client.put(urlsplit(body["upload_url"]).path, content=data)
        assert res.status_code == 200, res.text
        assert res.json()["storage_id"] == body["storage_id"]
        return body["storage_id"]

    return _upload


def _attach(client, object_id: int, storage_id: str, headers: dict, section: str = "keys", index: int | None = 0):
    return client.post(
        f"/objects/{object_id}/images",
        json={"section": section, "section_index": index, "storage_id": storage_id, "filename": "foto.jpg"},
        headers=headers,
    )


def test_upload_url_requires_session(client) -> None:
    assert client.post("/storage/upload-url").status_code == 401


def test_upload_attach_and_fetch(client, alice_headers, create_object, upload) -> None:
    obj = create_object(alice_headers)
    storage_id = upload(alice_headers)

    res = _attach(client, obj["id"], storage_id, alice_headers)
    assert res.status_code == 201, res.text
    image = res.json()
    assert image["section"] == "keys"
    assert image["section_index"] == 0
    assert image["url"] == f"http://testserver/storage/{storage_id}"

    blob = client.get(urlsplit(image["url"]).path)
    assert blob.status_code == 200
    assert blob.content == JPEG_BYTES
    assert blob.headers["content-type"] == "image/jpeg"


def test_list_images_by_section_and_index(client, alice_headers, create_object, upload) -> None:
    obj = create_object(alice_headers)
    _attach(client, obj["id"], upload(alice_headers), alice_headers, "keys", 0)
    _attach(client, obj["id"], upload(alice_headers), alice_headers, "keys", 1)
    _attach(client, obj["id"], upload(alice_headers), alice_headers, "rooms", 0)

    keys = client.get(f"/objects/{obj['id']}/images", params={"section": "keys"}, headers=alice_headers).json()
    assert [i["section_index"] for i in keys] == [0, 1]

    second = client.get(
        f"/objects/{obj['id']}/images", params={"section": "keys", "section_index": 1}, headers=alice_headers
    ).json()
    assert len(second) == 1

    grouped = client.get(f"/objects/{obj['id']}/images/all", headers=alice_headers).json()
    assert len(grouped["keys"]) == 2
    assert len(grouped["rooms"]) == 1
    assert grouped["meters"] == []


def test_people_section_is_not_accepted(client, alice_headers, create_object, upload) -> None:
    obj = create_object(alice_headers)
    res = _attach(client, obj["id"], upload(alice_headers), alice_headers, section="people")
    assert res.status_code == 422


def test_attach_requires_existing_upload(client, alice_headers, create_object) -> None:
    obj = create_object(alice_headers)
    res = _attach(client, obj["id"], new_storage_id(), alice_headers)
    assert res.status_code == 404
    assert res.json()["kind"] == "not_found"


def test_image_mutation_follows_edit_gate(
    client, alice_headers, admin_headers, create_object, force_status, upload
) -> None:
    obj = create_object(alice_headers)
    image = _attach(client, obj["id"], upload(alice_headers), alice_headers).json()

    force_status(obj["id"], STATUS_RELEASED)
    res = _attach(client, obj["id"], upload(alice_headers), alice_headers)
    assert res.status_code == 403
    assert res.json()["reason"] == "released_locked"
    assert client.delete(f"/images/{image['id']}", headers=alice_headers).status_code == 403
    assert _attach(client, obj["id"], upload(admin_headers), admin_headers).status_code == 201

    force_status(obj["id"], STATUS_COMPLETED)
    res = client.delete(f"/images/{image['id']}", headers=admin_headers)
    assert res.status_code == 403
    assert res.json()["reason"] == "completed"
    assert _attach(client, obj["id"], upload(admin_headers), admin_headers).status_code == 403


def test_stranger_cannot_see_or_touch_images(client, alice_headers, bob_headers, create_object, upload) -> None:
    obj = create_object(alice_headers)
    image = _attach(client, obj["id"], upload(alice_headers), alice_headers).json()

    res = client.get(f"/objects/{obj['id']}/images/all", headers=bob_headers)
    assert res.status_code == 403
    assert res.json()["kind"] == "unauthorized"
    assert client.delete(f"/images/{image['id']}", headers=bob_headers).status_code == 403
    assert _attach(client, obj["id"], upload(bob_headers), bob_headers).status_code == 403


def test_delete_image_removes_blob(client, alice_headers, create_object, upload) -> None:
    obj = create_object(alice_headers)
    storage_id = upload(alice_headers)
    image = _attach(client, obj["id"], storage_id, alice_headers).json()

    res = client.delete(f"/images/{image['id']}", headers=alice_headers)
    assert res.status_code == 200
    assert not get_blob_store().exists(storage_id)
    assert client.get(f"/storage/{storage_id}").status_code == 404
    assert client.get(f"/objects/{obj['id']}/images/all", headers=alice_headers).json()["keys"] == []

    res = client.delete(f"/images/{image['id']}", headers=alice_headers)
    assert res.status_code == 404


def test_upload_rejects_bad_tickets(client) -> None:
    storage_id = new_storage_id()
    ticket = create_upload_ticket(storage_id)

    res = client.put(f"/storage/upload/{ticket[:-4]}abcd", content=JPEG_BYTES)
    assert res.status_code == 403
    assert res.json()["kind"] == "unauthorized"

    res = client.put(f"/storage/upload/{ticket}", content=b"")
    assert res.status_code == 400


def test_download_rejects_malformed_ids(client) -> None:
    assert client.get("/storage/..%2Fetc%2Fpasswd").status_code == 404
    assert client.get("/storage/not-a-storage-id").status_code == 404


# ---------------------------------------------------------------------------
# Export snapshot
# ---------------------------------------------------------------------------


def test_export_snapshot(client, bob, alice_headers, create_object, upload) -> None:
    obj = create_object(alice_headers, assigned_to=[bob.id])
    client.put(
        f"/objects/{obj['id']}",
        json={"keys": [{"type": "Haustür", "count": 2}], "signature": "data:image/png;base64,AAAA"},
        headers=alice_headers,
    )
    storage_id = upload(alice_headers)
    _attach(client, obj["id"], storage_id, alice_headers, "keys", 0)

    res = client.get(f"/objects/{obj['id']}/export", headers=alice_headers)
    assert res.status_code == 200
    data = res.json()
    assert data["title"] == obj["title"]
    assert data["creator_name"] == "Alice"
    assert data["assigned_users"] == ["Bob"]
    assert data["keys"][0]["type"] == "Haustür"
    assert data["people"] == []
    assert data["signature"].startswith("data:image/png")
    assert data["images"]["keys"][0]["url"].endswith(storage_id)
    assert "exported_at" in data


def test_export_uses_read_gate(client, alice_headers, bob_headers, create_object) -> None:
    obj = create_object(alice_headers)
    assert client.get(f"/objects/{obj['id']}/export", headers=bob_headers).status_code == 403
    assert client.get("/objects/9999/export", headers=alice_headers).status_code == 404


# ---------------------------------------------------------------------------
# Write-once blobs
# ---------------------------------------------------------------------------


def test_blob_can_only_back_one_image(
    client, alice_headers, create_object, force_status, upload
) -> None:
    frozen = create_object(alice_headers, title="Fertig")
    storage_id = upload(alice_headers)
    assert _attach(client, frozen["id"], storage_id, alice_headers).status_code == 201
    force_status(frozen["id"], STATUS_COMPLETED)

    draft = create_object(alice_headers, title="Entwurf")
    res = _attach(client, draft["id"], storage_id, alice_headers)
    assert res.status_code == 409
    assert res.json()["kind"] == "conflict"

    # The completed object's image is untouched
    assert get_blob_store().exists(storage_id)
    images = client.get(f"/objects/{frozen['id']}/images/all", headers=alice_headers).json()
    assert images["keys"][0]["url"].endswith(storage_id)
    assert client.get(f"/objects/{draft['id']}/images/all", headers=alice_headers).json()["keys"] == []


def test_upload_ticket_cannot_be_replayed(client, alice_headers, create_object, force_status) -> None:
    obj = create_object(alice_headers)
    target = client.post("/storage/upload-url", headers=alice_headers).json()
    upload_path = urlsplit(target["upload_url"]).path

    assert client.put(upload_path, content=JPEG_BYTES).status_code == 200
    assert _attach(client, obj["id"], target["storage_id"], alice_headers).status_code == 201
    force_status(obj["id"], STATUS_COMPLETED)

    res = client.put(upload_path, content=b"TAMPERED")
    assert res.status_code == 409
    assert res.json()["kind"] == "conflict"
    assert client.get(f"/storage/{target['storage_id']}").content == JPEG_BYTES


def test_local_store_never_overwrites() -> None:
    store = get_blob_store()
    storage_id = new_storage_id()
    store.save(storage_id, JPEG_BYTES)
    with pytest.raises(FileExistsError):
        store.save(storage_id, b"TAMPERED")
    assert store.path_for(storage_id).read_bytes() == JPEG_BYTES


def test_oversized_upload_is_refused_before_storing(client, alice_headers, monkeypatch) -> None:
    monkeypatch.setattr(storage_router, "MAX_UPLOAD_BYTES", 8)
    target = client.post("/storage/upload-url", headers=alice_headers).json()
    upload_path = urlsplit(target["upload_url"]).path

    res = client.put(upload_path, content=b"x" * 64)
    assert res.status_code == 400
    assert res.json()["kind"] == "invalid_request"
    assert not get_blob_store().exists(target["storage_id"])

    # Nothing was written, so the ticket is still good for a small upload
    assert client.put(upload_path, content=b"tiny").status_code == 200


def test_chunked_upload_is_capped_while_streaming(client, alice_headers, monkeypatch) -> None:
    monkeypatch.setattr(storage_router, "MAX_UPLOAD_BYTES", 8)
    target = client.post("/storage/upload-url", headers=alice_headers).json()

    def chunks():
        for _ in range(8):
            yield b"abcd"

    res = client.put(urlsplit(target["upload_url"]).path, content=chunks())
    assert res.status_code == 400
    assert not get_blob_store().exists(target["storage_id"])
