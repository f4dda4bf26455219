"""End-to-end tests for the photo and memory routes."""
import os

from sqlalchemy.exc import SQLAlchemyError

import routers.photos
from services.photo_lifecycle import PhotoLifecycle
from utils.images import INCOMING_DIRNAME
from utils.storage import Area

OWNER = {"X-User-Id": "user-1"}
STRANGER = {"X-User-Id": "user-2"}


def _upload(client, make_image, count=1, headers=OWNER):
    files = [("photos", (f"p{i}.jpg", make_image("JPEG", size=(120, 80)), "image/jpeg")) for i in range(count)]
    return client.post("/api/photos/upload", files=files, headers=headers)


def _create_memory(client, title="Summer", headers=OWNER):
    response = client.post("/api/memories", json={"title": title}, headers=headers)
    assert response.status_code == 201
    return response.json()


def test_health(client) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_upload_returns_new_photos(client, storage, make_image) -> None:
    response = _upload(client, make_image, count=2)

    assert response.status_code == 201
    body = response.json()
    assert len(body) == 2
    assert {p["lifecycleState"] for p in body} == {"NEW"}
    for p in body:
        assert storage.exists(p["id"], Area.TEMP)
        assert (p["width"], p["height"]) == (120, 80)
    assert os.listdir(os.path.join(storage.temp_root, INCOMING_DIRNAME)) == []


def test_upload_requires_user(client, make_image) -> None:
    assert _upload(client, make_image, headers={}).status_code == 401


def test_upload_without_files(client) -> None:
    response = client.post("/api/photos/upload", data={"other": "x"}, headers=OWNER)
    assert response.status_code == 400


def test_upload_too_many_files(client, make_image) -> None:
    response = _upload(client, make_image, count=11)
    assert response.status_code == 400
    assert "Too many files" in response.json()["error"]


def test_upload_rejects_non_images(client, storage) -> None:
    files = [("photos", ("notes.txt", b"hello there, not an image", "text/plain"))]
    response = client.post("/api/photos/upload", files=files, headers=OWNER)
    assert response.status_code == 415


def test_upload_rejects_oversized_file(client, storage, make_image, monkeypatch) -> None:
    monkeypatch.setattr(routers.photos, "MAX_UPLOAD_BYTES", 64)
    response = _upload(client, make_image)
    assert response.status_code == 413
    assert os.listdir(os.path.join(storage.temp_root, INCOMING_DIRNAME)) == []


def test_upload_batch_is_all_or_nothing(client, storage, make_image) -> None:
    files = [
        ("photos", ("good.png", make_image("PNG"), "image/png")),
        ("photos", ("bad.jpg", b"\xff\xd8\xff\xe0 broken jpeg body", "image/jpeg")),
    ]
    response = client.post("/api/photos/upload", files=files, headers=OWNER)

    assert response.status_code == 422
    leftovers = [d for d in os.listdir(storage.temp_root) if d != INCOMING_DIRNAME]
    assert leftovers == []


def test_retrieve_validates_input(client, make_image) -> None:
    photo_id = _upload(client, make_image).json()[0]["id"]

    assert client.get(f"/api/photos/retrieve/{photo_id}?state=REMOVED", headers=OWNER).status_code == 400
    assert client.get(f"/api/photos/retrieve/{photo_id}", headers=OWNER).status_code == 400
    assert client.get("/api/photos/retrieve/not-a-uuid?state=NEW", headers=OWNER).status_code == 400
    assert client.get(f"/api/photos/retrieve/{photo_id}?state=NEW").status_code == 401


def test_full_photo_lifecycle(client, storage, make_image) -> None:
    photo_id = _upload(client, make_image).json()[0]["id"]

    response = client.get(f"/api/photos/retrieve/{photo_id}?state=NEW", headers=OWNER)
    assert response.status_code == 200
    assert response.headers["content-type"] == "image/webp"

    memory = _create_memory(client)
    response = client.put(
        f"/api/memories/{memory['id']}",
        json={"photos": [{"id": photo_id, "state": "NEW"}]},
        headers=OWNER,
    )
    assert response.status_code == 200
    saved = response.json()
    assert saved["photo_ids"] == [photo_id]
    assert saved["errors"] == []
    assert saved["photos"][0]["lifecycleState"] == "PERSISTED"

    assert client.get(f"/api/photos/retrieve/{photo_id}?state=PERSISTED", headers=OWNER).status_code == 200
    assert client.get(f"/api/photos/retrieve/{photo_id}?state=NEW", headers=OWNER).status_code == 404
    assert client.get(f"/api/photos/retrieve/{photo_id}?state=PERSISTED", headers=STRANGER).status_code == 403

    response = client.put(
        f"/api/memories/{memory['id']}",
        json={"photos": [{"id": photo_id, "state": "REMOVED"}]},
        headers=OWNER,
    )
    assert response.status_code == 200
    assert response.json()["photo_ids"] == []
    assert client.get(f"/api/photos/retrieve/{photo_id}?state=PERSISTED", headers=OWNER).status_code == 404
    assert not storage.exists(photo_id, Area.PERMANENT)


def test_save_derives_changes_from_canvas(client, make_image) -> None:
    photo_id = _upload(client, make_image).json()[0]["id"]
    memory = _create_memory(client)
    memory_data = {"elements": [
        {"type": "photo", "id": "el-1", "photoId": photo_id, "state": "N", "x": 10, "y": 20},
        {"type": "text", "id": "el-2", "text": "Beach day"},
    ]}

    response = client.put(f"/api/memories/{memory['id']}", json={"memory_data": memory_data}, headers=OWNER)

    assert response.status_code == 200
    body = response.json()
    assert body["photo_ids"] == [photo_id]
    assert body["memory_data"]["elements"][0]["state"] == "PERSISTED"
    assert body["memory_data"]["elements"][1]["text"] == "Beach day"


def test_save_rejects_unknown_canvas_element(client) -> None:
    memory = _create_memory(client)
    response = client.put(
        f"/api/memories/{memory['id']}",
        json={"memory_data": {"elements": [{"type": "sticker", "id": "s1"}]}},
        headers=OWNER,
    )
    assert response.status_code == 400


def test_save_reports_per_photo_errors(client, make_image) -> None:
    uploaded = [p["id"] for p in _upload(client, make_image, count=2).json()]
    memory = _create_memory(client)
    missing = "0badc0de-0000-4000-8000-000000000000"

    response = client.put(
        f"/api/memories/{memory['id']}",
        json={"photos": [{"id": uploaded[0], "state": "NEW"}, {"id": missing, "state": "NEW"}, {"id": uploaded[1], "state": "NEW"}]},
        headers=OWNER,
    )

    assert response.status_code == 200
    body = response.json()
    assert sorted(body["photo_ids"]) == sorted(uploaded)
    assert [e["photoId"] for e in body["errors"]] == [missing]


def test_discard_before_save(client, storage, make_image) -> None:
    photo_id = _upload(client, make_image).json()[0]["id"]

    response = client.delete(f"/api/photos/temp/{photo_id}", headers=OWNER)

    assert response.status_code == 204
    assert not storage.exists(photo_id, Area.TEMP)
    assert client.get(f"/api/photos/retrieve/{photo_id}?state=NEW", headers=OWNER).status_code == 404
    assert client.delete(f"/api/photos/temp/{photo_id}", headers=OWNER).status_code == 204


def test_discard_refuses_persisted_photo(client, make_image) -> None:
    photo_id = _upload(client, make_image).json()[0]["id"]
    memory = _create_memory(client)
    client.put(f"/api/memories/{memory['id']}", json={"photos": [{"id": photo_id, "state": "NEW"}]}, headers=OWNER)

    assert client.delete(f"/api/photos/temp/{photo_id}", headers=OWNER).status_code == 409


def test_memory_crud_and_ownership(client, make_image) -> None:
    assert client.post("/api/memories", json={"title": "  "}, headers=OWNER).status_code == 400
    memory = _create_memory(client, title="Winter")

    listed = client.get("/api/memories", headers=OWNER).json()["memories"]
    assert [m["id"] for m in listed] == [memory["id"]]
    assert client.get("/api/memories", headers=STRANGER).json()["memories"] == []

    assert client.get(f"/api/memories/{memory['id']}", headers=OWNER).json()["title"] == "Winter"
    assert client.get(f"/api/memories/{memory['id']}", headers=STRANGER).status_code == 403
    assert client.put(f"/api/memories/{memory['id']}", json={"title": "Mine now"}, headers=STRANGER).status_code == 403
    assert client.get("/api/memories/999999", headers=OWNER).status_code == 404

    response = client.put(f"/api/memories/{memory['id']}", json={"title": "Winter 2026", "description": "Snow"}, headers=OWNER)
    assert response.status_code == 200
    assert response.json()["title"] == "Winter 2026"
    assert response.json()["description"] == "Snow"


def test_shared_photo_survives_first_memory_delete(client, storage, make_image) -> None:
    photo_id = _upload(client, make_image).json()[0]["id"]
    first = _create_memory(client, title="First")
    second = _create_memory(client, title="Second")
    client.put(f"/api/memories/{first['id']}", json={"photos": [{"id": photo_id, "state": "NEW"}]}, headers=OWNER)
    response = client.put(f"/api/memories/{second['id']}", json={"photos": [{"id": photo_id, "state": "PERSISTED"}]}, headers=OWNER)
    assert response.json()["photo_ids"] == [photo_id]

    response = client.delete(f"/api/memories/{first['id']}", headers=OWNER)
    assert response.status_code == 200
    assert storage.exists(photo_id, Area.PERMANENT)

    client.delete(f"/api/memories/{second['id']}", headers=OWNER)
    assert not storage.exists(photo_id, Area.PERMANENT)
    assert client.get(f"/api/memories/{second['id']}", headers=OWNER).status_code == 404


def test_create_memory_with_photos(client, make_image) -> None:
    photo_id = _upload(client, make_image).json()[0]["id"]

    response = client.post(
        "/api/memories",
        json={"title": "Quick", "photos": [{"id": photo_id, "state": "NEW"}]},
        headers=OWNER,
    )

    assert response.status_code == 201
    assert response.json()["photo_ids"] == [photo_id]


def test_saved_photo_keeps_upload_properties(client, make_image) -> None:
    files = [("photos", ("shot.png", make_image("PNG", size=(90, 60)), "image/png"))]
    uploaded = client.post("/api/photos/upload", files=files, headers=OWNER).json()[0]
    assert uploaded["originalFormat"] == "png"
    assert (uploaded["originalWidth"], uploaded["originalHeight"]) == (90, 60)
    memory = _create_memory(client)

    response = client.put(
        f"/api/memories/{memory['id']}",
        json={"photos": [{"id": uploaded["id"], "state": "NEW"}]},
        headers=OWNER,
    )

    assert response.status_code == 200
    saved = response.json()["photos"][0]
    assert saved["originalFormat"] == "png"
    assert saved["format"] == "webp"


def test_memory_kept_when_a_photo_cannot_be_removed(client, make_image, monkeypatch) -> None:
    photo_id = _upload(client, make_image).json()[0]["id"]
    memory = _create_memory(client)
    client.put(f"/api/memories/{memory['id']}", json={"photos": [{"id": photo_id, "state": "NEW"}]}, headers=OWNER)

    def failing_remove(self, memory_id, photo_id):
        raise SQLAlchemyError("database is locked")

    monkeypatch.setattr(PhotoLifecycle, "remove_from_memory", failing_remove)
    response = client.delete(f"/api/memories/{memory['id']}", headers=OWNER)
    monkeypatch.undo()

    assert response.status_code == 500
    assert response.json()["photos"]["errors"][0]["photoId"] == photo_id
    kept = client.get(f"/api/memories/{memory['id']}", headers=OWNER)
    assert kept.status_code == 200
    assert kept.json()["photo_ids"] == [photo_id]
