from sqlmodel import Session

from conftest import create_folder, signup_and_login, upload
from neodrive.models import FileRecord, FileType
from neodrive.quota import MB


def add_record(client, user_id, name, size, path="/"):
    with Session(client.app.state.engine) as db:
        db.add(FileRecord(
            user_id=user_id, name=name, type=FileType.file, storage_key=f"{user_id}/{name}",
            size=size, mime_type="application/octet-stream", path=path,
        ))
        db.commit()


def confirm(client, user, name, storage_key, size, mime_type="text/plain", path="/"):
    return client.post(
        "/api/file/uploadFileMetadata",
        json={
            "userId": user["id"], "name": name, "type": "file", "storageKey": storage_key,
            "size": size, "mimeType": mime_type, "path": path,
        },
    )


def test_listing_requires_session(client):
    response = client.get("/api/file")
    assert response.status_code == 401
    assert response.json() == {"message": "Invalid session"}


def test_upload_flow(client):
    user = signup_and_login(client)
    response = upload(client, user, "notes.txt", b"hello world")
    assert response.status_code == 201, response.text
    record = response.json()
    assert record["name"] == "notes.txt"
    assert record["size"] == 11
    assert record["category"] == "documents"
    assert record["storageKey"].startswith(f"{user['id']}/")

    files = client.get("/api/file").json()["files"]
    assert [f["id"] for f in files] == [record["id"]]
    download = client.get(files[0]["url"])
    assert download.status_code == 200
    assert download.content == b"hello world"

    usage = client.get("/api/file/getStorageUsage").json()
    assert usage["usedStorage"] == 11
    assert usage["storageLimit"] == 200 * MB
    assert usage["subscription"] == "free"


def test_presigned_url_for_another_user_is_forbidden(client):
    bob = signup_and_login(client, email="bob@example.com", name="Bob")
    signup_and_login(client)
    response = client.post(
        "/api/file/presignedUrl",
        json={"userId": bob["id"], "name": "a.txt", "size": 1, "mimeType": "text/plain", "path": "/"},
    )
    assert response.status_code == 403


def test_presigned_url_validation(client):
    user = signup_and_login(client)
    response = client.post(
        "/api/file/presignedUrl",
        json={"userId": user["id"], "name": "a.txt", "size": 0, "mimeType": "text/plain", "path": "docs"},
    )
    assert response.status_code == 400
    fields = {err["field"] for err in response.json()["errors"]}
    assert fields == {"size", "path"}


def test_quota_denial_names_remaining_space(client):
    user = signup_and_login(client)
    add_record(client, user["id"], "big.bin", 150 * MB)

    response = client.post(
        "/api/file/presignedUrl",
        json={"userId": user["id"], "name": "video.mp4", "size": 60 * MB, "mimeType": "video/mp4", "path": "/"},
    )
    assert response.status_code == 403
    assert "You have 50.0 MB remaining" in response.json()["message"]

    exact = client.post(
        "/api/file/presignedUrl",
        json={"userId": user["id"], "name": "video.mp4", "size": 50 * MB, "mimeType": "video/mp4", "path": "/"},
    )
    assert exact.status_code == 200


def test_duplicate_name_is_rejected_and_first_survives(client):
    user = signup_and_login(client)
    first = upload(client, user, "report.pdf", b"first", "application/pdf")
    assert first.status_code == 201

    second = upload(client, user, "report.pdf", b"second", "application/pdf")
    assert second.status_code == 409
    assert second.json()["message"] == "File already exists"

    files = client.get("/api/file").json()["files"]
    assert len(files) == 1
    storage = client.app.state.storage
    assert storage.head(first.json()["storageKey"]) == 5


def test_repeated_confirmation_keeps_the_first_record(client):
    user = signup_and_login(client)
    first = upload(client, user, "a.txt")
    assert first.status_code == 201
    key = first.json()["storageKey"]

    again = confirm(client, user, "a.txt", key, 11)
    assert again.status_code == 409
    assert again.json()["message"] == "File already exists"

    files = client.get("/api/file").json()["files"]
    assert [f["id"] for f in files] == [first.json()["id"]]
    assert client.app.state.storage.head(key) == 11
    assert client.get(files[0]["url"]).content == b"hello world"


def test_storage_key_cannot_back_a_second_name(client):
    user = signup_and_login(client)
    first = upload(client, user, "a.txt")
    key = first.json()["storageKey"]

    alias = confirm(client, user, "b.txt", key, 11)
    assert alias.status_code == 409
    assert [f["name"] for f in client.get("/api/file").json()["files"]] == ["a.txt"]
    assert client.app.state.storage.head(key) == 11

    deleted = client.request("DELETE", "/api/file", json={"id": first.json()["id"]})
    assert deleted.status_code == 200
    assert client.get("/api/file").json()["files"] == []
    assert client.app.state.storage.head(key) is None


def test_usage_counts_only_own_records(client):
    bob = signup_and_login(client, email="bob@example.com", name="Bob")
    add_record(client, bob["id"], "big.bin", 150 * MB)
    alice = signup_and_login(client)

    usage = client.get("/api/file/getStorageUsage").json()
    assert usage["usedStorage"] == 0
    assert usage["remainingStorage"] == 200 * MB

    response = client.post(
        "/api/file/presignedUrl",
        json={"userId": alice["id"], "name": "video.mp4", "size": 60 * MB, "mimeType": "video/mp4", "path": "/"},
    )
    assert response.status_code == 200


def test_confirm_without_object_is_rejected(client):
    user = signup_and_login(client)
    response = client.post(
        "/api/file/uploadFileMetadata",
        json={
            "userId": user["id"],
            "name": "ghost.txt",
            "type": "file",
            "storageKey": f"{user['id']}/missing_ghost.txt",
            "size": 3,
            "mimeType": "text/plain",
            "path": "/",
        },
    )
    assert response.status_code == 400
    assert client.get("/api/file").json()["files"] == []


def test_rename_moves_object(client):
    user = signup_and_login(client)
    record = upload(client, user, "a.txt", b"abc").json()

    response = client.post("/api/file/renameFile", json={"id": record["id"], "name": "b.txt"})
    assert response.status_code == 200
    renamed = response.json()
    assert renamed["name"] == "b.txt"
    assert renamed["storageKey"].endswith("_b.txt")

    storage = client.app.state.storage
    assert storage.head(record["storageKey"]) is None
    assert storage.head(renamed["storageKey"]) == 3


def test_rename_conflict_and_missing_record(client):
    user = signup_and_login(client)
    a = upload(client, user, "a.txt").json()
    upload(client, user, "b.txt")

    assert client.post("/api/file/renameFile", json={"id": a["id"], "name": "b.txt"}).status_code == 409
    assert client.post("/api/file/renameFile", json={"id": "nope", "name": "c.txt"}).status_code == 404


def test_rename_folder_moves_children(client):
    user = signup_and_login(client)
    create_folder(client, user, "docs")
    upload(client, user, "inner.txt", path="/docs/")
    folder = next(f for f in client.get("/api/file").json()["files"] if f["type"] == "folder")

    assert client.post("/api/file/renameFile", json={"id": folder["id"], "name": "papers"}).status_code == 200
    paths = {f["name"]: f["path"] for f in client.get("/api/file").json()["files"]}
    assert paths == {"papers": "/", "inner.txt": "/papers/"}


def test_toggle_favorite(client):
    user = signup_and_login(client)
    record = upload(client, user, "a.txt").json()

    first = client.post("/api/file/toggleFavorite", json={"id": record["id"]})
    assert first.json()["isFavorited"] is True
    second = client.post("/api/file/toggleFavorite", json={"id": record["id"]})
    assert second.json()["isFavorited"] is False


def test_delete_non_empty_folder_is_refused(client):
    user = signup_and_login(client)
    folder = create_folder(client, user, "docs").json()
    assert folder["category"] is None
    inner = upload(client, user, "inner.txt", path="/docs/").json()

    response = client.request("DELETE", "/api/file", json={"id": folder["id"]})
    assert response.status_code == 400
    assert len(client.get("/api/file").json()["files"]) == 2

    assert client.request("DELETE", "/api/file", json={"id": inner["id"]}).status_code == 200
    assert client.app.state.storage.head(inner["storageKey"]) is None
    assert client.request("DELETE", "/api/file", json={"id": folder["id"]}).status_code == 200
    assert client.get("/api/file").json()["files"] == []


def test_mutating_another_users_record_is_forbidden(client):
    alice = signup_and_login(client)
    record = upload(client, alice, "a.txt").json()

    signup_and_login(client, email="bob@example.com", name="Bob")
    assert client.post("/api/file/toggleFavorite", json={"id": record["id"]}).status_code == 403
    assert client.request("DELETE", "/api/file", json={"id": record["id"]}).status_code == 403
    assert client.post("/api/file/renameFile", json={"id": record["id"], "name": "x.txt"}).status_code == 403


def test_storage_credentials_are_scoped(client):
    user = signup_and_login(client)
    credential = client.post(
        "/api/file/presignedUrl",
        json={"userId": user["id"], "name": "a.txt", "size": 3, "mimeType": "text/plain", "path": "/"},
    ).json()

    wrong_type = client.put(credential["presignedUrl"], content=b"abc", headers={"Content-Type": "image/png"})
    assert wrong_type.status_code == 403
    wrong_size = client.put(credential["presignedUrl"], content=b"abcd", headers={"Content-Type": "text/plain"})
    assert wrong_size.status_code == 400
    forged = client.put(
        f"/api/storage/{credential['uniqueKey']}?token=forged", content=b"abc", headers={"Content-Type": "text/plain"}
    )
    assert forged.status_code == 403
