import pytest
from fastapi.testclient import TestClient

from neodrive.config import get_settings
from neodrive.main import create_app

PASSWORD = "password123"


def build_client(tmp_path, monkeypatch, **env) -> TestClient:
    monkeypatch.setenv("NEODRIVE_SECRET_KEY", "test-secret")
    monkeypatch.setenv("NEODRIVE_DATABASE_URL", f"sqlite:///{tmp_path / 'neodrive.db'}")
    monkeypatch.setenv("NEODRIVE_STORAGE_PATH", str(tmp_path / "data"))
    monkeypatch.setenv("NEODRIVE_STORAGE_BACKEND", "local")
    monkeypatch.setenv("NEODRIVE_STRIPE_WEBHOOK_SECRET", "whsec_test")
    for key, value in env.items():
        monkeypatch.setenv(f"NEODRIVE_{key.upper()}", str(value))
    get_settings.cache_clear()

    app = create_app()
    return TestClient(app)


@pytest.fixture
def client(tmp_path, monkeypatch):
    with build_client(tmp_path, monkeypatch) as c:
        yield c


def signup(client, email="alice@example.com", name="Alice", password=PASSWORD):
    return client.post(
        "/api/auth/signup",
        json={"name": name, "email": email, "password": password, "confirmPassword": password},
    )


def login(client, email="alice@example.com", password=PASSWORD):
    return client.post("/api/auth/login", json={"email": email, "password": password})


def signup_and_login(client, email="alice@example.com", name="Alice") -> dict:
    assert signup(client, email=email, name=name).status_code == 201
    response = login(client, email=email)
    assert response.status_code == 200, response.text
    return response.json()


def upload(client, user, name, data=b"hello world", mime_type="text/plain", path="/"):
    """Run the presign, direct PUT and confirmation steps; returns the confirmation response."""
    credential = client.post(
        "/api/file/presignedUrl",
        json={"userId": user["id"], "name": name, "size": len(data), "mimeType": mime_type, "path": path},
    )
    assert credential.status_code == 200, credential.text
    body = credential.json()

    put = client.put(body["presignedUrl"], content=data, headers={"Content-Type": mime_type})
    assert put.status_code == 200, put.text

    return client.post(
        "/api/file/uploadFileMetadata",
        json={
            "userId": user["id"],
            "name": name,
            "type": "file",
            "storageKey": body["uniqueKey"],
            "size": len(data),
            "mimeType": mime_type,
            "path": path,
        },
    )


def create_folder(client, user, name, path="/"):
    return client.post(
        "/api/file/uploadFileMetadata",
        json={"userId": user["id"], "name": name, "type": "folder", "size": 0, "path": path},
    )
