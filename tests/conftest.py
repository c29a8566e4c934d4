import itertools
import os

os.environ["BCRYPT_ROUNDS"] = "4"

import mongomock
import pytest
from fastapi.testclient import TestClient

import database

# Routers bind `db` at import, so swap it in before the app is loaded
database.db = mongomock.MongoClient()["campus_crush_test"]

import mailer  # noqa: E402
import main  # noqa: E402
import storage  # noqa: E402

IMAGE = ("photo.jpg", b"\xff\xd8\xff\xe0fake-jpeg-bytes", "image/jpeg")


@pytest.fixture(autouse=True)
def clean_db():
    for name in database.db.list_collection_names():
        database.db.drop_collection(name)
    database.ensure_indexes(database.db)
    yield database.db


@pytest.fixture
def db(clean_db):
    return clean_db


@pytest.fixture(autouse=True)
def uploads(monkeypatch):
    """Stand-in for the image store; records every upload and delete."""
    counter = itertools.count(1)
    record = {"uploaded": [], "destroyed": []}

    def fake_upload(content, folder, transformation=None):
        n = next(counter)
        stored = {"url": f"https://img.example.com/{folder}/{n}.jpg", "public_id": f"campus-crush/{folder}/{n}"}
        record["uploaded"].append(stored)
        return stored

    def fake_destroy(public_id):
        record["destroyed"].append(public_id)
        return True

    monkeypatch.setattr(storage, "upload_image", fake_upload)
    monkeypatch.setattr(storage, "destroy_image", fake_destroy)
    return record


@pytest.fixture(autouse=True)
def outbox(monkeypatch):
    sent = []

    def fake_send(to_email, subject, body):
        sent.append({"to": to_email, "subject": subject, "body": body})
        return True

    monkeypatch.setattr(mailer, "send_email", fake_send)
    return sent


@pytest.fixture
def client():
    return TestClient(main.app)


@pytest.fixture
def register(client):
    """Register a user and return {"id", "token", "headers", "email"}."""
    def _register(name="Alice", email="alice@abc.edu", password="secret123"):
        res = client.post(
            "/api/auth/register",
            data={"name": name, "email": email, "password": password},
            files={"selfiePhoto": IMAGE, "collegeIdPhoto": IMAGE},
        )
        assert res.status_code == 201, res.text
        data = res.json()["data"]
        token = data["token"]
        return {
            "id": data["user"]["id"],
            "token": token,
            "headers": {"Authorization": f"Bearer {token}"},
            "email": email,
            "name": name,
        }
    return _register


@pytest.fixture
def upload_photo(client):
    def _upload(user):
        res = client.post("/api/users/upload-photo", files={"photo": IMAGE}, headers=user["headers"])
        assert res.status_code == 200, res.text
        return res.json()["data"]["photo"]
    return _upload
