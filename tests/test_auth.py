import asyncio
from datetime import datetime, timedelta, timezone

import jwt

from config import JWT_ALG, JWT_SECRET
from database import to_object_id
from tests.conftest import IMAGE


def test_register_derives_college_and_stores_uploads(client, db, uploads, outbox):
    res = client.post(
        "/api/auth/register",
        data={"name": "  Alice ", "email": "Alice@abc.edu", "password": "secret123"},
        files={"selfiePhoto": IMAGE, "collegeIdPhoto": IMAGE},
    )
    assert res.status_code == 201
    body = res.json()
    assert body["success"] is True
    user = body["data"]["user"]
    assert user["college"] == "ABC"
    assert user["email"] == "alice@abc.edu"
    assert user["name"] == "Alice"
    assert user["isVerified"] is False

    stored = db["user"].find_one({"email": "alice@abc.edu"})
    assert stored["password_hash"] != "secret123"
    assert stored["verification_photos"]["selfie"]["url"] == uploads["uploaded"][0]["url"]
    assert stored["verification_photos"]["college_id"]["public_id"] == uploads["uploaded"][1]["public_id"]
    assert len(outbox) == 1 and stored["verification_token"] in outbox[0]["body"]


def test_college_uses_label_before_first_dot(register, client):
    user = register(email="bob@cs.mit.edu")
    res = client.get("/api/auth/me", headers=user["headers"])
    assert res.json()["data"]["user"]["college"] == "CS"


def test_register_requires_both_photos(client, db):
    res = client.post(
        "/api/auth/register",
        data={"name": "Alice", "email": "alice@abc.edu", "password": "secret123"},
        files={"selfiePhoto": IMAGE},
    )
    assert res.status_code == 400
    assert res.json() == {"success": False, "message": "Both selfie and college ID photos are required"}
    assert db["user"].count_documents({}) == 0


def test_register_validation(client):
    files = {"selfiePhoto": IMAGE, "collegeIdPhoto": IMAGE}
    res = client.post("/api/auth/register", data={"name": "A", "email": "a@abc.edu"}, files=files)
    assert res.status_code == 400
    assert res.json()["message"] == "All fields are required"

    res = client.post("/api/auth/register", data={"name": "A", "email": "nope", "password": "secret123"}, files=files)
    assert res.json()["message"] == "Please enter a valid email address"

    res = client.post("/api/auth/register", data={"name": "A", "email": "a@abc.edu", "password": "123"}, files=files)
    assert res.json()["message"] == "Password must be at least 6 characters"


def test_register_rejects_non_images(client):
    res = client.post(
        "/api/auth/register",
        data={"name": "A", "email": "a@abc.edu", "password": "secret123"},
        files={"selfiePhoto": ("a.txt", b"hello", "text/plain"), "collegeIdPhoto": IMAGE},
    )
    assert res.status_code == 400
    assert res.json()["message"] == "Only image files are allowed"


def test_register_duplicate_email(register, client):
    register()
    res = client.post(
        "/api/auth/register",
        data={"name": "Other", "email": "ALICE@abc.edu", "password": "secret123"},
        files={"selfiePhoto": IMAGE, "collegeIdPhoto": IMAGE},
    )
    assert res.status_code == 400
    assert res.json()["message"] == "User already exists"


def test_upload_failure_writes_no_account(client, db, monkeypatch):
    import storage

    def broken(content, folder, transformation=None):
        raise storage.StorageError("down")

    monkeypatch.setattr(storage, "upload_image", broken)
    res = client.post(
        "/api/auth/register",
        data={"name": "A", "email": "a@abc.edu", "password": "secret123"},
        files={"selfiePhoto": IMAGE, "collegeIdPhoto": IMAGE},
    )
    assert res.status_code == 500
    assert res.json()["message"] == "Failed to upload selfie"
    assert db["user"].count_documents({}) == 0


def test_login(register, client):
    register()
    res = client.post("/api/auth/login", json={"email": "ALICE@abc.edu", "password": "secret123"})
    assert res.status_code == 200
    assert res.json()["data"]["token"]

    res = client.post("/api/auth/login", json={"email": "alice@abc.edu", "password": "wrong-pass"})
    assert res.status_code == 401
    assert res.json()["message"] == "Invalid credentials"

    res = client.post("/api/auth/login", json={"email": "alice@abc.edu"})
    assert res.status_code == 400


def test_me_requires_valid_token(register, client):
    user = register()
    assert client.get("/api/auth/me").status_code == 401
    assert client.get("/api/auth/me", headers={"Authorization": "Token abc"}).status_code == 401
    assert client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"}).status_code == 401

    expired = jwt.encode(
        {"user_id": user["id"], "exp": datetime.now(timezone.utc) - timedelta(minutes=1)},
        JWT_SECRET,
        algorithm=JWT_ALG,
    )
    res = client.get("/api/auth/me", headers={"Authorization": f"Bearer {expired}"})
    assert res.status_code == 401

    forged = jwt.encode({"user_id": user["id"]}, "some-other-secret", algorithm=JWT_ALG)
    assert client.get("/api/auth/me", headers={"Authorization": f"Bearer {forged}"}).status_code == 401

    res = client.get("/api/auth/me", headers=user["headers"])
    assert res.status_code == 200
    assert res.json()["data"]["user"]["id"] == user["id"]


def test_token_for_deleted_user_is_rejected(register, client, db):
    user = register()
    db["user"].delete_one({"_id": to_object_id(user["id"])})
    res = client.get("/api/auth/me", headers=user["headers"])
    assert res.status_code == 401
    assert res.json()["message"] == "User not found"


def test_logout(client):
    res = client.post("/api/auth/logout")
    assert res.json() == {"success": True, "message": "Logout successful"}


def test_verify_email_is_single_use(register, client, db):
    user = register()
    token = db["user"].find_one({"email": user["email"]})["verification_token"]

    res = client.get(f"/api/auth/verify-email/{token}")
    assert res.status_code == 200
    stored = db["user"].find_one({"email": user["email"]})
    assert stored["is_verified"] is True
    assert "verification_token" not in stored

    assert client.get(f"/api/auth/verify-email/{token}").status_code == 400


def test_verify_email_expired(register, client, db):
    user = register()
    db["user"].update_one(
        {"email": user["email"]},
        {"$set": {"verification_token": "abc", "verification_token_expires": datetime.now(timezone.utc) - timedelta(hours=1)}},
    )
    assert client.get("/api/auth/verify-email/abc").status_code == 400


def test_resend_verification(register, client, db, outbox):
    user = register()
    old = db["user"].find_one({"email": user["email"]})["verification_token"]

    res = client.post("/api/auth/resend-verification", json={"email": user["email"]})
    assert res.status_code == 200
    new = db["user"].find_one({"email": user["email"]})["verification_token"]
    assert new != old
    assert new in outbox[-1]["body"]

    assert client.post("/api/auth/resend-verification", json={"email": "ghost@abc.edu"}).status_code == 404

    client.get(f"/api/auth/verify-email/{new}")
    res = client.post("/api/auth/resend-verification", json={"email": user["email"]})
    assert res.status_code == 400
    assert res.json()["message"] == "Email is already verified"


def test_password_reset_flow(register, client, db, outbox):
    user = register()
    unknown = client.post("/api/auth/forgot-password", json={"email": "ghost@abc.edu"})
    known = client.post("/api/auth/forgot-password", json={"email": user["email"]})
    assert unknown.json() == known.json()

    token = db["user"].find_one({"email": user["email"]})["reset_password_token"]
    assert token in outbox[-1]["body"]
    assert client.get(f"/api/auth/reset-password/{token}").status_code == 200

    res = client.post(f"/api/auth/reset-password/{token}", json={"password": "123"})
    assert res.status_code == 400

    res = client.post(f"/api/auth/reset-password/{token}", json={"password": "newsecret"})
    assert res.status_code == 200

    # consumed
    assert client.post(f"/api/auth/reset-password/{token}", json={"password": "another1"}).status_code == 400
    assert client.get(f"/api/auth/reset-password/{token}").status_code == 400

    assert client.post("/api/auth/login", json={"email": user["email"], "password": "secret123"}).status_code == 401
    assert client.post("/api/auth/login", json={"email": user["email"], "password": "newsecret"}).status_code == 200


def test_reset_token_expires(register, client, db):
    user = register()
    db["user"].update_one(
        {"email": user["email"]},
        {"$set": {"reset_password_token": "tok", "reset_password_expires": datetime.now(timezone.utc) - timedelta(seconds=1)}},
    )
    assert client.post("/api/auth/reset-password/tok", json={"password": "newsecret"}).status_code == 400


def test_rejected_email_uploads_nothing(client, db, uploads):
    res = client.post(
        "/api/auth/register",
        data={"name": "Alice", "email": "alice@abc", "password": "secret123"},
        files={"selfiePhoto": IMAGE, "collegeIdPhoto": IMAGE},
    )
    assert res.status_code == 400
    assert res.json()["message"] == "Please enter a valid email address"
    assert uploads["uploaded"] == []
    assert db["user"].count_documents({}) == 0


def test_register_uploads_run_off_the_event_loop(client, monkeypatch):
    import storage

    on_loop = []

    def recording_upload(content, folder, transformation=None):
        try:
            asyncio.get_running_loop()
            on_loop.append(True)
        except RuntimeError:
            on_loop.append(False)
        return {"url": f"https://img.example.com/{folder}.jpg", "public_id": folder}

    monkeypatch.setattr(storage, "upload_image", recording_upload)
    res = client.post(
        "/api/auth/register",
        data={"name": "Alice", "email": "alice@abc.edu", "password": "secret123"},
        files={"selfiePhoto": IMAGE, "collegeIdPhoto": IMAGE},
    )
    assert res.status_code == 201
    assert on_loop == [False, False]
