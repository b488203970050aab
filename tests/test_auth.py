import os

import pytest
from sqlalchemy.orm import Session

from conftest import signup, auth_headers

from healthmate import models, storage


def test_signup_login_scenario(client):
    res = signup(client, email="a@b.com", password="secret1", firstName="A", lastName="B")
    assert res.status_code == 201
    body = res.json()
    assert body["success"] is True
    assert body["data"]["isAdmin"] is False
    assert body["data"]["email"] == "a@b.com"
    assert body["token"]

    dup = signup(client, email="a@b.com")
    assert dup.status_code == 400
    assert "already exists" in dup.json()["message"]

    wrong = client.post("/api/user/login", json={"email": "a@b.com", "password": "nope123"})
    assert wrong.status_code == 401
    assert wrong.json()["message"] == "Invalid credentials"

    ok = client.post("/api/user/login", json={"email": "a@b.com", "password": "secret1"})
    assert ok.status_code == 200
    assert ok.json()["token"]


def test_signup_response_never_contains_password(client):
    body = signup(client, email="p@mail.com", password="hunter22").json()
    serialized = str(body)
    assert "password" not in body["data"]
    assert "passwordHash" not in body["data"]
    assert "hunter22" not in serialized


def test_admin_signup_sets_role(client):
    res = signup(client, email="boss@mail.com", admin=True)
    assert res.status_code == 201
    assert res.json()["data"]["isAdmin"] is True


def test_signup_validation(client):
    missing = client.post("/api/user/signup", json={"email": "x@mail.com", "firstName": "X"})
    assert missing.status_code == 400
    assert "required fields" in missing.json()["message"]

    bad_email = signup(client, email="not-an-email")
    assert bad_email.status_code == 400
    assert bad_email.json()["message"] == "Please provide a valid email address"

    short = signup(client, email="short@mail.com", password="12345")
    assert short.status_code == 400
    assert "at least 6" in short.json()["message"]


@pytest.mark.parametrize("email", ["a@-b.com", "a..b@mail.com", "a@b..com", "user@mail"])
def test_signup_rejects_malformed_addresses(client, db, email):
    res = signup(client, email=email)
    assert res.status_code == 400
    assert res.json()["message"] == "Please provide a valid email address"
    assert db.query(models.User).count() == 0


def test_email_uniqueness_is_case_insensitive(client):
    assert signup(client, email="Case@Mail.com").status_code == 201
    assert signup(client, email="case@mail.com").status_code == 400
    login = client.post("/api/user/login", json={"email": "CASE@mail.com", "password": "secret1"})
    assert login.status_code == 200


def test_login_failures_are_indistinguishable(client):
    signup(client, email="known@mail.com")
    unknown = client.post("/api/user/login", json={"email": "ghost@mail.com", "password": "secret1"})
    wrong = client.post("/api/user/login", json={"email": "known@mail.com", "password": "secret2"})
    assert unknown.status_code == wrong.status_code == 401
    assert unknown.json() == wrong.json()


def test_login_requires_fields(client):
    res = client.post("/api/user/login", json={"email": "known@mail.com"})
    assert res.status_code == 400
    assert res.json()["success"] is False


def test_admin_login_with_non_admin_is_forbidden(client):
    signup(client, email="plain@mail.com")
    res = client.post("/api/admin/login", json={"email": "plain@mail.com", "password": "secret1"})
    assert res.status_code == 403


def test_admin_login_bad_password_is_unauthorized(client):
    signup(client, email="boss@mail.com", admin=True)
    res = client.post("/api/admin/login", json={"email": "boss@mail.com", "password": "wrong12"})
    assert res.status_code == 401
    ok = client.post("/api/admin/login", json={"email": "boss@mail.com", "password": "secret1"})
    assert ok.status_code == 200
    assert ok.json()["data"]["isAdmin"] is True


def test_protected_route_requires_token(client):
    assert client.get("/api/user/profile").status_code == 401
    res = client.get("/api/user/profile", headers=auth_headers("garbage"))
    assert res.status_code == 401
    assert res.json()["success"] is False


def test_token_for_deleted_user_is_rejected(client, db, user_token):
    db.query(models.User).delete()
    db.commit()
    res = client.get("/api/user/profile", headers=auth_headers(user_token))
    assert res.status_code == 401


def test_admin_routes_forbid_regular_users(client, user_token):
    res = client.get("/api/admin/users", headers=auth_headers(user_token))
    assert res.status_code == 403


def test_role_is_read_from_store_on_every_request(client, db, admin_token):
    assert client.get("/api/admin/users", headers=auth_headers(admin_token)).status_code == 200
    admin = db.query(models.User).filter(models.User.email == "admin@mail.com").one()
    admin.is_admin = False
    db.commit()
    assert client.get("/api/admin/users", headers=auth_headers(admin_token)).status_code == 403


def test_health(client):
    res = client.get("/health")
    assert res.status_code == 200
    assert res.json()["success"] is True


PNG = ("me.png", b"\x89PNG\r\n\x1a\n fake image", "image/png")
FORM = {"email": "pic@mail.com", "firstName": "Pic", "lastName": "Ture", "password": "secret1"}


def profile_files(upload_dir):
    folder = upload_dir / "profiles"
    return sorted(os.listdir(folder)) if folder.exists() else []


def test_multipart_signup_stores_profile_image(client, upload_dir):
    res = client.post("/api/user/signup", data=FORM, files={"profileImg": PNG})
    assert res.status_code == 201
    url = res.json()["data"]["profileImg"]
    assert url.startswith("/uploads/profiles/profile-") and url.endswith(".png")
    assert os.path.exists(storage.path_for(url))

    login = client.post("/api/user/login", json={"email": "pic@mail.com", "password": "secret1"})
    assert login.json()["data"]["profileImg"] == url


def test_admin_signup_accepts_form_without_image(client):
    res = client.post("/api/admin/signup", data=FORM)
    assert res.status_code == 201
    data = res.json()["data"]
    assert data["isAdmin"] is True
    assert data["profileImg"] is None


def test_multipart_signup_rejects_bad_image_without_creating_user(client, db, upload_dir):
    res = client.post("/api/user/signup", data=FORM, files={"profileImg": ("a.txt", b"hi", "text/plain")})
    assert res.status_code == 400
    assert db.query(models.User).count() == 0
    assert profile_files(upload_dir) == []


def test_invalid_signup_leaves_no_image_behind(client, upload_dir):
    signup(client, email="pic@mail.com")
    dup = client.post("/api/user/signup", data=FORM, files={"profileImg": PNG})
    assert dup.status_code == 400
    assert profile_files(upload_dir) == []


def test_failed_insert_removes_stored_image(client, upload_dir, monkeypatch):
    def broken_commit(self):
        raise RuntimeError("database went away")

    monkeypatch.setattr(Session, "commit", broken_commit)
    with pytest.raises(RuntimeError):
        client.post("/api/user/signup", data=FORM, files={"profileImg": PNG})
    assert profile_files(upload_dir) == []


def test_signup_rejects_non_object_json(client):
    res = client.post("/api/user/signup", json=["not", "an", "object"])
    assert res.status_code == 400
    assert res.json()["success"] is False
