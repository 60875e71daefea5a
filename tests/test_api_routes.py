"""
tests/test_api_routes.py -- Integration tests for the auth and user routes.

These tests exercise the full stack: FastAPI routing -> get_caller_id
dependency -> Authenticator/ProfileService -> UserStore -> response model
serialization and the app's exception handlers. Each test gets a fresh app
and database from the api_client fixture.

Coverage:
  - Register: 201 shape, duplicate 400, validation 400, no-store header
  - Login: 200 shape, unknown account / wrong password 400
  - Profile: 401 variants, 403 id mismatch, 404 unknown id, partial update
  - Security report: auth required, 404 unknown email
  - Store failures: register 403 on rejected credentials, login 503 when unreachable
  - End-to-end Ada scenario
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from jose import jwt

from api.main import create_app
from conftest import BrokenEngine, bearer, make_settings, register

USER_KEYS = {"id", "name", "email", "bio", "lastLogin", "securityScore"}


class TestRegister:
    def test_register_created(self, api_client: TestClient) -> None:
        resp = register(api_client)
        assert resp.status_code == 201, resp.text
        data = resp.json()
        assert data["token"]
        assert set(data["user"]) == USER_KEYS
        assert data["user"]["email"] == "ada@x.com"
        assert data["user"]["name"] == "Ada"
        assert data["user"]["bio"] == ""
        assert data["user"]["securityScore"] == 80
        assert resp.headers["Cache-Control"] == "no-store"

    def test_register_never_returns_password(self, api_client: TestClient) -> None:
        resp = register(api_client)
        assert "secret1" not in resp.text
        assert "password" not in resp.text.lower()

    def test_register_duplicate_email(self, api_client: TestClient) -> None:
        register(api_client)
        resp = register(api_client, name="Someone Else")
        assert resp.status_code == 400
        data = resp.json()
        assert data["code"] == "duplicate_email"
        assert data["message"] == "This email is already registered."

    @pytest.mark.parametrize(
        "body",
        [
            {"email": "ada@x.com", "password": "secret1"},
            {"name": "Ada", "password": "secret1"},
            {"name": "Ada", "email": "ada@x.com"},
            {"name": "", "email": "ada@x.com", "password": "secret1"},
            {"name": "Ada", "email": "", "password": "secret1"},
            {"name": "Ada", "email": "ada@x.com", "password": ""},
        ],
    )
    def test_register_validation(self, api_client: TestClient, body: dict) -> None:
        resp = api_client.post("/api/auth/register", json=body)
        assert resp.status_code == 400, resp.text
        assert resp.json()["code"] == "validation_error"


class TestLogin:
    def test_login_ok(self, api_client: TestClient) -> None:
        user_id = register(api_client).json()["user"]["id"]
        resp = api_client.post("/api/auth/login", json={"email": "ada@x.com", "password": "secret1"})
        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert set(data["user"]) == USER_KEYS
        assert data["user"]["id"] == user_id
        assert jwt.get_unverified_claims(data["token"])["sub"] == user_id
        assert resp.headers["Cache-Control"] == "no-store"

    def test_login_unknown_account(self, api_client: TestClient) -> None:
        resp = api_client.post("/api/auth/login", json={"email": "nobody@x.com", "password": "secret1"})
        assert resp.status_code == 400
        assert resp.json() == {"message": "Account not found", "code": "account_not_found"}

    def test_login_wrong_password(self, api_client: TestClient) -> None:
        register(api_client)
        resp = api_client.post("/api/auth/login", json={"email": "ada@x.com", "password": "wrong"})
        assert resp.status_code == 400
        assert resp.json() == {"message": "Invalid password provided", "code": "invalid_credentials"}

    def test_login_unified_messages(self, tmp_path) -> None:
        settings = make_settings(f"sqlite:///{tmp_path / 'unified.db'}", unify_login_errors=True)
        with TestClient(create_app(settings)) as client:
            register(client)
            unknown = client.post("/api/auth/login", json={"email": "nobody@x.com", "password": "secret1"})
            wrong = client.post("/api/auth/login", json={"email": "ada@x.com", "password": "wrong"})
        assert unknown.status_code == wrong.status_code == 400
        assert unknown.json() == wrong.json()


class TestStoreFailures:
    def test_register_rejected_store_credentials(self, api_client: TestClient, monkeypatch) -> None:
        user_store = api_client.app.state.user_store
        monkeypatch.setattr(
            user_store,
            "engine",
            BrokenEngine('FATAL: password authentication failed for user "nexus" password=hunter2'),
        )
        resp = register(api_client)
        assert resp.status_code == 403
        data = resp.json()
        assert data["code"] == "store_permission_denied"
        assert data["error"]
        assert "hunter2" not in resp.text
        assert "DATABASE_URL" in data["error"]

    def test_login_unreachable_store(self, api_client: TestClient, monkeypatch) -> None:
        register(api_client)
        monkeypatch.setattr(
            api_client.app.state.user_store,
            "engine",
            BrokenEngine("could not connect to server: Connection refused"),
        )
        resp = api_client.post("/api/auth/login", json={"email": "ada@x.com", "password": "secret1"})
        assert resp.status_code == 503
        data = resp.json()
        assert data["code"] == "store_unavailable"
        assert data["message"] == "Database Link Broken"


class TestProfileAuth:
    def test_missing_header(self, api_client: TestClient) -> None:
        resp = api_client.put("/api/user/profile", json={"id": "x", "bio": "hi"})
        assert resp.status_code == 401
        assert resp.json()["code"] == "missing_token"

    def test_malformed_header(self, api_client: TestClient) -> None:
        resp = api_client.put("/api/user/profile", json={"id": "x"}, headers={"Authorization": "Bearer"})
        assert resp.status_code == 401
        assert resp.json()["code"] == "malformed_token"

    def test_malformed_token(self, api_client: TestClient) -> None:
        resp = api_client.put("/api/user/profile", json={"id": "x"}, headers=bearer("garbage"))
        assert resp.status_code == 401
        assert resp.json()["code"] == "malformed_token"

    def test_foreign_signed_token(self, api_client: TestClient) -> None:
        user_id = register(api_client).json()["user"]["id"]
        forged = jwt.encode({"sub": user_id, "exp": 4102444800}, "x" * 40, algorithm="HS256")
        resp = api_client.put("/api/user/profile", json={"id": user_id, "bio": "x"}, headers=bearer(forged))
        assert resp.status_code == 401
        assert resp.json()["code"] == "invalid_token"
        assert resp.json()["message"] == "Invalid or Expired token"

    def test_expired_token(self, api_client: TestClient) -> None:
        user_id = register(api_client).json()["user"]["id"]
        settings = api_client.app.state.settings
        expired = jwt.encode({"sub": user_id, "iat": 1000, "exp": 2000}, settings.secret_key, algorithm="HS256")
        resp = api_client.put("/api/user/profile", json={"id": user_id, "bio": "x"}, headers=bearer(expired))
        assert resp.status_code == 401
        assert resp.json()["code"] == "token_expired"


class TestProfileUpdate:
    def test_update_own_bio_only(self, api_client: TestClient) -> None:
        data = register(api_client).json()
        user_id, token = data["user"]["id"], data["token"]
        resp = api_client.put("/api/user/profile", json={"id": user_id, "bio": "Analyst"}, headers=bearer(token))
        assert resp.status_code == 200, resp.text
        body = resp.json()
        assert set(body) == USER_KEYS
        assert body["bio"] == "Analyst"
        assert body["name"] == "Ada"

    def test_update_own_name(self, api_client: TestClient) -> None:
        data = register(api_client).json()
        user_id, token = data["user"]["id"], data["token"]
        resp = api_client.put(
            "/api/user/profile",
            json={"id": user_id, "name": "Ada L.", "bio": None},
            headers=bearer(token),
        )
        assert resp.status_code == 200
        assert resp.json()["name"] == "Ada L."
        assert resp.json()["bio"] == ""

    def test_update_other_user_forbidden(self, api_client: TestClient) -> None:
        ada = register(api_client).json()
        eve = register(api_client, name="Eve", email="eve@x.com", password="secret2").json()
        resp = api_client.put(
            "/api/user/profile",
            json={"id": ada["user"]["id"], "name": "pwned"},
            headers=bearer(eve["token"]),
        )
        assert resp.status_code == 403
        assert resp.json() == {"message": "Forbidden", "code": "forbidden"}

    def test_update_unknown_identity(self, api_client: TestClient) -> None:
        ghost = "0" * 32
        token = api_client.app.state.tokens.issue(ghost)
        resp = api_client.put("/api/user/profile", json={"id": ghost, "bio": "x"}, headers=bearer(token))
        assert resp.status_code == 404
        assert resp.json()["code"] == "not_found"

    def test_update_blank_name(self, api_client: TestClient) -> None:
        data = register(api_client).json()
        resp = api_client.put(
            "/api/user/profile",
            json={"id": data["user"]["id"], "name": ""},
            headers=bearer(data["token"]),
        )
        assert resp.status_code == 400
        assert resp.json()["code"] == "validation_error"

    def test_update_missing_id(self, api_client: TestClient) -> None:
        token = register(api_client).json()["token"]
        resp = api_client.put("/api/user/profile", json={"bio": "x"}, headers=bearer(token))
        assert resp.status_code == 400
        assert resp.json()["code"] == "validation_error"


class TestSecurityReport:
    def test_report(self, api_client: TestClient) -> None:
        token = register(api_client).json()["token"]
        resp = api_client.get("/api/user/security/ada@x.com", headers=bearer(token))
        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert data["score"] == 80
        assert isinstance(data["recommendations"], list)
        assert isinstance(data["vulnerabilities"], list)
        assert "ada@x.com" in data["summary"]

    def test_report_requires_token(self, api_client: TestClient) -> None:
        register(api_client)
        resp = api_client.get("/api/user/security/ada@x.com")
        assert resp.status_code == 401

    def test_report_unknown_email(self, api_client: TestClient) -> None:
        token = register(api_client).json()["token"]
        resp = api_client.get("/api/user/security/nobody@x.com", headers=bearer(token))
        assert resp.status_code == 404


def test_unknown_route_uses_error_envelope(api_client: TestClient) -> None:
    resp = api_client.get("/api/nope")
    assert resp.status_code == 404
    assert resp.json()["code"] == "http_404"


def test_end_to_end_cross_user_update_is_forbidden(api_client: TestClient) -> None:
    """Register Ada, log in as Ada, then try to edit Ada's profile with another user's token."""
    reg = register(api_client, name="Ada", email="ada@x.com", password="secret1")
    assert reg.status_code == 201
    assert reg.json()["user"]["email"] == "ada@x.com"
    assert reg.json()["token"]
    ada_id = reg.json()["user"]["id"]

    login = api_client.post("/api/auth/login", json={"email": "ada@x.com", "password": "secret1"})
    assert login.status_code == 200
    assert jwt.get_unverified_claims(login.json()["token"])["sub"] == ada_id

    other = register(api_client, name="Mallory", email="mallory@x.com", password="secret3").json()
    assert jwt.get_unverified_claims(other["token"])["sub"] != ada_id
    resp = api_client.put(
        "/api/user/profile",
        json={"id": ada_id, "name": "Hijacked"},
        headers=bearer(other["token"]),
    )
    assert resp.status_code == 403
    assert resp.json()["code"] == "forbidden"
