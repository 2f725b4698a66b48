"""
tests/test_auth_flow.py -- Integration tests for the /api/v1/auth routes.

These run the whole stack: security middleware -> routing -> auth pipeline
dependencies -> services -> SQLite, including the end-to-end register /
login / role-gate scenario.
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from authkit.models.refresh_token import RefreshToken
from authkit.services.auth_service import auth_service
from conftest import auth_headers

ALICE = {"username": "alice", "email": "alice@x.com", "password": "secret1"}


def _register(client: TestClient, **overrides) -> dict:
    resp = client.post("/api/v1/auth/register", json={**ALICE, **overrides})
    assert resp.status_code == 201, resp.text
    return resp.json()


class TestEndToEnd:
    def test_register_login_and_role_gate(self, client: TestClient, admin_headers: dict) -> None:
        """Register alice, fail and succeed a login, then pass a role gate once granted admin."""
        registered = _register(client)
        assert registered["access_token"] and registered["refresh_token"]
        assert registered["token_type"] == "bearer"
        assert [r["name"] for r in registered["user"]["roles"]] == ["user"]
        alice_id = registered["user"]["id"]

        resp = client.post("/api/v1/auth/login", json={"username": "alice", "password": "wrong"})
        assert resp.status_code == 401
        assert resp.json() == {"detail": "Invalid credentials"}

        resp = client.post("/api/v1/auth/login", json={"username": "alice", "password": "secret1"})
        assert resp.status_code == 200
        alice = auth_headers(resp.json()["access_token"])
        assert resp.json()["refresh_token"] != registered["refresh_token"]

        resp = client.get("/api/v1/admin/stats", headers=alice)
        assert resp.status_code == 403
        assert resp.json()["detail"] == "Insufficient role"

        roles = client.get("/api/v1/roles", headers=admin_headers).json()
        admin_role_id = next(r["id"] for r in roles if r["name"] == "admin")
        resp = client.post(
            f"/api/v1/users/{alice_id}/roles", json={"role_ids": [admin_role_id]}, headers=admin_headers,
        )
        assert resp.status_code == 200, resp.text

        # same access token; the principal is reloaded with its new roles
        resp = client.get("/api/v1/admin/stats", headers=alice)
        assert resp.status_code == 200
        assert resp.json()["users"] == 2


class TestRegisterAndLogin:
    def test_duplicate_registration_conflicts(self, client: TestClient) -> None:
        _register(client)
        resp = client.post("/api/v1/auth/register", json={**ALICE, "username": "alice2"})
        assert resp.status_code == 409
        assert resp.json()["detail"] == "Username or email already exists"

    def test_invalid_body_is_400(self, client: TestClient) -> None:
        resp = client.post("/api/v1/auth/register", json={**ALICE, "password": "123"})
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Invalid request data"

    def test_login_by_email(self, client: TestClient) -> None:
        _register(client)
        resp = client.post("/api/v1/auth/login", json={"username": "alice@x.com", "password": "secret1"})
        assert resp.status_code == 200
        assert resp.json()["user"]["username"] == "alice"

    def test_unknown_user_gets_same_error(self, client: TestClient) -> None:
        resp = client.post("/api/v1/auth/login", json={"username": "nobody", "password": "secret1"})
        assert resp.status_code == 401
        assert resp.json() == {"detail": "Invalid credentials"}

    def test_response_never_contains_password_hash(self, client: TestClient) -> None:
        body = _register(client)
        assert "hashed_password" not in body["user"]
        assert "password" not in body["user"]

    def test_storage_failure_on_login_is_generic_500(
        self, client: TestClient, db: Session, monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        auth_service.create_user(db, "alice", "alice@x.com", "secret1", role_names=["user"])
        rollbacks = []
        real_rollback = Session.rollback

        def failing_commit(self) -> None:
            raise OperationalError("COMMIT", {}, Exception("database is locked"))

        def spy_rollback(self) -> None:
            rollbacks.append(self)
            real_rollback(self)

        monkeypatch.setattr(Session, "commit", failing_commit)
        monkeypatch.setattr(Session, "rollback", spy_rollback)
        resp = client.post("/api/v1/auth/login", json={"username": "alice", "password": "secret1"})
        monkeypatch.undo()

        assert resp.status_code == 500
        assert resp.json() == {"detail": "Internal server error"}
        assert rollbacks
        db.expire_all()
        assert db.query(RefreshToken).count() == 0


class TestPipeline:
    def test_missing_token(self, client: TestClient) -> None:
        resp = client.get("/api/v1/auth/me")
        assert resp.status_code == 401
        assert resp.json()["detail"] == "No token provided"

    def test_invalid_token(self, client: TestClient) -> None:
        resp = client.get("/api/v1/auth/me", headers=auth_headers("garbage"))
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Invalid token"

    def test_query_parameter_token(self, client: TestClient) -> None:
        token = _register(client)["access_token"]
        resp = client.get("/api/v1/auth/me", params={"token": token})
        assert resp.status_code == 200

    def test_bearer_header_wins_over_query(self, client: TestClient) -> None:
        token = _register(client)["access_token"]
        resp = client.get("/api/v1/auth/me", params={"token": "garbage"}, headers=auth_headers(token))
        assert resp.status_code == 200

        resp = client.get("/api/v1/auth/me", params={"token": token}, headers=auth_headers("garbage"))
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Invalid token"

    def test_scheme_is_case_insensitive(self, client: TestClient) -> None:
        token = _register(client)["access_token"]
        resp = client.get("/api/v1/auth/me", headers={"Authorization": f"bearer {token}"})
        assert resp.status_code == 200

    def test_non_bearer_header_falls_back_to_query(self, client: TestClient) -> None:
        token = _register(client)["access_token"]
        resp = client.get(
            "/api/v1/auth/me", params={"token": token}, headers={"Authorization": "Basic Zm9vOmJhcg=="},
        )
        assert resp.status_code == 200

        resp = client.get("/api/v1/auth/me", headers={"Authorization": "Basic Zm9vOmJhcg=="})
        assert resp.status_code == 401
        assert resp.json()["detail"] == "No token provided"

    def test_bearer_scheme_is_documented(self, client: TestClient) -> None:
        schemes = client.get("/openapi.json").json()["components"]["securitySchemes"]
        assert schemes["HTTPBearer"]["scheme"] == "bearer"

    def test_me_lists_flattened_permissions(self, client: TestClient) -> None:
        token = _register(client)["access_token"]
        resp = client.get("/api/v1/auth/me", headers=auth_headers(token))
        assert resp.status_code == 200
        body = resp.json()
        assert body["user"]["username"] == "alice"
        assert body["permissions"] == ["dashboard.read", "menu.dashboard"]

    def test_menu_for_basic_user(self, client: TestClient) -> None:
        token = _register(client)["access_token"]
        body = client.get("/api/v1/auth/menu", headers=auth_headers(token)).json()
        assert [m["name"] for m in body["menus"]] == ["dashboard"]
        assert body["menus"][0]["permission"] == "menu.dashboard"
        assert body["features"] == {"export": False, "import": False, "backup": False, "maintenance": False}

    def test_disabled_user_is_locked_out_on_next_request(self, client: TestClient, admin_headers: dict) -> None:
        registered = _register(client)
        alice = auth_headers(registered["access_token"])
        assert client.get("/api/v1/auth/me", headers=alice).status_code == 200

        resp = client.put(
            f"/api/v1/users/{registered['user']['id']}", json={"is_active": False}, headers=admin_headers,
        )
        assert resp.status_code == 200

        resp = client.get("/api/v1/auth/me", headers=alice)
        assert resp.status_code == 401
        assert resp.json()["detail"] == "User account is disabled"

        resp = client.post("/api/v1/auth/refresh", json={"refresh_token": registered["refresh_token"]})
        assert resp.status_code == 401

        resp = client.post("/api/v1/auth/login", json={"username": "alice", "password": "secret1"})
        assert resp.status_code == 401


class TestRefreshAndLogout:
    def test_refresh_returns_new_access_token(self, client: TestClient) -> None:
        registered = _register(client)
        resp = client.post("/api/v1/auth/refresh", json={"refresh_token": registered["refresh_token"]})
        assert resp.status_code == 200
        body = resp.json()
        assert body["token_type"] == "bearer"
        assert client.get("/api/v1/auth/me", headers=auth_headers(body["access_token"])).status_code == 200

    def test_refresh_with_unknown_token(self, client: TestClient) -> None:
        resp = client.post("/api/v1/auth/refresh", json={"refresh_token": "nope"})
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Invalid or expired refresh token"

    def test_logout_revokes_refresh_token(self, client: TestClient) -> None:
        registered = _register(client)
        headers = auth_headers(registered["access_token"])
        resp = client.post(
            "/api/v1/auth/logout", json={"refresh_token": registered["refresh_token"]}, headers=headers,
        )
        assert resp.status_code == 200
        resp = client.post("/api/v1/auth/refresh", json={"refresh_token": registered["refresh_token"]})
        assert resp.status_code == 401

    def test_logout_without_body(self, client: TestClient) -> None:
        headers = auth_headers(_register(client)["access_token"])
        resp = client.post("/api/v1/auth/logout", headers=headers)
        assert resp.status_code == 200
        assert resp.json()["message"] == "Logged out successfully"

    def test_logout_all(self, client: TestClient) -> None:
        registered = _register(client)
        second = client.post("/api/v1/auth/login", json={"username": "alice", "password": "secret1"}).json()
        resp = client.post("/api/v1/auth/logout-all", headers=auth_headers(second["access_token"]))
        assert resp.status_code == 200
        assert resp.json()["detail"] == {"revoked": 2}
        for token in (registered["refresh_token"], second["refresh_token"]):
            assert client.post("/api/v1/auth/refresh", json={"refresh_token": token}).status_code == 401

    def test_cannot_revoke_someone_elses_token(self, client: TestClient) -> None:
        alice = _register(client)
        bob = _register(client, username="bob", email="bob@x.com")
        resp = client.post(
            "/api/v1/auth/logout",
            json={"refresh_token": alice["refresh_token"]},
            headers=auth_headers(bob["access_token"]),
        )
        assert resp.status_code == 401
        assert client.post("/api/v1/auth/refresh", json={"refresh_token": alice["refresh_token"]}).status_code == 200
