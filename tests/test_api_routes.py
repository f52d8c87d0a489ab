"""
tests/test_api_routes.py -- Integration tests for the auth HTTP endpoints.

These tests exercise the full stack: FastAPI routing -> session dependency ->
AuthService -> UserStore / key-value store -> response model serialization.
The TestClient keeps cookies between calls, so the qid session cookie flows
exactly as it would in a browser.

Coverage:
  - register: success sets qid cookie and /me resolves; field errors as 200 data
  - login: by username and by email; wrong password; unknown identifier
  - logout: clears cookie; /me becomes null
  - forgot/reset password: full round trip, token reuse rejected
  - users listing never exposes password hashes
  - malformed bodies -> 422 envelope

Fixtures used (from conftest.py):
  - client: TestClient over the real app with isolated stores
  - notifier: RecordingNotifier capturing reset links
  - service: the AuthService instance the app is using
"""

from __future__ import annotations

from fastapi.testclient import TestClient

REGISTER = {"username": "alice", "email": "alice@example.com", "password": "secret1"}


def _register(client: TestClient, body: dict = REGISTER) -> dict:
    resp = client.post("/api/v1/auth/register", json=body)
    assert resp.status_code == 200
    return resp.json()


class TestRegisterRoute:
    def test_register_sets_session_cookie(self, client: TestClient) -> None:
        data = _register(client)
        assert data["errors"] is None
        assert data["user"]["username"] == "alice"
        assert "hashedPassword" not in data["user"]
        assert "hashed_password" not in data["user"]
        assert client.cookies.get("qid")

        me = client.get("/api/v1/auth/me")
        assert me.status_code == 200
        assert me.json()["username"] == "alice"

    def test_register_field_error_is_data(self, client: TestClient) -> None:
        resp = client.post(
            "/api/v1/auth/register",
            json={"username": "ab", "email": "a@b.com", "password": "secret1"},
        )
        assert resp.status_code == 200
        assert resp.json() == {
            "errors": [{"field": "username", "message": "length must be at least 3"}],
            "user": None,
        }
        assert client.cookies.get("qid") is None

    def test_register_duplicate(self, client: TestClient) -> None:
        _register(client)
        data = _register(client, {**REGISTER, "email": "other@example.com"})
        assert data["errors"] == [{"field": "usernameOrEmail", "message": "username or email already taken"}]

    def test_register_response_not_cached(self, client: TestClient) -> None:
        resp = client.post("/api/v1/auth/register", json=REGISTER)
        assert resp.headers["cache-control"] == "no-store"


class TestLoginRoute:
    def test_login_by_username_and_email(self, client: TestClient) -> None:
        _register(client)
        client.cookies.clear()

        resp = client.post("/api/v1/auth/login", json={"usernameOrEmail": "alice", "password": "secret1"})
        assert resp.json()["user"]["email"] == "alice@example.com"
        assert client.cookies.get("qid")

        client.cookies.clear()
        resp = client.post(
            "/api/v1/auth/login",
            json={"usernameOrEmail": "alice@example.com", "password": "secret1"},
        )
        assert resp.json()["user"]["username"] == "alice"

    def test_login_issues_new_session_cookie(self, client: TestClient) -> None:
        _register(client)
        before = client.cookies.get("qid")

        resp = client.post("/api/v1/auth/login", json={"usernameOrEmail": "alice", "password": "secret1"})
        after = client.cookies.get("qid")
        assert resp.json()["user"]["username"] == "alice"
        assert after and after != before
        assert client.get("/api/v1/auth/me", cookies={"qid": before}).json() is None

    def test_login_unknown_email(self, client: TestClient) -> None:
        resp = client.post("/api/v1/auth/login", json={"usernameOrEmail": "x@y.com", "password": "secret1"})
        errors = resp.json()["errors"]
        assert errors[0]["field"] == "usernameOrEmail"
        assert "email" in errors[0]["message"]

    def test_login_wrong_password(self, client: TestClient) -> None:
        _register(client)
        client.cookies.clear()
        resp = client.post("/api/v1/auth/login", json={"usernameOrEmail": "alice", "password": "nope-nope"})
        assert resp.json()["errors"] == [{"field": "password", "message": "incorrect password"}]
        assert client.get("/api/v1/auth/me").json() is None

    def test_login_missing_field_is_422(self, client: TestClient) -> None:
        resp = client.post("/api/v1/auth/login", json={"password": "secret1"})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"

    def test_422_does_not_echo_rejected_password(self, client: TestClient) -> None:
        password = "hunter2-" + "x" * 1100
        resp = client.post("/api/v1/auth/login", json={"usernameOrEmail": "alice", "password": password})
        assert resp.status_code == 422
        assert "max_length" in resp.text
        assert "hunter2-" not in resp.text


class TestLogoutRoute:
    def test_logout_clears_cookie(self, client: TestClient) -> None:
        _register(client)
        resp = client.post("/api/v1/auth/logout")
        assert resp.status_code == 200
        assert resp.json() is True
        set_cookie = resp.headers.get("set-cookie", "")
        assert "qid=" in set_cookie
        assert "max-age=0" in set_cookie.lower()
        assert client.get("/api/v1/auth/me").json() is None

    def test_logout_anonymous(self, client: TestClient) -> None:
        assert client.post("/api/v1/auth/logout").json() is True

    def test_stale_cookie_after_logout_is_anonymous(self, client: TestClient) -> None:
        _register(client)
        stale = client.cookies.get("qid")
        client.post("/api/v1/auth/logout")
        assert client.get("/api/v1/auth/me", cookies={"qid": stale}).json() is None


class TestPasswordRecoveryRoutes:
    def test_forgot_and_reset_round_trip(self, client: TestClient, notifier, service) -> None:
        _register(client)
        client.post("/api/v1/auth/logout")

        resp = client.post("/api/v1/auth/forgot-password", json={"email": "alice@example.com"})
        assert resp.json() is True
        client.portal.call(service.drain)
        token = notifier.last_token()

        body = {"token": token, "newPassword": "brandnew1", "confirmPassword": "brandnew1"}
        resp = client.post("/api/v1/auth/reset-password", json=body)
        assert resp.json()["user"]["username"] == "alice"
        assert client.get("/api/v1/auth/me").json()["username"] == "alice"

        again = client.post("/api/v1/auth/reset-password", json=body)
        assert again.json()["errors"] == [{"field": "token", "message": "token expired"}]

        client.cookies.clear()
        login = client.post("/api/v1/auth/login", json={"usernameOrEmail": "alice", "password": "brandnew1"})
        assert login.json()["user"] is not None

    def test_forgot_unknown_email_still_true(self, client: TestClient, notifier) -> None:
        resp = client.post("/api/v1/auth/forgot-password", json={"email": "ghost@example.com"})
        assert resp.json() is True
        assert notifier.sent == []

    def test_reset_mismatched_confirmation(self, client: TestClient) -> None:
        resp = client.post(
            "/api/v1/auth/reset-password",
            json={"token": "whatever", "newPassword": "brandnew1", "confirmPassword": "brandnew2"},
        )
        assert resp.json()["errors"] == [{"field": "confirmPassword", "message": "password not match"}]


class TestUsersRoute:
    def test_list_users(self, client: TestClient) -> None:
        _register(client)
        _register(client, {"username": "bob", "email": "bob@example.com", "password": "secret1"})
        users = client.get("/api/v1/users").json()
        assert [u["username"] for u in users] == ["alice", "bob"]
        assert all(set(u) == {"id", "username", "email", "createdAt", "updatedAt"} for u in users)
