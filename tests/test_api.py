from __future__ import annotations

from typing import Iterator

import pytest
from fastapi.testclient import TestClient

import membership.api.app as api
from membership.auth.config import load_auth_config
from membership.auth.errors import StoreError
from membership.auth.ids import is_valid_membership_id

from conftest import TEST_OAUTH_STATE

COOKIE = "membership_session"


@pytest.fixture
def client(service) -> Iterator[TestClient]:  # type: ignore[no-untyped-def]
    api.app.dependency_overrides[api.get_service] = lambda: service
    try:
        yield TestClient(api.app)
    finally:
        api.app.dependency_overrides.clear()


def _signup(c: TestClient, username: str = "alice", password: str = "secret123") -> str:
    r = c.post("/signup", json={"username": username, "password": password})
    assert r.status_code == 201, r.text
    return r.json()["membership_id"]


def test_healthz_is_public(client: TestClient) -> None:
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.json() == {"ok": True}


def test_index_reports_oauth_mode(client: TestClient) -> None:
    body = client.get("/").json()
    assert body["ok"] is True
    assert body["oauthEnabled"] is False
    assert "googleLoginUrl" not in body


def test_signup_returns_membership_id(client: TestClient) -> None:
    r = client.post("/signup", json={"username": "alice", "password": "secret123"})
    assert r.status_code == 201
    body = r.json()
    assert body["message"] == "User created successfully"
    assert is_valid_membership_id(body["membership_id"])


def test_signup_missing_fields(client: TestClient) -> None:
    r = client.post("/signup", json={"username": "alice"})
    assert r.status_code == 400
    assert r.json()["error"] == "invalid_input"

    r = client.post("/signup", json={"password": "secret123"})
    assert r.status_code == 400


def test_signup_duplicate_is_conflict(client: TestClient) -> None:
    _signup(client)
    r = client.post("/signup", json={"username": "alice", "password": "other"})
    assert r.status_code == 409
    body = r.json()
    assert body["error"] == "conflict"
    assert body["field"] == "username"


def test_signin_redirects_to_welcome_with_session(client: TestClient) -> None:
    mid = _signup(client)
    r = client.post("/signin", json={"username": "alice", "password": "secret123"}, follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"] == "/welcome"
    assert COOKIE in r.cookies

    client.cookies.set(COOKIE, r.cookies[COOKIE])
    w = client.get("/welcome")
    assert w.status_code == 200
    assert w.json() == {"ok": True, "username": "alice", "membership_id": mid}


def test_signin_json_mode(client: TestClient) -> None:
    mid = _signup(client)
    r = client.post(
        "/signin",
        json={"username": "alice", "password": "secret123"},
        headers={"Accept": "application/json"},
    )
    assert r.status_code == 200
    assert r.json() == {"ok": True, "user": {"membership_id": mid, "username": "alice"}}
    assert r.headers["cache-control"] == "no-store"


def test_signin_failures_are_uniform(client: TestClient) -> None:
    _signup(client)
    wrong = client.post("/signin", json={"username": "alice", "password": "wrong"}, follow_redirects=False)
    unknown = client.post("/signin", json={"username": "nobody", "password": "secret123"}, follow_redirects=False)
    assert wrong.status_code == unknown.status_code == 401
    assert wrong.json() == unknown.json() == {"error": "invalid_credentials", "detail": "Invalid credentials"}
    assert "set-cookie" not in {k.lower() for k in wrong.headers.keys()}


def test_welcome_requires_session(client: TestClient) -> None:
    r = client.get("/welcome")
    assert r.status_code == 401


def test_list_users_has_no_password_data(client: TestClient) -> None:
    a = _signup(client, "alice")
    b = _signup(client, "carol", "hunter22")
    r = client.get("/users")
    assert r.status_code == 200
    assert r.json() == [
        {"membership_id": a, "username": "alice"},
        {"membership_id": b, "username": "carol"},
    ]


def test_logout_expires_session(client: TestClient) -> None:
    _signup(client)
    r = client.post("/signin", json={"username": "alice", "password": "secret123"}, follow_redirects=False)
    client.cookies.set(COOKIE, r.cookies[COOKIE])

    out = client.post("/logout", follow_redirects=False)
    assert out.status_code == 303
    assert out.headers["location"] == "/"
    set_cookie = out.headers.get("set-cookie", "")
    assert "max-age=0" in set_cookie.lower()

    # Even a client that keeps presenting the replacement value is treated as signed out.
    name, _, expired = set_cookie.split(";", 1)[0].partition("=")
    expired = expired.strip('"')
    assert name == COOKIE
    assert expired
    client.cookies.set(COOKIE, expired)
    assert client.get("/welcome").status_code == 401


def test_logout_without_session(client: TestClient) -> None:
    r = client.get("/logout", follow_redirects=False)
    assert r.status_code == 303


def test_google_login_redirects_with_state(client: TestClient) -> None:
    r = client.get("/auth/google/login", follow_redirects=False)
    assert r.status_code == 307
    assert f"state={TEST_OAUTH_STATE}" in r.headers["location"]


def test_google_callback_creates_account_and_session(client: TestClient) -> None:
    r = client.get(
        "/auth/google/callback", params={"state": TEST_OAUTH_STATE, "code": "code-bob"}, follow_redirects=False
    )
    assert r.status_code == 303
    assert r.headers["location"] == "/welcome"
    client.cookies.set(COOKIE, r.cookies[COOKIE])
    body = client.get("/welcome").json()
    assert body["username"] == "bob@example.com"

    # Repeated delivery logs into the same account.
    again = client.get(
        "/auth/google/callback", params={"state": TEST_OAUTH_STATE, "code": "code-bob"}, follow_redirects=False
    )
    assert again.status_code == 303
    users = client.get("/users").json()
    assert [u["username"] for u in users] == ["bob@example.com"]
    assert users[0]["membership_id"] == body["membership_id"]


def test_google_callback_invalid_state(client: TestClient) -> None:
    r = client.get("/auth/google/callback", params={"state": "forged", "code": "code-bob"}, follow_redirects=False)
    assert r.status_code == 400
    assert r.json()["error"] == "invalid_state"
    assert client.get("/users").json() == []


def test_google_callback_without_email(client: TestClient) -> None:
    r = client.get("/auth/google/callback", params={"state": TEST_OAUTH_STATE, "code": "code-empty"})
    assert r.status_code == 403
    assert r.json()["error"] == "invalid_identity"


def test_store_failure_is_reported_as_500(client: TestClient, service, monkeypatch: pytest.MonkeyPatch) -> None:  # type: ignore[no-untyped-def]
    def _boom() -> None:
        raise StoreError("Error retrieving users")

    monkeypatch.setattr(service.store, "list_all", _boom)
    r = client.get("/users")
    assert r.status_code == 500
    assert r.json() == {"error": "store_error", "detail": "Error retrieving users"}


def test_default_service_uses_memory_store_without_database() -> None:
    load_auth_config.cache_clear()
    api.get_service.cache_clear()
    c = TestClient(api.app)
    r = c.post("/signup", json={"username": "dave", "password": "secret123"})
    assert r.status_code == 201
    assert [u["username"] for u in c.get("/users").json()] == ["dave"]
    assert c.get("/auth/google/login").status_code == 502


def test_server_refuses_to_start_without_session_secret(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("SESSION_SECRET", raising=False)
    load_auth_config.cache_clear()
    api.get_service.cache_clear()
    with pytest.raises(RuntimeError, match="SESSION_SECRET"):
        with TestClient(api.app):
            pass


def test_server_starts_with_session_secret() -> None:
    with TestClient(api.app) as c:
        assert c.get("/healthz").json() == {"ok": True}
        r = c.post("/signup", json={"username": "erin", "password": "secret123"})
        assert r.status_code == 201
