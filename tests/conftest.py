"""
Pytest config.

Pins the repo root on sys.path so `import membership` works without an install,
and gives every test a clean, fast configuration (bcrypt cost 4, fixed secrets).
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Dict, List

import pytest


def _ensure_repo_root_on_syspath() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    repo_root_str = str(repo_root)
    if repo_root_str not in sys.path:
        sys.path.insert(0, repo_root_str)


_ensure_repo_root_on_syspath()

TEST_SESSION_SECRET = "test-secret-key-for-testing-purposes-only"
TEST_OAUTH_STATE = "test-oauth-state"


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch):
    """Reset env-derived caches so each test sees only its own environment."""
    from membership.api.app import get_service
    from membership.auth.config import load_auth_config

    for name in (
        "POSTGRES_DSN",
        "POSTGRES_HOST",
        "POSTGRES_PORT",
        "POSTGRES_DB",
        "POSTGRES_USER",
        "POSTGRES_PASSWORD",
        "DB_HOST",
        "DB_PORT",
        "DB_NAME",
        "DB_USER",
        "DB_PASSWORD",
        "DB_AUTO_MIGRATE",
        "GOOGLE_OAUTH_CLIENT_ID",
        "GOOGLE_OAUTH_CLIENT_SECRET",
        "GOOGLE_OAUTH_REDIRECT_URL",
        "OAUTH_STATE",
        "COOKIE_SECURE",
        "SESSION_TTL_SECONDS",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("SESSION_SECRET", TEST_SESSION_SECRET)
    monkeypatch.setenv("BCRYPT_ROUNDS", "4")

    load_auth_config.cache_clear()
    get_service.cache_clear()
    yield
    load_auth_config.cache_clear()
    get_service.cache_clear()


class FakeIdentityProvider:
    """Identity provider returning scripted emails and recording the codes it saw."""

    def __init__(self, emails: Dict[str, str] | None = None):
        self.emails = dict(emails or {})
        self.codes: List[str] = []

    def authorize_url(self, state: str) -> str:
        return f"https://accounts.example.test/auth?state={state}"

    def fetch_email(self, code: str) -> str:
        self.codes.append(code)
        return self.emails.get(code, "")


@pytest.fixture
def oauth_cfg():
    from membership.auth.config import OAuthConfig

    return OAuthConfig(
        client_id="client-id",
        client_secret="client-secret",
        redirect_url="http://localhost:8080/auth/google/callback",
        state=TEST_OAUTH_STATE,
    )


@pytest.fixture
def identity_provider() -> FakeIdentityProvider:
    return FakeIdentityProvider({"code-bob": "bob@example.com", "code-empty": ""})


@pytest.fixture
def store():
    from membership.storage.memory_store import MemoryAccountStore

    return MemoryAccountStore()


@pytest.fixture
def service(store, oauth_cfg, identity_provider):
    from membership.auth.passwords import PasswordHasher
    from membership.auth.session import SessionManager
    from membership.auth.workflow import AccountService

    return AccountService(
        store,
        PasswordHasher(rounds=4),
        SessionManager(TEST_SESSION_SECRET, ttl_seconds=3600),
        oauth=oauth_cfg,
        identity_provider=identity_provider,
    )
