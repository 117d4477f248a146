from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from membership.auth.passwords import DEFAULT_ROUNDS
from membership.auth.util import random_token

GOOGLE_USERINFO_EMAIL_SCOPE = "https://www.googleapis.com/auth/userinfo.email"
DEFAULT_REDIRECT_URL = "http://localhost:8080/auth/google/callback"


def _env_str(name: str) -> Optional[str]:
    return (os.getenv(name, "") or "").strip() or None


@dataclass(frozen=True)
class OAuthConfig:
    client_id: str
    client_secret: str
    redirect_url: str
    # Anti-forgery value checked on every callback; fixed for the life of the process.
    state: str
    scope: str = GOOGLE_USERINFO_EMAIL_SCOPE


@dataclass(frozen=True)
class AuthConfig:
    # Session configuration
    session_secret: Optional[str]  # Required for session signing
    session_ttl_seconds: int
    session_cookie_name: str
    cookie_secure: bool

    # Credential hashing
    bcrypt_rounds: int

    # Google OAuth (optional)
    oauth: Optional[OAuthConfig]

    @property
    def oauth_enabled(self) -> bool:
        """OAuth is enabled if both client id and secret are configured."""
        return self.oauth is not None


def mask_secret(value: Optional[str]) -> str:
    if not value:
        return ""
    if len(value) <= 8:
        return "*" * len(value)
    return value[:4] + "*" * (len(value) - 8) + value[-4:]


@lru_cache(maxsize=1)
def load_auth_config() -> AuthConfig:
    """
    Load authentication configuration from environment variables.

    Google OAuth is enabled if GOOGLE_OAUTH_CLIENT_ID and GOOGLE_OAUTH_CLIENT_SECRET are set.
    The result is cached: the signing key and OAuth state never change during a run.
    """
    redirect_url = _env_str("GOOGLE_OAUTH_REDIRECT_URL") or DEFAULT_REDIRECT_URL
    cookie_secure_env = (os.getenv("COOKIE_SECURE", "") or "").strip().lower()
    if cookie_secure_env in ("1", "true", "yes", "on"):
        cookie_secure = True
    elif cookie_secure_env in ("0", "false", "no", "off"):
        cookie_secure = False
    else:
        # Default: secure cookies when the public callback is https; otherwise allow local dev.
        cookie_secure = redirect_url.startswith("https://")

    ttl = int(float((os.getenv("SESSION_TTL_SECONDS", "") or "86400").strip() or "86400"))  # 24h default
    if ttl <= 60:
        ttl = 60

    try:
        rounds = int((os.getenv("BCRYPT_ROUNDS", "") or str(DEFAULT_ROUNDS)).strip())
    except ValueError:
        rounds = DEFAULT_ROUNDS

    client_id = _env_str("GOOGLE_OAUTH_CLIENT_ID")
    client_secret = _env_str("GOOGLE_OAUTH_CLIENT_SECRET")
    oauth = None
    if client_id and client_secret:
        oauth = OAuthConfig(
            client_id=client_id,
            client_secret=client_secret,
            redirect_url=redirect_url,
            state=_env_str("OAUTH_STATE") or random_token(32),
        )

    return AuthConfig(
        session_secret=_env_str("SESSION_SECRET"),
        session_ttl_seconds=ttl,
        session_cookie_name=_env_str("SESSION_COOKIE_NAME") or "membership_session",
        cookie_secure=cookie_secure,
        bcrypt_rounds=rounds,
        oauth=oauth,
    )
