from __future__ import annotations

import time
from typing import Any, Dict, Optional

from itsdangerous import BadSignature, BadTimeSignature, URLSafeTimedSerializer

from membership.auth.config import AuthConfig
from membership.auth.models import SessionIdentity

SESSION_SALT = "membership-session-v1"


class SessionManager:
    """
    Signed, time-bounded session tokens bound to an account.

    The payload carries the membership id, the username and an explicit expiry
    (`exp`, unix seconds). A token is accepted only if its signature verifies,
    it was signed less than `ttl_seconds` ago and `exp` is still in the future.
    """

    def __init__(self, secret: str, *, ttl_seconds: int = 86400, salt: str = SESSION_SALT):
        if not secret:
            raise ValueError("Session signing key is not configured (SESSION_SECRET)")
        self.ttl_seconds = int(ttl_seconds)
        self._serializer = URLSafeTimedSerializer(secret_key=secret, salt=salt)

    @classmethod
    def from_config(cls, cfg: AuthConfig) -> "SessionManager":
        return cls(cfg.session_secret or "", ttl_seconds=cfg.session_ttl_seconds)

    def _sign(self, identity: SessionIdentity, exp: int) -> str:
        # Keep the token small and non-sensitive (no password data).
        payload = {"mid": identity.membership_id, "u": identity.username, "exp": exp}
        return self._serializer.dumps(payload)

    def _load(self, token: Optional[str]) -> Optional[Dict[str, Any]]:
        if not token:
            return None
        try:
            data = self._serializer.loads(token, max_age=self.ttl_seconds)
        except (BadSignature, BadTimeSignature, ValueError, TypeError):
            return None
        if not isinstance(data, dict):
            return None
        return data

    def create(self, membership_id: str, username: str) -> str:
        exp = int(time.time()) + self.ttl_seconds
        return self._sign(SessionIdentity(membership_id=membership_id, username=username), exp)

    def read(self, token: Optional[str]) -> Optional[SessionIdentity]:
        data = self._load(token)
        if data is None:
            return None
        mid = str(data.get("mid") or "").strip()
        username = str(data.get("u") or "").strip()
        try:
            exp = int(data.get("exp") or 0)
        except (TypeError, ValueError):
            return None
        if not mid or not username or exp <= int(time.time()):
            return None
        return SessionIdentity(membership_id=mid, username=username)

    def invalidate(self, token: Optional[str]) -> str:
        """Return a token for the same identity that is already expired (empty if unreadable)."""
        identity = self.read(token)
        if identity is None:
            return ""
        return self._sign(identity, int(time.time()) - 1)


def session_cookie_kwargs(cfg: AuthConfig, value: str) -> dict:
    return {
        "key": cfg.session_cookie_name,
        "value": value,
        "max_age": cfg.session_ttl_seconds,
        "httponly": True,
        "secure": cfg.cookie_secure,
        "samesite": "lax",
        "path": "/",
    }


def clear_session_cookie_kwargs(cfg: AuthConfig, value: str = "") -> dict:
    return {
        "key": cfg.session_cookie_name,
        "value": value,
        "max_age": 0,
        "httponly": True,
        "secure": cfg.cookie_secure,
        "samesite": "lax",
        "path": "/",
    }
