"""
Google OAuth 2.0 client: authorization URL, code exchange and user info lookup.

Only the email address is used; no ID token validation is performed because the
email is read from the userinfo endpoint over TLS with the freshly issued access token.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Protocol
from urllib.parse import urlencode

import requests

from membership.auth.config import OAuthConfig
from membership.auth.errors import IdentityProviderError

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"

_TIMEOUT_SECONDS = 10


class IdentityProvider(Protocol):
    """Exchanges an authorization code for the user's email address."""

    def authorize_url(self, state: str) -> str: ...

    def fetch_email(self, code: str) -> str: ...


class GoogleIdentityProvider:
    def __init__(self, cfg: OAuthConfig, *, session: requests.Session | None = None):
        self.cfg = cfg
        self._http = session or requests.Session()

    def authorize_url(self, state: str) -> str:
        params = {
            "client_id": self.cfg.client_id,
            "redirect_uri": self.cfg.redirect_url,
            "response_type": "code",
            "scope": self.cfg.scope,
            "state": state,
            "access_type": "online",
        }
        return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"

    def exchange_code(self, code: str) -> Dict[str, Any]:
        """
        Exchange authorization code for tokens (access_token, ...).

        Raises:
            IdentityProviderError: On transport failure or a non-2xx response
        """
        payload = {
            "client_id": self.cfg.client_id,
            "client_secret": self.cfg.client_secret,
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.cfg.redirect_url,
        }
        try:
            r = self._http.post(GOOGLE_TOKEN_URL, data=payload, timeout=_TIMEOUT_SECONDS)
        except requests.RequestException as e:
            raise IdentityProviderError(f"Code exchange failed: {type(e).__name__}") from e
        if r.status_code >= 400:
            # Avoid leaking sensitive info; include minimal context.
            raise IdentityProviderError(f"Code exchange failed (status={r.status_code})")
        try:
            data = r.json()
        except ValueError as e:
            raise IdentityProviderError("Invalid token response") from e
        if not isinstance(data, dict):
            raise IdentityProviderError("Invalid token response")
        return data

    def fetch_userinfo(self, access_token: str) -> Dict[str, Any]:
        try:
            r = self._http.get(
                GOOGLE_USERINFO_URL,
                headers={"Authorization": f"Bearer {access_token}"},
                timeout=_TIMEOUT_SECONDS,
            )
        except requests.RequestException as e:
            raise IdentityProviderError(f"Failed getting user info: {type(e).__name__}") from e
        if r.status_code >= 400:
            raise IdentityProviderError(f"Failed getting user info (status={r.status_code})")
        try:
            data = r.json()
        except ValueError as e:
            raise IdentityProviderError("Invalid user info response") from e
        if not isinstance(data, dict):
            raise IdentityProviderError("Invalid user info response")
        return data

    def fetch_email(self, code: str) -> str:
        if not code:
            raise IdentityProviderError("Missing authorization code")
        tokens = self.exchange_code(code)
        access_token = str(tokens.get("access_token") or "").strip()
        if not access_token:
            raise IdentityProviderError("Missing access_token in token response")
        info = self.fetch_userinfo(access_token)
        return str(info.get("email") or "")
