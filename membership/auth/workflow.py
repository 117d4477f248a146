"""
Signup / signin orchestration.

Ties identifier generation, password hashing, the account store and session
issuance together. One `AccountService` is built at startup and shared by all
requests; it holds no per-request state.
"""

from __future__ import annotations

import hmac
import logging
import secrets
from typing import Callable, List, Optional

from membership.auth.config import OAuthConfig
from membership.auth.errors import (
    AccountNotFound,
    ConflictError,
    DuplicateMembershipID,
    DuplicateUsername,
    IdentityProviderError,
    InvalidCredentials,
    InvalidIdentity,
    InvalidInput,
    InvalidState,
)
from membership.auth.google import IdentityProvider
from membership.auth.ids import RandomSource, generate_membership_id
from membership.auth.models import Account, AccountSummary, OAuthResult, SigninResult, SignupResult
from membership.auth.passwords import PasswordHasher
from membership.auth.session import SessionManager
from membership.storage.base import AccountStore

logger = logging.getLogger(__name__)

# Placeholder local credential for accounts created through OAuth.
PLACEHOLDER_CREDENTIAL_DIGITS = 6


def generate_placeholder_credential(randbelow: Callable[[int], int] = secrets.randbelow) -> str:
    n = randbelow(10**PLACEHOLDER_CREDENTIAL_DIGITS)
    return f"{n:0{PLACEHOLDER_CREDENTIAL_DIGITS}d}"


class AccountService:
    def __init__(
        self,
        store: AccountStore,
        hasher: PasswordHasher,
        sessions: SessionManager,
        *,
        oauth: Optional[OAuthConfig] = None,
        identity_provider: Optional[IdentityProvider] = None,
        rng: Optional[RandomSource] = None,
    ):
        self.store = store
        self.hasher = hasher
        self.sessions = sessions
        self.oauth = oauth
        self.identity_provider = identity_provider
        self.rng = rng
        # Verified against for unknown users so a miss costs the same as a wrong password.
        self._dummy_hash = hasher.hash(secrets.token_urlsafe(16))

    def _create_with_fresh_id(self, username: str, password_hash: Optional[str]) -> Account:
        """Create an account, regenerating the membership id once if it collides."""
        membership_id = generate_membership_id(self.rng)
        try:
            return self.store.create(membership_id, username, password_hash)
        except DuplicateMembershipID:
            logger.warning("Membership id collision for %s, retrying with a new id", username)
        return self.store.create(generate_membership_id(self.rng), username, password_hash)

    def signup(self, username: str, password: str) -> SignupResult:
        """
        Register a local account.

        Raises:
            InvalidInput: username or password missing
            ConflictError: username taken, or membership id collided twice
            HashingError: password rejected by the hasher
            StoreError: storage failure
        """
        username = (username or "").strip()
        if not username or not password:
            logger.info("Signup rejected: username or password is empty")
            raise InvalidInput("Username and password are required")

        password_hash = self.hasher.hash(password)
        try:
            account = self._create_with_fresh_id(username, password_hash)
        except DuplicateUsername as e:
            logger.info("Signup rejected: username %s already exists", username)
            raise ConflictError("Username already exists", field="username") from e
        except DuplicateMembershipID as e:
            logger.error("Signup failed for %s: membership id collided twice", username)
            raise ConflictError("Could not allocate a unique membership id", field="membership_id") from e

        logger.info("User %s created with membership id %s", account.username, account.membership_id)
        return SignupResult(membership_id=account.membership_id, username=account.username)

    def authenticate(self, username: str, password: str) -> Account:
        """Return the account for valid credentials; every failure is the same InvalidCredentials."""
        username = (username or "").strip()
        if not username or not password:
            raise InvalidCredentials()
        try:
            account = self.store.find_by_username(username)
        except AccountNotFound:
            self.hasher.verify(password, self._dummy_hash)
            logger.info("Signin failed for %s", username)
            raise InvalidCredentials() from None
        # Federated-only accounts have no hash; verify against the dummy so they fail the same way.
        if not self.hasher.verify(password, account.password_hash or self._dummy_hash):
            logger.info("Signin failed for %s", username)
            raise InvalidCredentials()
        return account

    def signin(self, username: str, password: str) -> SigninResult:
        """
        Authenticate local credentials and issue a session.

        Raises:
            InvalidCredentials: unknown user, federated-only account, or wrong password
            StoreError: storage failure
        """
        account = self.authenticate(username, password)
        token = self.sessions.create(account.membership_id, account.username)
        logger.info("User %s signed in", account.username)
        return SigninResult(account=account.summary(), session_token=token)

    def list_accounts(self) -> List[AccountSummary]:
        return self.store.list_all()

    def oauth_login_url(self) -> str:
        if self.oauth is None or self.identity_provider is None:
            raise IdentityProviderError("Google OAuth is not configured")
        return self.identity_provider.authorize_url(self.oauth.state)

    def oauth_callback(self, state: str, code: str) -> OAuthResult:
        """
        Sign up or log in with a Google identity.

        The state must match the process-wide anti-forgery value; on mismatch
        nothing else happens. An email that already has an account logs into it.

        Raises:
            InvalidState: state mismatch
            IdentityProviderError: OAuth not configured, or the provider call failed
            InvalidIdentity: provider returned no email
            ConflictError: membership id collided twice
            HashingError, StoreError
        """
        if self.oauth is None or self.identity_provider is None:
            raise IdentityProviderError("Google OAuth is not configured")
        if not hmac.compare_digest((state or "").encode("utf-8"), self.oauth.state.encode("utf-8")):
            logger.warning("OAuth callback rejected: invalid state")
            raise InvalidState()

        email = (self.identity_provider.fetch_email(code) or "").strip().lower()
        if not email:
            logger.warning("OAuth callback rejected: identity provider returned no email")
            raise InvalidIdentity("Identity provider returned no email address")

        created = False
        try:
            account = self.store.find_by_username(email)
            logger.info("OAuth login for existing user %s", email)
        except AccountNotFound:
            password_hash = self.hasher.hash(generate_placeholder_credential())
            try:
                account = self._create_with_fresh_id(email, password_hash)
                created = True
                logger.info("User %s created via Google OAuth with membership id %s", email, account.membership_id)
            except DuplicateUsername:
                # A concurrent callback for the same email won the insert.
                account = self.store.find_by_username(email)
            except DuplicateMembershipID as e:
                logger.error("OAuth signup failed for %s: membership id collided twice", email)
                raise ConflictError(
                    "Could not allocate a unique membership id", field="membership_id"
                ) from e

        token = self.sessions.create(account.membership_id, account.username)
        return OAuthResult(account=account.summary(), session_token=token, created=created)
