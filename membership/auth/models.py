from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class Account:
    """Registered user as stored in the `users` table."""

    internal_id: int
    membership_id: str
    username: str
    password_hash: Optional[str]
    created_at: datetime

    def summary(self) -> "AccountSummary":
        return AccountSummary(membership_id=self.membership_id, username=self.username)


@dataclass(frozen=True)
class AccountSummary:
    """Public view of an account (bulk listings never carry password data)."""

    membership_id: str
    username: str

    def to_dict(self) -> Dict[str, Any]:
        return {"membership_id": self.membership_id, "username": self.username}


@dataclass(frozen=True)
class SessionIdentity:
    """Identity bound into a signed session token."""

    membership_id: str
    username: str


@dataclass(frozen=True)
class Credentials:
    username: str
    password: str = field(repr=False)


@dataclass(frozen=True)
class SignupResult:
    membership_id: str
    username: str


@dataclass(frozen=True)
class SigninResult:
    account: AccountSummary
    session_token: str


@dataclass(frozen=True)
class OAuthResult:
    account: AccountSummary
    session_token: str
    created: bool  # False when an existing account was reused
