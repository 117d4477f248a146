"""In-process account store for development and tests (fallback when Postgres is not configured)."""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Dict, List, Optional

from membership.auth.errors import AccountNotFound, DuplicateMembershipID, DuplicateUsername
from membership.auth.models import Account, AccountSummary


class MemoryAccountStore:
    """Account store compatible with PostgresAccountStore; contents are lost on restart."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._by_username: Dict[str, Account] = {}
        self._membership_ids: Dict[str, str] = {}
        self._next_id = 1

    def create(self, membership_id: str, username: str, password_hash: Optional[str]) -> Account:
        # Check and write under one lock so racing creates cannot both succeed.
        with self._lock:
            if username in self._by_username:
                raise DuplicateUsername(f"Username already exists: {username}")
            if membership_id in self._membership_ids:
                raise DuplicateMembershipID("Membership id already exists")
            account = Account(
                internal_id=self._next_id,
                membership_id=membership_id,
                username=username,
                password_hash=password_hash,
                created_at=datetime.now(timezone.utc),
            )
            self._next_id += 1
            self._by_username[username] = account
            self._membership_ids[membership_id] = username
            return account

    def find_by_username(self, username: str) -> Account:
        with self._lock:
            account = self._by_username.get(username)
        if account is None:
            raise AccountNotFound("Account not found")
        return account

    def list_all(self) -> List[AccountSummary]:
        with self._lock:
            accounts = sorted(self._by_username.values(), key=lambda a: a.internal_id)
        return [a.summary() for a in accounts]
