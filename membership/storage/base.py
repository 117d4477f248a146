from __future__ import annotations

from typing import List, Optional, Protocol

from membership.auth.models import Account, AccountSummary


class AccountStore(Protocol):
    """
    Durable mapping from username / membership id to account records.

    Implementations enforce both uniqueness constraints atomically in the storage
    layer itself: two racing `create` calls for the same username or membership id
    yield exactly one success.
    """

    def create(self, membership_id: str, username: str, password_hash: Optional[str]) -> Account:
        """
        Persist a new account; `created_at` is set by the store.

        Raises:
            DuplicateUsername: username already taken
            DuplicateMembershipID: membership id already taken
            StoreError: any other storage failure
        """

    def find_by_username(self, username: str) -> Account:
        """
        Raises:
            AccountNotFound: no account with this username
            StoreError: storage failure
        """

    def list_all(self) -> List[AccountSummary]:
        """All accounts as (membership_id, username), oldest first."""
