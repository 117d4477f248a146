"""Postgres-backed account store (psycopg 3)."""

from __future__ import annotations

import logging
from typing import List, Optional

import psycopg
from psycopg import errors as pg_errors

from membership.auth.errors import AccountNotFound, DuplicateMembershipID, DuplicateUsername, StoreError
from membership.auth.ids import is_valid_membership_id
from membership.auth.models import Account, AccountSummary

logger = logging.getLogger(__name__)

USERNAME_CONSTRAINT = "users_username_key"
MEMBERSHIP_ID_CONSTRAINT = "users_membership_id_key"


def _violated_constraint(e: Exception) -> str:
    diag = getattr(e, "diag", None)
    name = getattr(diag, "constraint_name", None) if diag is not None else None
    # Fall back to the message text when diagnostics are unavailable.
    return str(name or e)


def _row_to_account(row) -> Account:  # type: ignore[no-untyped-def]
    internal_id, membership_id, username, password_hash, created_at = row
    membership_id = str(membership_id or "").strip()
    if not is_valid_membership_id(membership_id):
        logger.warning("Account %s has a malformed membership id", internal_id)
    return Account(
        internal_id=int(internal_id),
        membership_id=membership_id,
        username=str(username),
        password_hash=password_hash or None,
        created_at=created_at,
    )


class PostgresAccountStore:
    """
    Account store over the `users` table.

    Uniqueness is enforced by the table's UNIQUE constraints, so concurrent inserts
    are resolved by Postgres and never by a read-then-write check here.
    """

    def __init__(self, dsn: str):
        if not dsn:
            raise ValueError("Postgres DSN is required")
        self.dsn = dsn

    def _connect(self):  # type: ignore[no-untyped-def]
        return psycopg.connect(self.dsn)

    def create(self, membership_id: str, username: str, password_hash: Optional[str]) -> Account:
        logger.info("Creating account %s (password=%s)", username, "yes" if password_hash else "no")
        try:
            # Single INSERT; the connection context commits on success and rolls back on error.
            with self._connect() as conn:
                row = conn.execute(
                    """
                    INSERT INTO users (membership_id, username, password_hash)
                    VALUES (%s, %s, %s)
                    RETURNING id, membership_id, username, password_hash, created_at
                    """,
                    (membership_id, username, password_hash),
                ).fetchone()
        except pg_errors.UniqueViolation as e:
            constraint = _violated_constraint(e)
            if MEMBERSHIP_ID_CONSTRAINT in constraint or "membership_id" in constraint:
                raise DuplicateMembershipID("Membership id already exists") from e
            raise DuplicateUsername(f"Username already exists: {username}") from e
        except psycopg.Error as e:
            logger.error("Error creating account %s: %s", username, type(e).__name__)
            raise StoreError("Error creating user") from e

        if not row:
            raise StoreError("Failed to create user")
        return _row_to_account(row)

    def find_by_username(self, username: str) -> Account:
        try:
            with self._connect() as conn:
                row = conn.execute(
                    """
                    SELECT id, membership_id, username, password_hash, created_at
                    FROM users
                    WHERE username = %s
                    """,
                    (username,),
                ).fetchone()
        except psycopg.Error as e:
            logger.error("Error reading account: %s", type(e).__name__)
            raise StoreError("Error retrieving user") from e
        if not row:
            raise AccountNotFound("Account not found")
        return _row_to_account(row)

    def list_all(self) -> List[AccountSummary]:
        try:
            with self._connect() as conn:
                rows = conn.execute("SELECT membership_id, username FROM users ORDER BY id").fetchall()
        except psycopg.Error as e:
            logger.error("Error listing accounts: %s", type(e).__name__)
            raise StoreError("Error retrieving users") from e
        return [AccountSummary(membership_id=str(r[0] or "").strip(), username=str(r[1])) for r in rows]
