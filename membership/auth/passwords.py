from __future__ import annotations

from typing import Optional

import bcrypt

from membership.auth.errors import HashingError

DEFAULT_ROUNDS = 14
MIN_ROUNDS = 4
MAX_ROUNDS = 31

# bcrypt only looks at the first 72 bytes of the input. Newer releases raise on
# longer input, older ones truncate silently; reject up front either way.
MAX_PASSWORD_BYTES = 72


class PasswordHasher:
    """Salted bcrypt hashing with a tunable work factor."""

    def __init__(self, rounds: int = DEFAULT_ROUNDS):
        """
        Args:
            rounds: bcrypt cost factor (log2 of the iteration count), clamped to 4..31.
        """
        self.rounds = min(max(int(rounds), MIN_ROUNDS), MAX_ROUNDS)

    def hash(self, password: str) -> str:
        """
        Hash a password with a fresh salt.

        Args:
            password: Plain text password

        Returns:
            bcrypt hash string (`$2b$<rounds>$...`)

        Raises:
            HashingError: If bcrypt rejects the input
        """
        if not isinstance(password, str):
            raise HashingError("Password must be a string")
        raw = password.encode("utf-8")
        if len(raw) > MAX_PASSWORD_BYTES:
            raise HashingError(f"Password exceeds {MAX_PASSWORD_BYTES} bytes")
        try:
            return bcrypt.hashpw(raw, bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")
        except (ValueError, TypeError) as e:
            raise HashingError(f"Password could not be hashed: {type(e).__name__}") from e

    def verify(self, password: str, password_hash: Optional[str]) -> bool:
        """
        Verify password against bcrypt hash with constant-time comparison.

        Returns:
            True if password matches, False otherwise (including malformed or missing hashes)
        """
        if not password_hash or not isinstance(password, str):
            return False
        try:
            return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
        except Exception:
            # Handle invalid hash format gracefully
            return False
