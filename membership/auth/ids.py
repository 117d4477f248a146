"""
Membership id generation and validation.

A membership id is 16 characters from `A-Z0-9` with no two adjacent characters
equal. Ids are produced by rejection sampling: draw a full candidate, keep it
only if it passes `is_valid_membership_id`.
"""

from __future__ import annotations

import secrets
import string
from typing import Any, Optional, Protocol, Sequence

MEMBERSHIP_ID_ALPHABET = string.ascii_uppercase + string.digits
MEMBERSHIP_ID_LENGTH = 16

# A single draw is accepted with probability (35/36)**15 ~= 0.65, so this bound
# is never reached with a uniform source.
DEFAULT_MAX_ATTEMPTS = 1000

_ALPHABET_SET = frozenset(MEMBERSHIP_ID_ALPHABET)
_SYSTEM_RANDOM = secrets.SystemRandom()


class RandomSource(Protocol):
    def choice(self, seq: Sequence[str]) -> str: ...


def is_valid_membership_id(value: Any) -> bool:
    if not isinstance(value, str) or len(value) != MEMBERSHIP_ID_LENGTH:
        return False
    prev = ""
    for ch in value:
        if ch not in _ALPHABET_SET or ch == prev:
            return False
        prev = ch
    return True


def generate_membership_id(
    rng: Optional[RandomSource] = None,
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> str:
    """
    Generate a membership id.

    Args:
        rng: Randomness source with a `choice` method (defaults to the OS CSPRNG).
            Pass a seeded `random.Random` for deterministic output.
        max_attempts: Upper bound on rejected draws.

    Returns:
        A string for which `is_valid_membership_id` holds.

    Raises:
        RuntimeError: If no valid candidate was drawn within `max_attempts`.
    """
    source = rng if rng is not None else _SYSTEM_RANDOM
    for _ in range(max(1, max_attempts)):
        candidate = "".join(source.choice(MEMBERSHIP_ID_ALPHABET) for _ in range(MEMBERSHIP_ID_LENGTH))
        if is_valid_membership_id(candidate):
            return candidate
    raise RuntimeError(f"Failed to generate a valid membership id after {max_attempts} attempts")
