"""
Join codes - Short, human-facing session codes.

Codes are 6 characters from A-Z0-9 and compared case-insensitively
(they are stored upper-cased).
"""

from __future__ import annotations
from typing import Callable
import random
import string
import time

JOIN_CODE_ALPHABET = string.ascii_uppercase + string.digits
JOIN_CODE_LENGTH = 6
MAX_CODE_ATTEMPTS = 10

_BASE36 = string.digits + string.ascii_uppercase


def normalize_join_code(raw: str | None) -> str:
    """Trim and upper-case a user-entered code."""
    return (raw or "").strip().upper()


def generate_join_code(rng: random.Random | None = None) -> str:
    """Random 6 character code."""
    rng = rng or random.Random()
    return "".join(rng.choice(JOIN_CODE_ALPHABET) for _ in range(JOIN_CODE_LENGTH))


def generate_unique_join_code(
    is_taken: Callable[[str], bool],
    rng: random.Random | None = None,
    clock: Callable[[], float] = time.time,
) -> str:
    """
    Generate a code nobody is using.

    Tries MAX_CODE_ATTEMPTS random codes, then falls back to a code
    built from the millisecond clock.
    """
    rng = rng or random.Random()
    for _ in range(MAX_CODE_ATTEMPTS):
        code = generate_join_code(rng)
        if not is_taken(code):
            return code
    return "G" + _to_base36(int(clock() * 1000))[-5:]


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))
