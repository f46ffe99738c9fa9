"""Friend code generation. Friend codes double as referral codes.

Codes are 8-character alphanumeric (A-Z, 0-9), generated server-side
with a cryptographic random source. Users cannot choose their own codes.
"""

from __future__ import annotations

import secrets
import string

from esko.stores.base import ReferralStore

FRIEND_CODE_CHARSET = string.ascii_uppercase + string.digits  # A-Z, 0-9
FRIEND_CODE_LENGTH = 8


def generate_friend_code() -> str:
    """Generate a cryptographically random 8-character friend code."""
    return "".join(secrets.choice(FRIEND_CODE_CHARSET) for _ in range(FRIEND_CODE_LENGTH))


def normalize_friend_code(code: str) -> str:
    """Normalize a friend code for case-insensitive lookup."""
    return code.strip().upper()


def is_well_formed(code: str) -> bool:
    code = normalize_friend_code(code)
    return len(code) == FRIEND_CODE_LENGTH and all(c in FRIEND_CODE_CHARSET for c in code)


async def generate_unique_friend_code(store: ReferralStore) -> str:
    """Generate a friend code that no user holds yet."""
    for _ in range(10):
        code = generate_friend_code()
        if await store.user_by_friend_code(code) is None:
            return code
    raise RuntimeError("Failed to generate unique friend code after 10 attempts")
