"""
auth/passwords.py -- Password hashing, verification, and strength policy.

Passwords: bcrypt used directly (no passlib wrapper). bcrypt is the right
choice for low-entropy secrets because its cost factor makes brute force
expensive. The hash is a self-contained blob with the salt embedded, stored
as raw bytes in users.password_hash. Two hashes of the same password differ;
verification is deterministic.

bcrypt only reads the first 72 bytes of its input, and bcrypt 5 refuses longer
input outright. validate_password_strength therefore rejects any password over
MAX_BYTES of UTF-8, and every workflow validates before it hashes, so
hash_password never sees an oversize value. verify_password treats one as a
mismatch.

Layer rule: stdlib + bcrypt only.
"""

from __future__ import annotations

import bcrypt

DEFAULT_ROUNDS = 12

SPECIAL_CHARACTERS = '!@#$%^&*(),.?":{}|<>'
MIN_LENGTH = 8
MAX_BYTES = 72


def hash_password(plain: str, rounds: int = DEFAULT_ROUNDS) -> bytes:
    """Return a bcrypt hash of the given plaintext password."""
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=rounds))


def verify_password(plain: str, stored: bytes | str | None) -> bool:
    """Return True if the plaintext password matches the stored bcrypt hash.

    Never raises. A missing, truncated, or otherwise malformed stored value
    is simply a mismatch.
    """
    if not stored:
        return False
    candidate = plain.encode("utf-8")
    if len(candidate) > MAX_BYTES:
        return False
    if isinstance(stored, str):
        stored = stored.encode("utf-8")
    try:
        return bcrypt.checkpw(candidate, bytes(stored))
    except Exception:
        return False


def validate_password_strength(password: str | None) -> str | None:
    """Return the first rule the password breaks, or None if it is acceptable.

    Rules are checked in order and the first failure wins:
      1. at least 8 characters (empty or whitespace-only fails here)
      2. an uppercase letter
      3. a lowercase letter
      4. a digit
      5. one of SPECIAL_CHARACTERS

    A password longer than MAX_BYTES once UTF-8 encoded is rejected before any
    of the above.
    """
    if password and len(password.encode("utf-8")) > MAX_BYTES:
        return f"Password must be at most {MAX_BYTES} bytes long"
    if not password or not password.strip() or len(password) < MIN_LENGTH:
        return f"Password must be at least {MIN_LENGTH} characters long"
    if not any(c.isupper() for c in password):
        return "Password must contain at least one uppercase letter"
    if not any(c.islower() for c in password):
        return "Password must contain at least one lowercase letter"
    if not any(c.isdigit() for c in password):
        return "Password must contain at least one number"
    if not any(c in SPECIAL_CHARACTERS for c in password):
        return "Password must contain at least one special character"
    return None
