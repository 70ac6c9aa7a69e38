"""Unit tests for auth/passwords.py -- bcrypt hashing and the strength policy.

Covers:
- hash_password() output verifies, differs per call, and is a bcrypt blob
- verify_password() rejects other passwords and never raises on bad input
- validate_password_strength() reports the first broken rule in order
- passwords over 72 UTF-8 bytes are refused before bcrypt ever sees them
"""

import pytest

from auth.passwords import MAX_BYTES, hash_password, validate_password_strength, verify_password


def test_hash_then_verify_round_trip():
    stored = hash_password("Valid123!", rounds=4)
    assert verify_password("Valid123!", stored) is True


def test_verify_rejects_different_password():
    stored = hash_password("Valid123!", rounds=4)
    assert verify_password("Valid123?", stored) is False


def test_hashes_are_salted():
    first = hash_password("Valid123!", rounds=4)
    second = hash_password("Valid123!", rounds=4)
    assert first != second
    assert first.startswith(b"$2")


def test_verify_accepts_str_stored_value():
    stored = hash_password("Valid123!", rounds=4).decode("utf-8")
    assert verify_password("Valid123!", stored) is True


@pytest.mark.parametrize("stored", [None, b"", "", b"not-a-bcrypt-hash", "$2b$12$truncated", b"\xff\xfe"])
def test_verify_never_raises_on_malformed_stored_value(stored):
    assert verify_password("Valid123!", stored) is False


@pytest.mark.parametrize(
    ("password", "expected"),
    [
        ("short1!", "Password must be at least 8 characters long"),
        ("alllowercase1!", "Password must contain at least one uppercase letter"),
        ("ALLUPPER1!", "Password must contain at least one lowercase letter"),
        ("NoDigits!!", "Password must contain at least one number"),
        ("NoSpecial123", "Password must contain at least one special character"),
    ],
)
def test_strength_rejections(password, expected):
    assert validate_password_strength(password) == expected


def test_strength_accepts_valid_password():
    assert validate_password_strength("Valid123!") is None


@pytest.mark.parametrize("password", ["", "   ", "          ", None])
def test_empty_or_whitespace_fails_length_rule_first(password):
    assert validate_password_strength(password) == "Password must be at least 8 characters long"


def test_first_failure_wins():
    # Breaks uppercase, digit and special rules; uppercase is checked first.
    assert validate_password_strength("lowercaseonly") == "Password must contain at least one uppercase letter"


def test_password_at_byte_limit_is_accepted_and_hashable():
    password = "Aa1!" + "x" * (MAX_BYTES - 4)
    assert validate_password_strength(password) is None
    assert verify_password(password, hash_password(password, rounds=4)) is True


@pytest.mark.parametrize("password", ["Aa1!" + "x" * 76, "Aa1!" + "é" * 40])
def test_password_over_byte_limit_rejected(password):
    # The second value is only 44 characters but 84 bytes of UTF-8.
    assert validate_password_strength(password) == f"Password must be at most {MAX_BYTES} bytes long"


def test_verify_refuses_oversize_candidate():
    password = "Aa1!" + "x" * (MAX_BYTES - 4)
    stored = hash_password(password, rounds=4)
    assert verify_password(password + "extra", stored) is False
