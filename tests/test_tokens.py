"""Unit tests for auth/tokens.py -- token issue/verify and bearer parsing.

Covers:
- issue -> verify round-trips access claims exactly (with and without tenant)
- refresh tokens carry only identity and never verify as access tokens
- wrong secret, expired, tampered, wrong audience/issuer -> None
- jti keeps tokens distinct for identical payloads
- extract_bearer_token() accepts only "Bearer <token>"
"""

from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from auth.models import COMPANY_ADMIN, SUPER_ADMIN, RefreshClaims, TokenClaims
from auth.tokens import ALGORITHM, AUDIENCE, ISSUER, TokenService, extract_bearer_token

ACCESS = "access-secret-" + "x" * 32
REFRESH = "refresh-secret-" + "y" * 32


@pytest.fixture
def tokens() -> TokenService:
    return TokenService(ACCESS, REFRESH)


def test_access_round_trip_with_tenant(tokens):
    claims = TokenClaims(user_id=7, email="a@b.com", tenant_id=3, roles=(COMPANY_ADMIN, "AUDITOR"))
    pair = tokens.issue_token_pair(claims)
    assert tokens.verify_access_token(pair.access_token) == claims


def test_access_round_trip_without_tenant(tokens):
    claims = TokenClaims(user_id=1, email="root@example.com", roles=(SUPER_ADMIN,))
    pair = tokens.issue_token_pair(claims)
    verified = tokens.verify_access_token(pair.access_token)
    assert verified == claims
    assert verified.tenant_id is None


def test_access_payload_shape(tokens):
    pair = tokens.issue_token_pair(TokenClaims(user_id=7, email="a@b.com", roles=(COMPANY_ADMIN,)))
    payload = jwt.get_unverified_claims(pair.access_token)
    assert payload["userId"] == 7
    assert payload["sub"] == "a@b.com"
    assert payload["roles"] == [COMPANY_ADMIN]
    assert payload["iss"] == ISSUER
    assert payload["aud"] == AUDIENCE
    assert "jti" in payload
    assert "tenantId" not in payload


def test_pair_metadata(tokens):
    pair = tokens.issue_token_pair(TokenClaims(user_id=1, email="a@b.com"))
    assert pair.token_type == "Bearer"
    assert pair.expires_in == "60m"


def test_refresh_token_carries_identity_only(tokens):
    pair = tokens.issue_token_pair(TokenClaims(user_id=7, email="a@b.com", tenant_id=3, roles=(SUPER_ADMIN,)))
    assert tokens.verify_refresh_token(pair.refresh_token) == RefreshClaims(user_id=7, email="a@b.com")
    payload = jwt.get_unverified_claims(pair.refresh_token)
    assert "roles" not in payload
    assert "tenantId" not in payload


def test_tokens_are_not_interchangeable(tokens):
    pair = tokens.issue_token_pair(TokenClaims(user_id=7, email="a@b.com"))
    assert tokens.verify_access_token(pair.refresh_token) is None
    assert tokens.verify_refresh_token(pair.access_token) is None


def test_identical_payloads_get_distinct_tokens(tokens):
    claims = TokenClaims(user_id=7, email="a@b.com")
    first = tokens.issue_token_pair(claims)
    second = tokens.issue_token_pair(claims)
    assert first.access_token != second.access_token
    assert first.refresh_token != second.refresh_token


def test_wrong_secret_is_invalid(tokens):
    other = TokenService("other-access-" + "z" * 32, "other-refresh-" + "w" * 32)
    pair = other.issue_token_pair(TokenClaims(user_id=7, email="a@b.com"))
    assert tokens.verify_access_token(pair.access_token) is None
    assert tokens.verify_refresh_token(pair.refresh_token) is None


def test_expired_access_token_is_invalid():
    short = TokenService(ACCESS, REFRESH, access_ttl=timedelta(seconds=-1))
    pair = short.issue_token_pair(TokenClaims(user_id=7, email="a@b.com"))
    assert short.verify_access_token(pair.access_token) is None


def test_expired_refresh_token_is_invalid():
    short = TokenService(ACCESS, REFRESH, refresh_ttl=timedelta(seconds=-1))
    pair = short.issue_token_pair(TokenClaims(user_id=7, email="a@b.com"))
    assert short.verify_refresh_token(pair.refresh_token) is None


def _forge(**overrides) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "userId": 7,
        "email": "a@b.com",
        "roles": [SUPER_ADMIN],
        "token_use": "access",
        "jti": "fixed",
        "iss": ISSUER,
        "aud": AUDIENCE,
        "iat": now,
        "exp": now + timedelta(minutes=5),
    }
    payload.update(overrides)
    payload = {k: v for k, v in payload.items() if v is not None}
    return jwt.encode(payload, ACCESS, algorithm=ALGORITHM)


def test_forged_baseline_verifies(tokens):
    assert tokens.verify_access_token(_forge()) is not None


@pytest.mark.parametrize(
    "overrides",
    [
        {"aud": "someone-else"},
        {"iss": "someone-else"},
        {"exp": None},
        {"jti": None},
        {"token_use": "refresh"},
        {"roles": "SUPER_ADMIN"},
        {"userId": "not-a-number"},
    ],
)
def test_bad_claims_are_invalid(tokens, overrides):
    assert tokens.verify_access_token(_forge(**overrides)) is None


@pytest.mark.parametrize("token", ["", "garbage", "a.b.c", "Bearer x"])
def test_malformed_tokens_are_invalid(tokens, token):
    assert tokens.verify_access_token(token) is None
    assert tokens.verify_refresh_token(token) is None


def test_tampered_payload_is_invalid(tokens):
    pair = tokens.issue_token_pair(TokenClaims(user_id=7, email="a@b.com"))
    escalated = tokens.issue_token_pair(TokenClaims(user_id=1, email="a@b.com", roles=(SUPER_ADMIN,)))
    head, _body, sig = pair.access_token.split(".")
    forged_body = escalated.access_token.split(".")[1]
    assert tokens.verify_access_token(f"{head}.{forged_body}.{sig}") is None


def test_same_secrets_rejected():
    with pytest.raises(ValueError):
        TokenService(ACCESS, ACCESS)


@pytest.mark.parametrize(
    ("header", "expected"),
    [
        ("Bearer abc.def.ghi", "abc.def.ghi"),
        ("bearer abc", None),
        ("Bearer", None),
        ("Bearer ", None),
        ("Bearer  abc", None),
        ("Bearer abc extra", None),
        ("Basic abc", None),
        ("", None),
        ("   ", None),
        (None, None),
    ],
)
def test_extract_bearer_token(header, expected):
    assert extract_bearer_token(header) == expected
