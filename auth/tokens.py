"""
auth/tokens.py -- Signed access/refresh tokens and bearer header parsing.

Security design decisions:
  JWT: python-jose with HS256. Access and refresh tokens are signed with two
       independent secrets, so a leaked refresh secret cannot mint access
       tokens and vice versa. Both carry fixed issuer/audience values and a
       random jti, which keeps two tokens issued in the same second for the
       same payload structurally distinct.

  Verification fails closed: signature, issuer, audience and expiry are all
       checked with zero leeway, and any failure (including a malformed
       payload) returns None. The caller turns None into AuthFailed.

  Refresh tokens carry only userId and email. Roles and tenant are re-read
       from storage on refresh so a demoted or moved user never regains
       authority from a stale claim.

  Tokens are stateless. There is no server-side revocation list; revocation
       is by rotating the secrets.

TokenService is constructed once from Settings (see from_settings) and passed
to the services that need it. Nothing here reads configuration at import time.

Layer rule: no imports from api/ or tenants/.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from jose import JWTError, jwt

from auth.models import RefreshClaims, TokenClaims, TokenPair

if TYPE_CHECKING:
    from core.config import Settings

logger = logging.getLogger("tenantguard.tokens")

ALGORITHM = "HS256"
ISSUER = "tenantguard"
AUDIENCE = "tenantguard-clients"

_ACCESS_USE = "access"
_REFRESH_USE = "refresh"

_DECODE_OPTIONS = {
    "leeway": 0,
    "require_exp": True,
    "require_iat": True,
    "require_iss": True,
    "require_aud": True,
    "require_jti": True,
}


def _format_ttl(ttl: timedelta) -> str:
    """Render a TTL the way clients expect it in the expires_in field ("60m", "45s")."""
    seconds = int(ttl.total_seconds())
    if seconds % 60 == 0:
        return f"{seconds // 60}m"
    return f"{seconds}s"


class TokenService:
    """Issues and verifies access/refresh token pairs.

    Usage:
        tokens = TokenService.from_settings(get_settings())
        pair = tokens.issue_token_pair(TokenClaims(user_id=1, email="a@b.com", roles=("SUPER_ADMIN",)))
        claims = tokens.verify_access_token(pair.access_token)
    """

    def __init__(
        self,
        access_secret: str,
        refresh_secret: str,
        access_ttl: timedelta = timedelta(minutes=60),
        refresh_ttl: timedelta = timedelta(days=7),
    ) -> None:
        if access_secret == refresh_secret:
            raise ValueError("access and refresh secrets must differ")
        self._access_secret = access_secret
        self._refresh_secret = refresh_secret
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl

    @classmethod
    def from_settings(cls, settings: Settings) -> TokenService:
        return cls(
            access_secret=settings.access_token_secret,
            refresh_secret=settings.refresh_token_secret,
            access_ttl=timedelta(minutes=settings.access_token_ttl_minutes),
            refresh_ttl=timedelta(days=settings.refresh_token_ttl_days),
        )

    # ------------------------------------------------------------------
    # Issue
    # ------------------------------------------------------------------

    def issue_token_pair(self, claims: TokenClaims) -> TokenPair:
        """Sign a fresh access token (full claims) and refresh token (identity only)."""
        return TokenPair(
            access_token=self._encode_access(claims),
            refresh_token=self._encode_refresh(claims.user_id, claims.email),
            expires_in=_format_ttl(self.access_ttl),
        )

    def _encode_access(self, claims: TokenClaims) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "userId": claims.user_id,
            "email": claims.email,
            "sub": claims.email,
            "roles": list(claims.roles),
            "token_use": _ACCESS_USE,
            "jti": str(uuid.uuid4()),
            "iss": ISSUER,
            "aud": AUDIENCE,
            "iat": now,
            "exp": now + self.access_ttl,
        }
        if claims.tenant_id is not None:
            payload["tenantId"] = claims.tenant_id
        return jwt.encode(payload, self._access_secret, algorithm=ALGORITHM)

    def _encode_refresh(self, user_id: int, email: str) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "userId": user_id,
            "email": email,
            "token_use": _REFRESH_USE,
            "jti": str(uuid.uuid4()),
            "iss": ISSUER,
            "aud": AUDIENCE,
            "iat": now,
            "exp": now + self.refresh_ttl,
        }
        return jwt.encode(payload, self._refresh_secret, algorithm=ALGORITHM)

    # ------------------------------------------------------------------
    # Verify
    # ------------------------------------------------------------------

    def verify_access_token(self, token: str) -> TokenClaims | None:
        """Return the verified claims, or None on any failure."""
        payload = self._decode(token, self._access_secret, _ACCESS_USE)
        if payload is None:
            return None
        try:
            roles = payload.get("roles", [])
            if not isinstance(roles, list) or not all(isinstance(r, str) for r in roles):
                return None
            tenant_id = payload.get("tenantId")
            return TokenClaims(
                user_id=int(payload["userId"]),
                email=str(payload["email"]),
                tenant_id=int(tenant_id) if tenant_id is not None else None,
                roles=tuple(roles),
            )
        except (KeyError, TypeError, ValueError):
            return None

    def verify_refresh_token(self, token: str) -> RefreshClaims | None:
        """Return {user_id, email} from a valid refresh token, or None. Roles are never read."""
        payload = self._decode(token, self._refresh_secret, _REFRESH_USE)
        if payload is None:
            return None
        try:
            return RefreshClaims(user_id=int(payload["userId"]), email=str(payload["email"]))
        except (KeyError, TypeError, ValueError):
            return None

    def _decode(self, token: str, secret: str, expected_use: str) -> dict | None:
        if not token:
            return None
        try:
            payload = jwt.decode(
                token,
                secret,
                algorithms=[ALGORITHM],
                audience=AUDIENCE,
                issuer=ISSUER,
                options=_DECODE_OPTIONS,
            )
        except JWTError:
            return None
        except Exception:
            # Malformed input can surface as non-JWTError exceptions; still untrusted.
            logger.debug("Unexpected error decoding token", exc_info=True)
            return None
        if payload.get("token_use") != expected_use:
            return None
        return payload


def extract_bearer_token(header: str | None) -> str | None:
    """Return the token from an `Authorization: Bearer <token>` header value.

    The header must be exactly two space-separated parts and the first must be
    literally "Bearer". Anything else (lowercase scheme, extra spaces, missing
    token) returns None.
    """
    if not header or not header.strip():
        return None
    parts = header.split(" ")
    if len(parts) != 2 or parts[0] != "Bearer" or not parts[1]:
        return None
    return parts[1]
