"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Only one auth method exists: an `Authorization: Bearer <access token>` header.
The token is verified by the TokenService stored on app.state, and the
verified TokenClaims (not a User row) are handed to the route, which threads
them explicitly into the service call.

try_get_current_claims() is the soft variant (returns None on failure).
get_current_claims() wraps it and raises AuthFailed (401) if unauthenticated.
require_super_admin() wraps get_current_claims() and raises Forbidden (403).

Layer rule: no imports from tenants/.
  auth/dependencies.py may import from fastapi (for Request) because this
  module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import Request

from auth import policy
from auth.errors import AuthFailed, Forbidden
from auth.models import ClientInfo, TokenClaims
from auth.tokens import extract_bearer_token


def try_get_current_claims(request: Request) -> TokenClaims | None:
    """Return the verified claims of the Bearer token, or None on any failure. Never raises."""
    token = extract_bearer_token(request.headers.get("Authorization"))
    if token is None:
        return None
    return request.app.state.tokens.verify_access_token(token)


def get_current_claims(request: Request) -> TokenClaims:
    """Require authentication.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(claims: TokenClaims = Depends(get_current_claims)): ...
    """
    claims = try_get_current_claims(request)
    if claims is None:
        raise AuthFailed("Authentication required.")
    return claims


def require_super_admin(request: Request) -> TokenClaims:
    claims = get_current_claims(request)
    if not policy.is_super_admin(claims):
        raise Forbidden("insufficient_permissions", "Super admin access required.")
    return claims


def get_client_info(request: Request) -> ClientInfo:
    """Caller IP (X-Forwarded-For first hop, then X-Real-IP, then the socket peer) and User-Agent."""
    ip = None
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        ip = forwarded.split(",")[0].strip() or None
    if ip is None:
        ip = request.headers.get("X-Real-IP") or None
    if ip is None and request.client:
        ip = request.client.host
    return ClientInfo(ip_address=ip, user_agent=request.headers.get("User-Agent"))
