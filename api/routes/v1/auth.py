"""
api/routes/v1/auth.py -- Authentication and operator escape-hatch endpoints.

Routes:
  POST /api/v1/auth/login                       -- password login; returns user + token pair
  POST /api/v1/auth/refresh                     -- exchange a refresh token for a new pair
  GET  /api/v1/auth/me                          -- identity from the access token (requires auth)
  POST /api/v1/bootstrap/super-admin            -- one-time super admin creation (bootstrap secret)
  POST /api/v1/admin/reset-super-admin-password -- emergency reset (reset secret)

Security:
  POST /login is rate-limited per client IP (Settings.login_rate_limit).
  Unknown email and wrong password return the same 401 body; the service
  equalizes their timing too.
  Cache-Control: no-store on every response that carries tokens.

Handlers are thin: decode the body into a command, call the service, encode
the result. IdentityError subclasses propagate to the handler in api/main.py.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from api.limiter import limiter
from api.models import (
    BootstrapRequest,
    LoginRequest,
    LoginResponse,
    MeResponse,
    RefreshRequest,
    ResetSuperAdminRequest,
    TokenPairResponse,
    UserResponse,
)
from auth.dependencies import get_client_info, get_current_claims
from auth.models import BootstrapCommand, LoginCommand, TokenClaims
from auth.service import AuthenticationService
from core.config import get_settings

# Auth policy:
# - POST /api/v1/auth/login:                        public, rate-limited
# - POST /api/v1/auth/refresh:                      public, the refresh token is the credential
# - GET  /api/v1/auth/me:                           requires auth (get_current_claims)
# - POST /api/v1/bootstrap/super-admin:             public, gated by BOOTSTRAP_SECRET
# - POST /api/v1/admin/reset-super-admin-password:  public, gated by RESET_SECRET
router = APIRouter()


def _login_rate_limit() -> str:
    return get_settings().login_rate_limit


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/login", response_model=LoginResponse)
@limiter.limit(_login_rate_limit)  # below the route decorator so the router registers the limited wrapper
def login(request: Request, response: Response, body: LoginRequest) -> LoginResponse:
    """Authenticate with email and password."""
    auth: AuthenticationService = request.app.state.auth_service
    result = auth.login(LoginCommand(email=body.email, password=body.password, client=get_client_info(request)))
    response.headers["Cache-Control"] = "no-store"
    return LoginResponse(
        user=UserResponse.from_user(result.user, result.roles),
        tokens=TokenPairResponse.from_pair(result.tokens),
    )


@router.post("/auth/refresh", response_model=TokenPairResponse)
def refresh(request: Request, response: Response, body: RefreshRequest) -> TokenPairResponse:
    """Issue a new access AND refresh token. Roles and tenant are re-read from storage."""
    auth: AuthenticationService = request.app.state.auth_service
    pair = auth.refresh(body.refresh_token)
    response.headers["Cache-Control"] = "no-store"
    return TokenPairResponse.from_pair(pair)


@router.post("/bootstrap/super-admin", response_model=UserResponse, status_code=201)
def bootstrap_super_admin(request: Request, body: BootstrapRequest) -> UserResponse:
    """Create the first super admin. Answers 409 once one exists."""
    auth: AuthenticationService = request.app.state.auth_service
    user = auth.bootstrap_super_admin(
        BootstrapCommand(
            secret=body.secret,
            email=body.email,
            display_name=body.display_name,
            password=body.password,
        )
    )
    return UserResponse.from_user(user, request.app.state.user_store.get_user_roles(user.id))


@router.post("/admin/reset-super-admin-password", response_model=UserResponse)
def reset_super_admin_password(request: Request, body: ResetSuperAdminRequest) -> UserResponse:
    """Emergency password reset for a super admin. Also clears any lockout."""
    auth: AuthenticationService = request.app.state.auth_service
    user = auth.reset_super_admin_password(body.secret, body.email, body.new_password)
    return UserResponse.from_user(user, request.app.state.user_store.get_user_roles(user.id))


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=MeResponse)
async def me(claims: TokenClaims = Depends(get_current_claims)) -> MeResponse:
    """Return the identity asserted by the caller's access token."""
    return MeResponse.from_claims(claims)
