"""
api/routes/v1/users.py -- User provisioning and password management.

Routes:
  POST /api/v1/users               -- create a user in a tenant (super admin, or company admin of that tenant)
  POST /api/v1/users/set-password  -- set a password and clear lockout (super admin, self, or tenant's company admin)

Authorization beyond "has a valid token" is decided by AuthenticationService,
not here, so the CLI and the API enforce the same rules.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import (
    SetPasswordRequest,
    TokenPairResponse,
    UserCreate,
    UserCreatedResponse,
    UserResponse,
)
from auth.dependencies import get_current_claims
from auth.models import CreateUserCommand, TokenClaims
from auth.service import AuthenticationService

router = APIRouter()


@router.post("/users", response_model=UserCreatedResponse, status_code=201)
def create_user(
    request: Request,
    body: UserCreate,
    claims: TokenClaims = Depends(get_current_claims),
) -> UserCreatedResponse:
    """Create a user with the configured default password.

    The default password appears in this response and nowhere else. The
    caller must hand it over and the user should change it on first login.
    """
    auth: AuthenticationService = request.app.state.auth_service
    result = auth.create_user(
        claims,
        CreateUserCommand(
            tenant_id=body.tenant_id,
            email=body.email,
            display_name=body.display_name,
            role=body.role,
        ),
    )
    return UserCreatedResponse(
        user=UserResponse.from_user(result.user, result.roles),
        tokens=TokenPairResponse.from_pair(result.tokens),
        default_password=result.default_password,
    )


@router.post("/users/set-password", response_model=UserResponse)
def set_password(
    request: Request,
    body: SetPasswordRequest,
    claims: TokenClaims = Depends(get_current_claims),
) -> UserResponse:
    auth: AuthenticationService = request.app.state.auth_service
    user = auth.set_password(claims, body.user_id, body.new_password)
    return UserResponse.from_user(user, request.app.state.user_store.get_user_roles(user.id))
