"""
API request and response models for TenantGuard REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
tenants/models.py, which own the internal domain representation. Route
handlers map between the two.

Request models only check shape (types, lengths). Business validation (code
format, password strength, tenant state) happens in the services so the CLI
and the API refuse exactly the same input.

Separation of concerns: auth/ and tenants/ models = domain truth; api/ models = API contract.
"""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import TokenClaims, TokenPair, User
from tenants.models import Ledger, Tenant

# ---------------------------------------------------------------------------
# Shared
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
    database: str = "ok"


class TokenPairResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: str

    @classmethod
    def from_pair(cls, pair: TokenPair) -> "TokenPairResponse":
        return cls(
            access_token=pair.access_token,
            refresh_token=pair.refresh_token,
            token_type=pair.token_type,
            expires_in=pair.expires_in,
        )


class UserResponse(BaseModel):
    """Public projection of a user. Never carries the password hash."""

    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    display_name: str
    tenant_id: Optional[int]
    roles: list[str]
    is_active: bool
    is_locked: bool
    last_login_at: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_user(cls, user: User, roles: list[str]) -> "UserResponse":
        """Factory Method: the mapping lives beside the output model, not in the routes."""
        return cls(
            id=user.id,
            email=user.email,
            display_name=user.display_name,
            tenant_id=user.tenant_id,
            roles=list(roles),
            is_active=user.is_active,
            is_locked=user.is_locked,
            last_login_at=user.last_login_at,
            created_at=user.created_at,
        )


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(min_length=1, max_length=256)
    password: str = Field(min_length=1, max_length=128)


class LoginResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    user: UserResponse
    tokens: TokenPairResponse


class RefreshRequest(BaseModel):
    """Request body for POST /api/v1/auth/refresh."""

    refresh_token: str = Field(min_length=1, max_length=4096)


class MeResponse(BaseModel):
    """Identity as asserted by the caller's access token."""

    model_config = ConfigDict(frozen=True)

    user_id: int
    email: str
    tenant_id: Optional[int]
    roles: list[str]

    @classmethod
    def from_claims(cls, claims: TokenClaims) -> "MeResponse":
        return cls(user_id=claims.user_id, email=claims.email, tenant_id=claims.tenant_id, roles=list(claims.roles))


class BootstrapRequest(BaseModel):
    """Request body for POST /api/v1/bootstrap/super-admin.

    email / display_name / password fall back to server-side defaults when omitted.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    secret: str = Field(min_length=1, max_length=512)
    email: Optional[str] = Field(default=None, max_length=256)
    display_name: Optional[str] = Field(default=None, max_length=128)
    password: Optional[str] = Field(default=None, max_length=72)


class ResetSuperAdminRequest(BaseModel):
    """Request body for POST /api/v1/admin/reset-super-admin-password."""

    model_config = ConfigDict(str_strip_whitespace=True)

    secret: str = Field(min_length=1, max_length=512)
    email: str = Field(min_length=1, max_length=256)
    new_password: str = Field(min_length=1, max_length=72)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserCreate(BaseModel):
    """Request body for POST /api/v1/users. role defaults to COMPANY_ADMIN."""

    model_config = ConfigDict(str_strip_whitespace=True)

    tenant_id: int = Field(gt=0)
    email: str = Field(min_length=1, max_length=256)
    display_name: str = Field(min_length=1, max_length=128)
    role: Optional[str] = Field(default=None, min_length=1, max_length=64)


class UserCreatedResponse(BaseModel):
    """Response for POST /api/v1/users. default_password is shown exactly once."""

    model_config = ConfigDict(frozen=True)

    user: UserResponse
    tokens: TokenPairResponse
    default_password: str


class SetPasswordRequest(BaseModel):
    """Request body for POST /api/v1/users/set-password."""

    user_id: int = Field(gt=0)
    new_password: str = Field(min_length=1, max_length=72)


# ---------------------------------------------------------------------------
# Tenants
# ---------------------------------------------------------------------------


class TenantCreate(BaseModel):
    """Request body for POST /api/v1/tenants."""

    model_config = ConfigDict(str_strip_whitespace=True)

    code: str = Field(min_length=1, max_length=32)
    name: str = Field(min_length=1, max_length=200)
    email: str = Field(min_length=1, max_length=256)
    default_currency: str = Field(default="EGP", min_length=3, max_length=3)
    minimum_balance: Decimal = Field(default=Decimal("0"))
    phone: Optional[str] = Field(default=None, max_length=64)
    country: Optional[str] = Field(default=None, max_length=64)
    address: Optional[str] = Field(default=None, max_length=512)


class LedgerResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    tenant_id: int
    currency: str

    @classmethod
    def from_ledger(cls, ledger: Ledger) -> "LedgerResponse":
        return cls(id=ledger.id, tenant_id=ledger.tenant_id, currency=ledger.currency)


class TenantResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    code: str
    name: str
    email: str
    phone: Optional[str]
    country: Optional[str]
    address: Optional[str]
    default_currency: str
    minimum_balance: str  # Decimal rendered as a string to avoid float rounding
    is_active: bool
    created_at: Optional[str]

    @classmethod
    def from_tenant(cls, tenant: Tenant) -> "TenantResponse":
        return cls(
            id=tenant.id,
            code=tenant.code,
            name=tenant.name,
            email=tenant.email,
            phone=tenant.phone,
            country=tenant.country,
            address=tenant.address,
            default_currency=tenant.default_currency,
            minimum_balance=str(tenant.minimum_balance),
            is_active=tenant.is_active,
            created_at=tenant.created_at,
        )


class TenantCreatedResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    tenant: TenantResponse
    ledger: LedgerResponse
