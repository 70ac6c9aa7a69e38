"""
auth/models.py -- Domain dataclasses for identity entities, tokens, and commands.

Pattern: Data class (pure data container, zero logic). Stores decode rows into
these immediately (see the _row_to_* mappers in auth/store.py), so no untyped
row ever reaches workflow code. Workflows in auth/service.py do the work.

Layer rule: no imports from api/ or tenants/.
"""

from __future__ import annotations

from dataclasses import dataclass, field

SUPER_ADMIN = "SUPER_ADMIN"
COMPANY_ADMIN = "COMPANY_ADMIN"

ROLE_DESCRIPTIONS: dict[str, str] = {
    SUPER_ADMIN: "Full system access",
    COMPANY_ADMIN: "Administers a single tenant",
}


@dataclass
class User:
    """An identity that can log in.

    tenant_id is None only for a global super-admin. email is stored
    lowercase (see auth.service.normalize_email). password_hash is the raw
    bcrypt blob; password_salt is a legacy column that verification never
    reads because bcrypt embeds its salt.

    deleted_at is always None on instances returned by the store -- soft
    deleted rows are filtered out of every lookup.
    """

    email: str
    display_name: str
    password_hash: bytes = field(repr=False)
    tenant_id: int | None = None
    id: int | None = None
    password_salt: bytes | None = field(default=None, repr=False)
    is_active: bool = True
    is_locked: bool = False
    failed_login_attempts: int = 0
    last_failed_login_at: str | None = None
    last_login_at: str | None = None
    created_at: str | None = None
    deleted_at: str | None = None


@dataclass
class Role:
    name: str
    id: int | None = None
    description: str | None = None


@dataclass
class LoginAttempt:
    """Append-only audit entry. Records are never updated or deleted."""

    email: str
    success: bool
    user_id: int | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    failure_reason: str | None = None
    attempted_at: str | None = None
    id: int | None = None


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TokenClaims:
    """Verified identity + authorization payload carried by an access token."""

    user_id: int
    email: str
    tenant_id: int | None = None
    roles: tuple[str, ...] = ()


@dataclass(frozen=True)
class RefreshClaims:
    """The only facts a refresh token vouches for. Authority is re-read from storage."""

    user_id: int
    email: str


@dataclass(frozen=True)
class TokenPair:
    access_token: str = field(repr=False)
    refresh_token: str = field(repr=False)
    expires_in: str
    token_type: str = "Bearer"


# ---------------------------------------------------------------------------
# Commands and results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ClientInfo:
    """Caller metadata recorded on login attempts."""

    ip_address: str | None = None
    user_agent: str | None = None


@dataclass(frozen=True)
class LoginCommand:
    email: str
    password: str = field(repr=False)
    client: ClientInfo = ClientInfo()


@dataclass(frozen=True)
class CreateUserCommand:
    tenant_id: int
    email: str
    display_name: str
    role: str | None = None  # None = COMPANY_ADMIN


@dataclass(frozen=True)
class BootstrapCommand:
    secret: str = field(repr=False)
    email: str | None = None
    display_name: str | None = None
    password: str | None = field(default=None, repr=False)


@dataclass
class LoginResult:
    user: User
    roles: list[str]
    tokens: TokenPair


@dataclass
class CreateUserResult:
    """default_password is returned here exactly once and never stored in clear."""

    user: User
    roles: list[str]
    tokens: TokenPair
    default_password: str = field(repr=False)
