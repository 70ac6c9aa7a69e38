"""
auth/service.py -- Identity workflows: login, refresh, user creation,
password set/reset, and super-admin bootstrap.

Each public method is one request-scoped workflow. It receives the caller's
verified TokenClaims explicitly (there is no ambient "current user"), runs
its authorization and validation checks BEFORE any write, performs its
check-then-insert steps inside one Database.transaction(), and either returns
a typed result or raises an IdentityError subclass (auth/errors.py).

Login sequence:
  1. unknown email        -> bcrypt against a dummy hash, audit, AuthFailed
  2. inactive / locked    -> audit, Forbidden("inactive" / "locked")
  3. wrong password       -> lockout failure transition, audit, AuthFailed
  4. success              -> lockout success transition + last_login_at,
                             audit, token pair with the current role set

Unknown email and wrong password produce the same AuthFailed message. The
dummy-hash comparison in step 1 keeps their response times indistinguishable.

Audit writes (login_attempts) run in their own short transaction after the
workflow's outcome is decided. If they fail, the failure is logged and the
login result stands.

Bcrypt work (hash of the default or new password) happens before a
transaction opens, so no row lock is held across the slow hash.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import hmac
import logging
import re
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from sqlalchemy.exc import IntegrityError

from auth import policy
from auth.errors import AuthFailed, Conflict, Forbidden, NotFound, ValidationFailed, storage_errors
from auth.lockout import LockoutState, administrative_reset, register_success
from auth.models import (
    COMPANY_ADMIN,
    ROLE_DESCRIPTIONS,
    SUPER_ADMIN,
    BootstrapCommand,
    ClientInfo,
    CreateUserCommand,
    CreateUserResult,
    LoginAttempt,
    LoginCommand,
    LoginResult,
    TokenClaims,
    TokenPair,
    User,
)
from auth.passwords import DEFAULT_ROUNDS, hash_password, validate_password_strength, verify_password
from auth.store import UserStore
from auth.tokens import TokenService
from core.database import Database
from tenants.store import TenantStore

if TYPE_CHECKING:
    from core.config import Settings

logger = logging.getLogger("tenantguard.auth")

INVALID_CREDENTIALS = "Invalid credentials."
DEFAULT_SUPER_ADMIN_EMAIL = "superadmin@example.com"
DEFAULT_SUPER_ADMIN_NAME = "Super Administrator"

MAX_EMAIL_LENGTH = 256
DISPLAY_NAME_MIN = 2
DISPLAY_NAME_MAX = 128

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# Any fixed plaintext works; only the hash cost matters.
_DUMMY_PASSWORD = "timing-equalization-only"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def normalize_email(email: str | None) -> str:
    """Emails are compared and stored lowercase with surrounding whitespace removed."""
    return (email or "").strip().lower()


def validate_email(email: str) -> str | None:
    """Return a reason string if the (normalized) email is unacceptable, else None."""
    if not email:
        return "is required"
    if len(email) > MAX_EMAIL_LENGTH:
        return f"must be at most {MAX_EMAIL_LENGTH} characters"
    if not _EMAIL_RE.match(email):
        return "is not a valid email address"
    return None


def validate_display_name(name: str) -> str | None:
    if not DISPLAY_NAME_MIN <= len(name) <= DISPLAY_NAME_MAX:
        return f"must be between {DISPLAY_NAME_MIN} and {DISPLAY_NAME_MAX} characters"
    return None


def _lockout_state(user: User) -> LockoutState:
    return LockoutState(
        failed_attempts=user.failed_login_attempts,
        is_locked=user.is_locked,
        last_failed_login_at=user.last_failed_login_at,
    )


class AuthenticationService:
    """Orchestrates the identity workflows against the stores.

    Usage:
        service = AuthenticationService.from_settings(settings, db, user_store, tenant_store, tokens)
        result = service.login(LoginCommand(email="a@b.com", password="Valid123!"))
        pair = service.refresh(result.tokens.refresh_token)
    """

    def __init__(
        self,
        db: Database,
        user_store: UserStore,
        tenant_store: TenantStore,
        tokens: TokenService,
        *,
        bcrypt_rounds: int = DEFAULT_ROUNDS,
        lockout_threshold: int = 4,
        default_password: str,
        bootstrap_secret: str = "",
        reset_secret: str = "",
    ) -> None:
        self._db = db
        self._users = user_store
        self._tenants = tenant_store
        self._tokens = tokens
        self._bcrypt_rounds = bcrypt_rounds
        self._lockout_threshold = lockout_threshold
        self._default_password = default_password
        self._bootstrap_secret = bootstrap_secret
        self._reset_secret = reset_secret
        self._dummy_hash = hash_password(_DUMMY_PASSWORD, rounds=bcrypt_rounds)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        db: Database,
        user_store: UserStore,
        tenant_store: TenantStore,
        tokens: TokenService,
    ) -> AuthenticationService:
        return cls(
            db,
            user_store,
            tenant_store,
            tokens,
            bcrypt_rounds=settings.bcrypt_rounds,
            lockout_threshold=settings.lockout_threshold,
            default_password=settings.default_password,
            bootstrap_secret=settings.bootstrap_secret,
            reset_secret=settings.reset_secret,
        )

    # ------------------------------------------------------------------
    # Login / refresh
    # ------------------------------------------------------------------

    @storage_errors()
    def login(self, cmd: LoginCommand) -> LoginResult:
        email = normalize_email(cmd.email)
        user = self._users.get_user_by_email(email)

        if user is None:
            verify_password(cmd.password or "", self._dummy_hash)
            self._record_attempt(email, None, cmd.client, success=False, reason="unknown_email")
            raise AuthFailed(INVALID_CREDENTIALS)

        if not user.is_active:
            self._record_attempt(email, user.id, cmd.client, success=False, reason="inactive")
            raise Forbidden("inactive", "Account is inactive.")

        if user.is_locked:
            self._record_attempt(email, user.id, cmd.client, success=False, reason="locked")
            raise Forbidden("locked", "Account is locked. Contact an administrator to reset your password.")

        if not verify_password(cmd.password or "", user.password_hash):
            state = self._register_failed_login(user.id)
            self._record_attempt(email, user.id, cmd.client, success=False, reason="invalid_password")
            if state.is_locked:
                logger.warning("Account %d locked after %d failed logins", user.id, state.failed_attempts)
            raise AuthFailed(INVALID_CREDENTIALS)

        with self._db.transaction() as conn:
            self._users.save_lockout_state(user.id, register_success(_lockout_state(user)), conn=conn)
            self._users.update_last_login(user.id, conn=conn)
            roles = self._users.get_user_roles(user.id, conn=conn)
            fresh = self._users.get_user_by_id(user.id, conn=conn)

        self._record_attempt(email, user.id, cmd.client, success=True)
        logger.info("Login succeeded for user %d", user.id)
        return LoginResult(user=fresh, roles=roles, tokens=self._issue(fresh, roles))

    @storage_errors()
    def refresh(self, refresh_token: str) -> TokenPair:
        """Exchange a refresh token for a brand-new pair.

        Authority is re-derived from storage: a user deactivated or locked
        after the token was issued is refused even though the token is still
        cryptographically valid.
        """
        claims = self._tokens.verify_refresh_token(refresh_token)
        if claims is None:
            raise AuthFailed("Invalid or expired refresh token.")
        user = self._users.get_user_by_id(claims.user_id)
        if user is None:
            raise AuthFailed("Invalid or expired refresh token.")
        if not user.is_active:
            raise Forbidden("inactive", "Account is inactive.")
        if user.is_locked:
            raise Forbidden("locked", "Account is locked. Contact an administrator to reset your password.")
        roles = self._users.get_user_roles(user.id)
        return self._issue(user, roles)

    def _register_failed_login(self, user_id: int) -> LockoutState:
        """Count one failure atomically; locks the account at the threshold."""
        with self._db.transaction() as conn:
            state = self._users.increment_failed_login(user_id, _now_iso(), self._lockout_threshold, conn=conn)
        return state or LockoutState()

    def _record_attempt(
        self,
        email: str,
        user_id: int | None,
        client: ClientInfo,
        *,
        success: bool,
        reason: str | None = None,
    ) -> None:
        try:
            self._users.record_login_attempt(
                LoginAttempt(
                    email=email,
                    user_id=user_id,
                    ip_address=client.ip_address,
                    user_agent=client.user_agent,
                    success=success,
                    failure_reason=reason,
                )
            )
        except Exception:
            logger.warning("Could not record login attempt for %s", email, exc_info=True)

    def _issue(self, user: User, roles: list[str]) -> TokenPair:
        return self._tokens.issue_token_pair(
            TokenClaims(user_id=user.id, email=user.email, tenant_id=user.tenant_id, roles=tuple(roles))
        )

    # ------------------------------------------------------------------
    # User creation
    # ------------------------------------------------------------------

    @storage_errors("Email is already registered.")
    def create_user(self, requester: TokenClaims, cmd: CreateUserCommand) -> CreateUserResult:
        """Create a user with the configured default password.

        The plaintext default password is returned in the result exactly once
        so the caller can hand it over; only its hash is stored.
        """
        role_name = cmd.role or COMPANY_ADMIN
        if not policy.can_create_user(requester, cmd.tenant_id):
            if policy.is_company_admin(requester):
                raise Forbidden("cross_tenant", "Company admins can only create users in their own tenant.")
            raise Forbidden("insufficient_permissions", "Only administrators can create users.")
        if not policy.can_assign_role(requester, role_name):
            raise Forbidden("insufficient_permissions", "Only a super admin can assign the SUPER_ADMIN role.")
        if role_name == SUPER_ADMIN:
            # Super admins are global. bootstrap_super_admin is the only way to make one.
            raise ValidationFailed({"role": "SUPER_ADMIN users cannot belong to a tenant"})

        email = normalize_email(cmd.email)
        display_name = (cmd.display_name or "").strip()
        errors: dict[str, str] = {}
        if reason := validate_email(email):
            errors["email"] = reason
        if reason := validate_display_name(display_name):
            errors["display_name"] = reason
        if errors:
            raise ValidationFailed(errors)

        password_hash = hash_password(self._default_password, rounds=self._bcrypt_rounds)

        with self._db.transaction() as conn:
            tenant = self._tenants.get_by_id(cmd.tenant_id, conn=conn)
            if tenant is None:
                raise NotFound("tenant")
            if not tenant.is_active:
                raise ValidationFailed({"tenant_id": "tenant is inactive"})
            if self._users.get_user_by_email(email, conn=conn) is not None:
                raise Conflict("Email is already registered.")

            if role_name in ROLE_DESCRIPTIONS:
                role = self._users.ensure_role(role_name, ROLE_DESCRIPTIONS[role_name], conn=conn)
            else:
                role = self._users.get_role_by_name(role_name, conn=conn)
                if role is None:
                    raise NotFound("role", f"Role {role_name!r} does not exist.")

            try:
                user_id = self._users.create_user(
                    User(email=email, display_name=display_name, password_hash=password_hash, tenant_id=tenant.id),
                    conn=conn,
                )
            except IntegrityError as exc:
                raise Conflict("Email is already registered.") from exc
            self._users.assign_role(user_id, role.id, conn=conn)
            user = self._users.get_user_by_id(user_id, conn=conn)
            roles = self._users.get_user_roles(user_id, conn=conn)

        logger.info("User %d created in tenant %d by user %d", user_id, tenant.id, requester.user_id)
        return CreateUserResult(
            user=user,
            roles=roles,
            tokens=self._issue(user, roles),
            default_password=self._default_password,
        )

    # ------------------------------------------------------------------
    # Passwords
    # ------------------------------------------------------------------

    @storage_errors()
    def set_password(self, requester: TokenClaims, target_user_id: int, new_password: str) -> User:
        """Set a user's password and clear any lockout.

        Allowed for a super admin, the user themself, or a company admin of
        the user's tenant.
        """
        is_self = requester.user_id == target_user_id
        if not (policy.is_super_admin(requester) or policy.is_company_admin(requester) or is_self):
            raise Forbidden("insufficient_permissions", "You cannot change this user's password.")

        target = self._users.get_user_by_id(target_user_id)
        if target is None:
            raise NotFound("user")
        target_roles = self._users.get_user_roles(target.id)
        if not policy.can_set_password(requester, target, target_roles):
            if SUPER_ADMIN in target_roles:
                raise Forbidden("insufficient_permissions", "Only a super admin can change a super admin's password.")
            raise Forbidden("cross_tenant", "You cannot change passwords for users outside your tenant.")
        if not target.is_active:
            raise Forbidden("target_inactive", "Cannot set the password of an inactive user.")
        if reason := validate_password_strength(new_password):
            raise ValidationFailed({"password": reason})

        password_hash = hash_password(new_password, rounds=self._bcrypt_rounds)
        user = self._store_password(target.id, password_hash)
        logger.info("Password set for user %d by user %d", target.id, requester.user_id)
        return user

    @storage_errors()
    def reset_super_admin_password(self, secret: str, email: str, new_password: str) -> User:
        """Emergency reset of a super admin's password, gated by the reset secret."""
        self._check_secret(secret, self._reset_secret, "reset_disabled", "Super admin reset is disabled.")
        if reason := validate_password_strength(new_password):
            raise ValidationFailed({"password": reason})

        target = self._users.get_super_admin_by_email(normalize_email(email))
        if target is None:
            raise NotFound("user", "Super admin not found.")

        password_hash = hash_password(new_password, rounds=self._bcrypt_rounds)
        user = self._store_password(target.id, password_hash)
        logger.warning("Super admin %d password reset with the reset secret", target.id)
        return user

    def _store_password(self, user_id: int, password_hash: bytes) -> User:
        with self._db.transaction() as conn:
            current = self._users.get_user_by_id(user_id, conn=conn, for_update=True)
            if current is None:
                raise NotFound("user")
            self._users.set_password_hash(user_id, password_hash, conn=conn)
            self._users.save_lockout_state(user_id, administrative_reset(_lockout_state(current)), conn=conn)
            return self._users.get_user_by_id(user_id, conn=conn)

    # ------------------------------------------------------------------
    # Bootstrap
    # ------------------------------------------------------------------

    @storage_errors("A super admin already exists.")
    def bootstrap_super_admin(self, cmd: BootstrapCommand) -> User:
        """Create the first, tenant-less super admin.

        Operational escape hatch: once a super admin exists every further
        call is a Conflict. Unset BOOTSTRAP_SECRET after initial setup to
        disable the workflow entirely.
        """
        self._check_secret(cmd.secret, self._bootstrap_secret, "bootstrap_disabled", "Bootstrap is disabled.")

        email = normalize_email(cmd.email or DEFAULT_SUPER_ADMIN_EMAIL)
        display_name = (cmd.display_name or DEFAULT_SUPER_ADMIN_NAME).strip()
        password = cmd.password or self._default_password
        errors: dict[str, str] = {}
        if reason := validate_email(email):
            errors["email"] = reason
        if reason := validate_display_name(display_name):
            errors["display_name"] = reason
        if reason := validate_password_strength(password):
            errors["password"] = reason
        if errors:
            raise ValidationFailed(errors)

        password_hash = hash_password(password, rounds=self._bcrypt_rounds)

        with self._db.transaction() as conn:
            if self._users.super_admin_exists(conn=conn):
                raise Conflict("A super admin already exists.")
            if self._users.get_user_by_email(email, conn=conn) is not None:
                raise Conflict("Email is already registered.")
            role = self._users.ensure_role(SUPER_ADMIN, ROLE_DESCRIPTIONS[SUPER_ADMIN], conn=conn)
            user_id = self._users.create_user(
                User(email=email, display_name=display_name, password_hash=password_hash),
                conn=conn,
            )
            self._users.assign_role(user_id, role.id, conn=conn)
            user = self._users.get_user_by_id(user_id, conn=conn)

        logger.warning("Super admin %d created via bootstrap", user_id)
        return user

    def _check_secret(self, supplied: str | None, configured: str, disabled_reason: str, disabled_msg: str) -> None:
        if not configured:
            raise Forbidden(disabled_reason, disabled_msg)
        if not hmac.compare_digest((supplied or "").encode("utf-8"), configured.encode("utf-8")):
            logger.warning("Rejected %s attempt with a wrong secret", disabled_reason.split("_")[0])
            raise AuthFailed("Invalid secret.")
