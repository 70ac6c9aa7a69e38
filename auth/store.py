"""
auth/store.py -- SQLAlchemy Core persistence layer for identity entities.

Pattern: Repository + Data Mapper (same as tenants/store.py).
UserStore is the repository; _row_to_user / _row_to_role / _row_to_attempt are
the mappers. Workflow code never touches SQL directly.

Every method takes an optional `conn` (see core/database.py). Workflows pass
the Connection from Database.transaction() so a user row, its role
assignments, and its lockout counters commit or roll back together.

Security:
  All queries use bound parameters. No f-strings in SQL.

  users.email is unique among non-deleted users via a partial unique index.
  The service checks first; the index is what stops two concurrent creates
  that both passed the check.

  increment_failed_login() does the read-modify-write of the lockout counter
  inside one UPDATE, so it needs no row lock on any backend.
  get_user_by_id(for_update=True) issues SELECT ... FOR UPDATE on databases
  that support it; SQLite ignores it and serialises writers instead.

  login_attempts is append-only: no update or delete methods exist.

Layer rule: no imports from api/. tenants/store.py is imported only for the
users.tenant_id foreign key target.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    ForeignKey,
    Index,
    Integer,
    LargeBinary,
    String,
    Table,
    UniqueConstraint,
    case,
    func,
    select,
)
from sqlalchemy.engine import Connection

import tenants.store  # noqa: F401  registers the tenants table for the FK below
from auth.lockout import LockoutState
from auth.models import SUPER_ADMIN, LoginAttempt, Role, User
from core.database import Database, metadata

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("tenant_id", Integer, ForeignKey("tenants.id")),  # NULL for global super-admins
    Column("email", String(256), nullable=False),
    Column("display_name", String(128), nullable=False),
    Column("password_hash", LargeBinary, nullable=False),
    Column("password_salt", LargeBinary),  # legacy, never read by verification
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("is_locked", Integer, nullable=False, server_default="0"),
    Column("failed_login_attempts", Integer, nullable=False, server_default="0"),
    Column("last_failed_login_at", String(32)),
    Column("last_login_at", String(32)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32)),
    Column("deleted_at", String(32)),
)

Index(
    "uq_users_email_live",
    _users.c.email,
    unique=True,
    sqlite_where=_users.c.deleted_at.is_(None),
    postgresql_where=_users.c.deleted_at.is_(None),
)

_roles = Table(
    "roles",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(64), nullable=False, unique=True),
    Column("description", String(256)),
)

_user_roles = Table(
    "user_roles",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("role_id", Integer, ForeignKey("roles.id"), nullable=False),
    Column("assigned_at", String(32), nullable=False),
    UniqueConstraint("user_id", "role_id", name="uq_user_roles_user_role"),
)

_login_attempts = Table(
    "login_attempts",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer),  # no FK: attempts for unknown emails are kept too
    Column("email", String(256), nullable=False),
    Column("ip_address", String(64)),
    Column("user_agent", String(512)),
    Column("success", Integer, nullable=False),
    Column("failure_reason", String(64)),
    Column("attempted_at", String(32), nullable=False),
)

_live = _users.c.deleted_at.is_(None)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User, Role, and LoginAttempt entities.

    Usage:
        store = UserStore(db)
        with db.transaction() as conn:
            user_id = store.create_user(User(email="a@b.com", display_name="A", password_hash=h), conn=conn)
            role = store.ensure_role(COMPANY_ADMIN, conn=conn)
            store.assign_role(user_id, role.id, conn=conn)
    """

    def __init__(self, db: Database) -> None:
        self.db = db
        metadata.create_all(db.engine)

    # ------------------------------------------------------------------
    # User queries
    # ------------------------------------------------------------------

    def get_user_by_email(self, email: str, conn: Connection | None = None) -> User | None:
        """Look up a non-deleted user by exact (already normalised) email."""
        with self.db.connect(conn) as c:
            row = c.execute(_users.select().where((_users.c.email == email) & _live)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_user_by_id(self, user_id: int, conn: Connection | None = None, for_update: bool = False) -> User | None:
        """Look up a non-deleted user by primary key.

        for_update=True locks the row until the caller's transaction ends.
        Only meaningful together with a `conn` from Database.transaction().
        """
        query = _users.select().where((_users.c.id == user_id) & _live)
        if for_update:
            query = query.with_for_update()
        with self.db.connect(conn) as c:
            row = c.execute(query).fetchone()
        return _row_to_user(row) if row is not None else None

    def create_user(self, user: User, conn: Connection | None = None) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the email is already used by a
        non-deleted user, or if tenant_id does not reference a tenant.
        """
        with self.db.connect(conn) as c:
            result = c.execute(
                _users.insert().values(
                    tenant_id=user.tenant_id,
                    email=user.email,
                    display_name=user.display_name,
                    password_hash=user.password_hash,
                    password_salt=user.password_salt,
                    is_active=1 if user.is_active else 0,
                    is_locked=1 if user.is_locked else 0,
                    failed_login_attempts=user.failed_login_attempts,
                    created_at=_now_iso(),
                )
            )
        return result.inserted_primary_key[0]

    def update_user(self, user_id: int, conn: Connection | None = None, **fields) -> bool:
        """Update mutable fields on an existing user.

        Accepted fields: display_name, is_active, tenant_id. is_active must be
        passed as bool; this method converts to int for storage. Password and
        lockout columns have dedicated methods below.

        Returns True if a row was updated, False if user_id was not found.
        """
        if "is_active" in fields:
            fields["is_active"] = 1 if fields["is_active"] else 0
        fields["updated_at"] = _now_iso()
        with self.db.connect(conn) as c:
            result = c.execute(_users.update().where((_users.c.id == user_id) & _live).values(**fields))
        return result.rowcount > 0

    def save_lockout_state(self, user_id: int, state: LockoutState, conn: Connection | None = None) -> None:
        """Persist failed_login_attempts, is_locked, and last_failed_login_at together."""
        with self.db.connect(conn) as c:
            c.execute(
                _users.update()
                .where(_users.c.id == user_id)
                .values(
                    failed_login_attempts=state.failed_attempts,
                    is_locked=1 if state.is_locked else 0,
                    last_failed_login_at=state.last_failed_login_at,
                    updated_at=_now_iso(),
                )
            )

    def increment_failed_login(
        self, user_id: int, failed_at: str, threshold: int, conn: Connection | None = None
    ) -> LockoutState | None:
        """Apply the lockout failure transition in a single UPDATE and return the new state.

        The counter is incremented by the database rather than written back
        from an earlier read, so concurrent failures against one account are
        all counted. Same transition as auth.lockout.register_failure.
        Returns None if the user does not exist.
        """
        attempts = _users.c.failed_login_attempts + 1
        with self.db.connect(conn) as c:
            result = c.execute(
                _users.update()
                .where((_users.c.id == user_id) & _live)
                .values(
                    failed_login_attempts=attempts,
                    is_locked=case((attempts >= threshold, 1), else_=_users.c.is_locked),
                    last_failed_login_at=failed_at,
                    updated_at=failed_at,
                )
            )
            if result.rowcount == 0:
                return None
            row = c.execute(
                select(
                    _users.c.failed_login_attempts,
                    _users.c.is_locked,
                    _users.c.last_failed_login_at,
                ).where(_users.c.id == user_id)
            ).fetchone()
        return LockoutState(
            failed_attempts=row.failed_login_attempts,
            is_locked=bool(row.is_locked),
            last_failed_login_at=row.last_failed_login_at,
        )

    def update_last_login(self, user_id: int, conn: Connection | None = None) -> None:
        """Stamp the current UTC timestamp as last_login_at for the given user."""
        with self.db.connect(conn) as c:
            c.execute(_users.update().where(_users.c.id == user_id).values(last_login_at=_now_iso()))

    def set_password_hash(self, user_id: int, password_hash: bytes, conn: Connection | None = None) -> None:
        with self.db.connect(conn) as c:
            c.execute(
                _users.update()
                .where(_users.c.id == user_id)
                .values(password_hash=password_hash, updated_at=_now_iso())
            )

    def soft_delete_user(self, user_id: int, conn: Connection | None = None) -> bool:
        """Stamp deleted_at. The email becomes free for reuse; history rows stay."""
        with self.db.connect(conn) as c:
            result = c.execute(
                _users.update().where((_users.c.id == user_id) & _live).values(deleted_at=_now_iso())
            )
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Role queries
    # ------------------------------------------------------------------

    def get_role_by_name(self, name: str, conn: Connection | None = None) -> Role | None:
        with self.db.connect(conn) as c:
            row = c.execute(_roles.select().where(_roles.c.name == name)).fetchone()
        return _row_to_role(row) if row is not None else None

    def ensure_role(self, name: str, description: str | None = None, conn: Connection | None = None) -> Role:
        """Return the named role, creating it first if it does not exist yet."""
        with self.db.connect(conn) as c:
            row = c.execute(_roles.select().where(_roles.c.name == name)).fetchone()
            if row is not None:
                return _row_to_role(row)
            result = c.execute(_roles.insert().values(name=name, description=description))
        return Role(id=result.inserted_primary_key[0], name=name, description=description)

    def assign_role(self, user_id: int, role_id: int, conn: Connection | None = None) -> None:
        """Link a user to a role. Assigning the same pair twice is a no-op."""
        with self.db.connect(conn) as c:
            existing = c.execute(
                select(_user_roles.c.id).where((_user_roles.c.user_id == user_id) & (_user_roles.c.role_id == role_id))
            ).fetchone()
            if existing is None:
                c.execute(_user_roles.insert().values(user_id=user_id, role_id=role_id, assigned_at=_now_iso()))

    def get_user_roles(self, user_id: int, conn: Connection | None = None) -> list[str]:
        """Return the role names held by a user, alphabetically."""
        query = (
            select(_roles.c.name)
            .select_from(_user_roles.join(_roles, _user_roles.c.role_id == _roles.c.id))
            .where(_user_roles.c.user_id == user_id)
            .order_by(_roles.c.name)
        )
        with self.db.connect(conn) as c:
            rows = c.execute(query).fetchall()
        return [r.name for r in rows]

    def super_admin_exists(self, conn: Connection | None = None) -> bool:
        """Return True if any non-deleted user holds SUPER_ADMIN."""
        query = (
            select(func.count())
            .select_from(
                _user_roles.join(_roles, _user_roles.c.role_id == _roles.c.id).join(
                    _users, _user_roles.c.user_id == _users.c.id
                )
            )
            .where((_roles.c.name == SUPER_ADMIN) & _live)
        )
        with self.db.connect(conn) as c:
            result = c.execute(query).scalar()
        return (result or 0) > 0

    def get_super_admin_by_email(self, email: str, conn: Connection | None = None) -> User | None:
        """Return the user with this email only if they hold SUPER_ADMIN."""
        query = (
            select(_users)
            .select_from(
                _users.join(_user_roles, _user_roles.c.user_id == _users.c.id).join(
                    _roles, _user_roles.c.role_id == _roles.c.id
                )
            )
            .where((_users.c.email == email) & (_roles.c.name == SUPER_ADMIN) & _live)
        )
        with self.db.connect(conn) as c:
            row = c.execute(query).fetchone()
        return _row_to_user(row) if row is not None else None

    # ------------------------------------------------------------------
    # Login audit
    # ------------------------------------------------------------------

    def record_login_attempt(self, attempt: LoginAttempt, conn: Connection | None = None) -> int:
        with self.db.connect(conn) as c:
            result = c.execute(
                _login_attempts.insert().values(
                    user_id=attempt.user_id,
                    email=attempt.email,
                    ip_address=attempt.ip_address,
                    user_agent=attempt.user_agent,
                    success=1 if attempt.success else 0,
                    failure_reason=attempt.failure_reason,
                    attempted_at=attempt.attempted_at or _now_iso(),
                )
            )
        return result.inserted_primary_key[0]

    def list_login_attempts(self, email: str, conn: Connection | None = None) -> list[LoginAttempt]:
        """Return every recorded attempt for an email, oldest first."""
        with self.db.connect(conn) as c:
            rows = c.execute(
                _login_attempts.select().where(_login_attempts.c.email == email).order_by(_login_attempts.c.id)
            ).fetchall()
        return [_row_to_attempt(r) for r in rows]


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        tenant_id=row.tenant_id,
        email=row.email,
        display_name=row.display_name,
        password_hash=bytes(row.password_hash),
        password_salt=bytes(row.password_salt) if row.password_salt is not None else None,
        is_active=bool(row.is_active),
        is_locked=bool(row.is_locked),
        failed_login_attempts=row.failed_login_attempts or 0,
        last_failed_login_at=row.last_failed_login_at,
        last_login_at=row.last_login_at,
        created_at=row.created_at,
        deleted_at=row.deleted_at,
    )


def _row_to_role(row) -> Role:
    return Role(id=row.id, name=row.name, description=row.description)


def _row_to_attempt(row) -> LoginAttempt:
    return LoginAttempt(
        id=row.id,
        user_id=row.user_id,
        email=row.email,
        ip_address=row.ip_address,
        user_agent=row.user_agent,
        success=bool(row.success),
        failure_reason=row.failure_reason,
        attempted_at=row.attempted_at,
    )
