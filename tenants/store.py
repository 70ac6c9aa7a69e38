"""
tenants/store.py -- SQLAlchemy Core persistence for tenants and ledgers.

Pattern: Repository + Data Mapper. TenantStore is the repository;
_row_to_tenant / _row_to_ledger are the mappers. Service code never touches
SQL directly and never sees a raw Row.

Every method takes an optional `conn`. Pass the Connection from
Database.transaction() to run inside the caller's transaction; omit it to run
in a short transaction of its own (see core/database.py).

Ledger creation:
  create_tenant() inserts the ledger row in the same transaction as the tenant
  row. This is the persistence-side equivalent of an AFTER INSERT trigger: the
  service never inserts ledgers itself, it only verifies one exists before
  committing.

Uniqueness:
  code and email are unique among non-deleted tenants. The service checks
  first, inside its transaction, and the partial unique indexes below back
  that check up: two transactions that both pass the check still cannot both
  commit. ledgers.tenant_id is unique outright.

Security: all queries use bound parameters. No f-strings in SQL.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import Column, ForeignKey, Index, Integer, Numeric, String, Table, func, select
from sqlalchemy.engine import Connection

from core.database import Database, metadata
from tenants.models import Ledger, Tenant

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_tenants = Table(
    "tenants",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("code", String(32), nullable=False),
    Column("name", String(200), nullable=False),
    Column("email", String(256), nullable=False),
    Column("phone", String(64)),
    Column("country", String(64)),
    Column("address", String(512)),
    Column("default_currency", String(3), nullable=False, server_default="EGP"),
    Column("minimum_balance", Numeric(18, 2), nullable=False, server_default="0"),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32)),
    Column("deleted_at", String(32)),
)

Index(
    "uq_tenants_code_live",
    _tenants.c.code,
    unique=True,
    sqlite_where=_tenants.c.deleted_at.is_(None),
    postgresql_where=_tenants.c.deleted_at.is_(None),
)
Index(
    "uq_tenants_email_live",
    _tenants.c.email,
    unique=True,
    sqlite_where=_tenants.c.deleted_at.is_(None),
    postgresql_where=_tenants.c.deleted_at.is_(None),
)

_ledgers = Table(
    "ledgers",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("tenant_id", Integer, ForeignKey("tenants.id"), nullable=False, unique=True),
    Column("currency", String(3), nullable=False),
    Column("created_at", String(32), nullable=False),
)

_live = _tenants.c.deleted_at.is_(None)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class TenantStore:
    """Repository for Tenant and Ledger entities.

    Usage:
        store = TenantStore(db)
        with db.transaction() as conn:
            tenant_id = store.create_tenant(Tenant(code="ACME", name="Acme", email="ops@acme.test"), conn=conn)
            ledger = store.get_ledger(tenant_id, conn=conn)
    """

    def __init__(self, db: Database) -> None:
        self.db = db
        metadata.create_all(db.engine)

    # ------------------------------------------------------------------
    # Tenant queries
    # ------------------------------------------------------------------

    def get_by_id(self, tenant_id: int, conn: Connection | None = None) -> Tenant | None:
        """Look up a non-deleted tenant by primary key."""
        with self.db.connect(conn) as c:
            row = c.execute(_tenants.select().where((_tenants.c.id == tenant_id) & _live)).fetchone()
        return _row_to_tenant(row) if row is not None else None

    def get_by_code(self, code: str, conn: Connection | None = None) -> Tenant | None:
        with self.db.connect(conn) as c:
            row = c.execute(_tenants.select().where((_tenants.c.code == code) & _live)).fetchone()
        return _row_to_tenant(row) if row is not None else None

    def get_by_email(self, email: str, conn: Connection | None = None) -> Tenant | None:
        """Look up by email. Callers pass the lowercase-normalized address."""
        with self.db.connect(conn) as c:
            row = c.execute(_tenants.select().where((_tenants.c.email == email) & _live)).fetchone()
        return _row_to_tenant(row) if row is not None else None

    def list_tenants(self, include_inactive: bool = False, conn: Connection | None = None) -> list[Tenant]:
        """Return non-deleted tenants, newest first. Inactive ones only when asked."""
        query = _tenants.select().where(_live)
        if not include_inactive:
            query = query.where(_tenants.c.is_active == 1)
        query = query.order_by(_tenants.c.created_at.desc(), _tenants.c.id.desc())
        with self.db.connect(conn) as c:
            rows = c.execute(query).fetchall()
        return [_row_to_tenant(r) for r in rows]

    def create_tenant(self, tenant: Tenant, conn: Connection | None = None) -> int:
        """Insert a tenant and its ledger in one transaction; return the tenant ID.

        Raises sqlalchemy.exc.IntegrityError if the code or email is already
        used by a non-deleted tenant. Either both rows are written or neither.
        """
        now = _now_iso()
        with self.db.connect(conn) as c:
            result = c.execute(
                _tenants.insert().values(
                    code=tenant.code,
                    name=tenant.name,
                    email=tenant.email,
                    phone=tenant.phone,
                    country=tenant.country,
                    address=tenant.address,
                    default_currency=tenant.default_currency,
                    minimum_balance=tenant.minimum_balance,
                    is_active=1 if tenant.is_active else 0,
                    created_at=now,
                )
            )
            tenant_id = result.inserted_primary_key[0]
            c.execute(
                _ledgers.insert().values(
                    tenant_id=tenant_id,
                    currency=tenant.default_currency,
                    created_at=now,
                )
            )
        return tenant_id

    def update_tenant(self, tenant_id: int, conn: Connection | None = None, **fields) -> bool:
        """Update mutable fields on a non-deleted tenant (e.g. is_active, name).

        Returns True if a row was updated, False if tenant_id was not found.
        """
        if "is_active" in fields:
            fields["is_active"] = 1 if fields["is_active"] else 0
        fields["updated_at"] = _now_iso()
        with self.db.connect(conn) as c:
            result = c.execute(_tenants.update().where((_tenants.c.id == tenant_id) & _live).values(**fields))
        return result.rowcount > 0

    def soft_delete_tenant(self, tenant_id: int, conn: Connection | None = None) -> bool:
        """Stamp deleted_at. The row stays for audit but disappears from every lookup."""
        with self.db.connect(conn) as c:
            result = c.execute(
                _tenants.update().where((_tenants.c.id == tenant_id) & _live).values(deleted_at=_now_iso())
            )
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Ledger queries
    # ------------------------------------------------------------------

    def get_ledger(self, tenant_id: int, conn: Connection | None = None) -> Ledger | None:
        with self.db.connect(conn) as c:
            row = c.execute(_ledgers.select().where(_ledgers.c.tenant_id == tenant_id)).fetchone()
        return _row_to_ledger(row) if row is not None else None

    def count_ledgers(self, conn: Connection | None = None) -> int:
        with self.db.connect(conn) as c:
            result = c.execute(select(func.count()).select_from(_ledgers)).scalar()
        return result or 0


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_tenant(row) -> Tenant:
    return Tenant(
        id=row.id,
        code=row.code,
        name=row.name,
        email=row.email,
        phone=row.phone,
        country=row.country,
        address=row.address,
        default_currency=row.default_currency,
        minimum_balance=Decimal(str(row.minimum_balance)),
        is_active=bool(row.is_active),
        created_at=row.created_at,
        deleted_at=row.deleted_at,
    )


def _row_to_ledger(row) -> Ledger:
    return Ledger(
        id=row.id,
        tenant_id=row.tenant_id,
        currency=row.currency,
        created_at=row.created_at,
    )
