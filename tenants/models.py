"""
tenants/models.py -- Domain dataclasses for tenants and their ledgers.

Pure data containers. Business rules (code format, uniqueness, the
one-ledger-per-tenant invariant) live in tenants/service.py and the unique
indexes declared in tenants/store.py.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal


@dataclass
class Tenant:
    """An isolated customer organization (a company).

    code is uppercase alphanumerics plus underscore, 3-32 chars. code and
    email are unique among tenants whose deleted_at is None. email is stored
    lowercase.

    id is None before the record is written to the database.
    """

    code: str
    name: str
    email: str
    default_currency: str = "EGP"
    minimum_balance: Decimal = Decimal("0")
    phone: str | None = None
    country: str | None = None
    address: str | None = None
    is_active: bool = True
    id: int | None = None
    created_at: str | None = None
    deleted_at: str | None = None


@dataclass
class Ledger:
    """The single balance-tracking record (wallet) attached 1:1 to a tenant."""

    tenant_id: int
    currency: str
    id: int | None = None
    created_at: str | None = None


@dataclass(frozen=True)
class CreateTenantCommand:
    code: str
    name: str
    email: str
    default_currency: str = "EGP"
    minimum_balance: Decimal = Decimal("0")
    phone: str | None = None
    country: str | None = None
    address: str | None = None
