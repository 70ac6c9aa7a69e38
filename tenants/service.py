"""
tenants/service.py -- Tenant creation and read projections.

create_tenant() is all-or-nothing: the tenant row and its ledger are written
in one Database.transaction(). The ledger insert belongs to the persistence
layer (TenantStore.create_tenant); this service only verifies that a ledger
exists before the transaction commits and raises Fatal otherwise, which
rolls the tenant insert back with it.

Uniqueness of code and email is checked inside the same transaction and
backed by partial unique indexes, so a racing duplicate still ends as
Conflict rather than a second tenant.

Layer rule: imports auth.errors / auth.models / auth.policy only. Never auth.service.
"""

from __future__ import annotations

import logging
import re
from decimal import Decimal, InvalidOperation

from sqlalchemy.exc import IntegrityError

from auth import policy
from auth.errors import Conflict, Fatal, Forbidden, NotFound, ValidationFailed, storage_errors
from auth.models import TokenClaims
from core.database import Database
from tenants.models import CreateTenantCommand, Ledger, Tenant
from tenants.store import TenantStore

logger = logging.getLogger("tenantguard.tenants")

_CODE_RE = re.compile(r"^[A-Z0-9_]{3,32}$")
_CURRENCY_RE = re.compile(r"^[A-Z]{3}$")
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

NAME_MIN, NAME_MAX = 2, 200
EMAIL_MAX = 256
PHONE_MAX = 64
COUNTRY_MAX = 64
ADDRESS_MAX = 512


def _optional(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _validate(cmd: CreateTenantCommand) -> Tenant:
    """Normalise and check every field; raise ValidationFailed listing all problems."""
    errors: dict[str, str] = {}

    code = (cmd.code or "").strip()
    if not _CODE_RE.match(code):
        errors["code"] = "must be 3-32 characters of A-Z, 0-9 or underscore"

    name = (cmd.name or "").strip()
    if not NAME_MIN <= len(name) <= NAME_MAX:
        errors["name"] = f"must be between {NAME_MIN} and {NAME_MAX} characters"

    email = (cmd.email or "").strip().lower()
    if not email or len(email) > EMAIL_MAX or not _EMAIL_RE.match(email):
        errors["email"] = "is not a valid email address"

    phone = _optional(cmd.phone)
    if phone is not None and len(phone) > PHONE_MAX:
        errors["phone"] = f"must be at most {PHONE_MAX} characters"
    country = _optional(cmd.country)
    if country is not None and len(country) > COUNTRY_MAX:
        errors["country"] = f"must be at most {COUNTRY_MAX} characters"
    address = _optional(cmd.address)
    if address is not None and len(address) > ADDRESS_MAX:
        errors["address"] = f"must be at most {ADDRESS_MAX} characters"

    currency = (cmd.default_currency or "").strip()
    if not _CURRENCY_RE.match(currency):
        errors["default_currency"] = "must be a 3-letter uppercase ISO code"

    try:
        minimum_balance = Decimal(str(cmd.minimum_balance))
        if not minimum_balance.is_finite() or minimum_balance < 0:
            errors["minimum_balance"] = "must be zero or positive"
    except InvalidOperation:
        minimum_balance = Decimal("0")
        errors["minimum_balance"] = "must be a number"

    if errors:
        raise ValidationFailed(errors)

    return Tenant(
        code=code,
        name=name,
        email=email,
        phone=phone,
        country=country,
        address=address,
        default_currency=currency,
        minimum_balance=minimum_balance,
    )


class TenantService:
    """Creates tenants (with their ledger) and serves tenant lookups.

    Usage:
        service = TenantService(db, tenant_store)
        tenant, ledger = service.create_tenant(claims, CreateTenantCommand(code="ACME", name="Acme", email="a@x.com"))
    """

    def __init__(self, db: Database, tenant_store: TenantStore) -> None:
        self._db = db
        self._tenants = tenant_store

    @storage_errors("Tenant code or email already exists.")
    def create_tenant(self, requester: TokenClaims, cmd: CreateTenantCommand) -> tuple[Tenant, Ledger]:
        if not policy.can_create_tenant(requester):
            raise Forbidden("insufficient_permissions", "Only a super admin can create tenants.")
        candidate = _validate(cmd)

        with self._db.transaction() as conn:
            if self._tenants.get_by_code(candidate.code, conn=conn) is not None:
                raise Conflict(f"Tenant code {candidate.code!r} already exists.")
            if self._tenants.get_by_email(candidate.email, conn=conn) is not None:
                raise Conflict("Tenant email already exists.")
            try:
                tenant_id = self._tenants.create_tenant(candidate, conn=conn)
            except IntegrityError as exc:
                raise Conflict("Tenant code or email already exists.") from exc
            ledger = self._tenants.get_ledger(tenant_id, conn=conn)
            if ledger is None:
                logger.error("No ledger was created for tenant %d; rolling back", tenant_id)
                raise Fatal("Tenant ledger was not created.")
            tenant = self._tenants.get_by_id(tenant_id, conn=conn)

        logger.info("Tenant %d (%s) created by user %d", tenant.id, tenant.code, requester.user_id)
        return tenant, ledger

    @storage_errors()
    def get_by_id(self, tenant_id: int) -> Tenant:
        tenant = self._tenants.get_by_id(tenant_id)
        if tenant is None:
            raise NotFound("tenant")
        return tenant

    @storage_errors()
    def is_active(self, tenant_id: int) -> bool:
        """False for inactive and for unknown or deleted tenants alike."""
        tenant = self._tenants.get_by_id(tenant_id)
        return tenant is not None and tenant.is_active

    @storage_errors()
    def list_all(self, include_inactive: bool = False) -> list[Tenant]:
        return self._tenants.list_tenants(include_inactive=include_inactive)
