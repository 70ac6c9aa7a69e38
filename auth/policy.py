"""
auth/policy.py -- Pure authorization predicates over verified token claims.

Nothing here touches storage or raises. Workflows in auth/service.py and
tenants/service.py call these and raise Forbidden themselves, so every rule
lives in one place and is trivially unit-testable.

Rules:
  Tenant creation  -- super-admin only.
  User creation    -- super-admin for any tenant; company-admin for their own
                      tenant only, even when the other tenant exists and is active.
  Password set     -- super-admin for anyone; the subject themself; or a
                      company-admin of the subject's tenant, unless the
                      subject holds SUPER_ADMIN.
  Super admins     -- never belong to a tenant.
  Role assignment  -- only a super-admin may hand out SUPER_ADMIN.

Layer rule: no imports from api/ or tenants/.
"""

from __future__ import annotations

from collections.abc import Sequence

from auth.models import COMPANY_ADMIN, SUPER_ADMIN, TokenClaims, User


def has_role(claims: TokenClaims, role: str) -> bool:
    return role in claims.roles


def is_super_admin(claims: TokenClaims) -> bool:
    return has_role(claims, SUPER_ADMIN)


def is_company_admin(claims: TokenClaims) -> bool:
    return has_role(claims, COMPANY_ADMIN)


def belongs_to_tenant(claims: TokenClaims, tenant_id: int | None) -> bool:
    """Exact tenant match. Claims without a tenant never belong to a concrete tenant."""
    if claims.tenant_id is None or tenant_id is None:
        return False
    return claims.tenant_id == tenant_id


def can_create_tenant(claims: TokenClaims) -> bool:
    return is_super_admin(claims)


def can_create_user(claims: TokenClaims, tenant_id: int) -> bool:
    if is_super_admin(claims):
        return True
    return is_company_admin(claims) and belongs_to_tenant(claims, tenant_id)


def can_set_password(claims: TokenClaims, target: User, target_roles: Sequence[str] = ()) -> bool:
    """target_roles are the target's stored roles. A SUPER_ADMIN target is off limits to company admins."""
    if is_super_admin(claims):
        return True
    if target.id is not None and claims.user_id == target.id:
        return True
    if SUPER_ADMIN in target_roles:
        return False
    return is_company_admin(claims) and belongs_to_tenant(claims, target.tenant_id)


def can_assign_role(claims: TokenClaims, role: str) -> bool:
    if role == SUPER_ADMIN:
        return is_super_admin(claims)
    return True
