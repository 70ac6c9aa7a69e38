"""tenants/ -- Tenant (company) and ledger management for TenantGuard.

Layer rule: tenants/ imports from core/ and from auth/errors, auth/models and
auth/policy only. It does NOT import from api/ or auth/service.
api/ imports from tenants/, not the other way around.
"""
