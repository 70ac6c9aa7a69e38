"""auth/ -- Identity, tokens, authorization and lockout for TenantGuard.

Layer rule: auth/ imports from core/ and, for the tenant foreign key and
tenant lookups in auth/service.py, from tenants/store. It does NOT import
from api/. api/ imports from auth/, not the other way around.
"""
