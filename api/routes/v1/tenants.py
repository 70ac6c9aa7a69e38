"""
api/routes/v1/tenants.py -- Tenant (company) endpoints.

Routes:
  POST /api/v1/tenants        -- create tenant + ledger atomically (super admin)
  GET  /api/v1/tenants        -- list tenants newest first (super admin)
  GET  /api/v1/tenants/{id}   -- one tenant (super admin, or any member of that tenant)
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request

from api.models import LedgerResponse, TenantCreate, TenantCreatedResponse, TenantResponse
from auth import policy
from auth.dependencies import get_current_claims, require_super_admin
from auth.errors import Forbidden
from auth.models import TokenClaims
from tenants.models import CreateTenantCommand
from tenants.service import TenantService

router = APIRouter()


@router.post("/tenants", response_model=TenantCreatedResponse, status_code=201)
def create_tenant(
    request: Request,
    body: TenantCreate,
    claims: TokenClaims = Depends(get_current_claims),
) -> TenantCreatedResponse:
    service: TenantService = request.app.state.tenant_service
    tenant, ledger = service.create_tenant(
        claims,
        CreateTenantCommand(
            code=body.code,
            name=body.name,
            email=body.email,
            default_currency=body.default_currency,
            minimum_balance=body.minimum_balance,
            phone=body.phone,
            country=body.country,
            address=body.address,
        ),
    )
    return TenantCreatedResponse(tenant=TenantResponse.from_tenant(tenant), ledger=LedgerResponse.from_ledger(ledger))


@router.get("/tenants", response_model=list[TenantResponse])
def list_tenants(
    request: Request,
    include_inactive: bool = Query(default=False),
    claims: TokenClaims = Depends(require_super_admin),
) -> list[TenantResponse]:
    service: TenantService = request.app.state.tenant_service
    return [TenantResponse.from_tenant(t) for t in service.list_all(include_inactive=include_inactive)]


@router.get("/tenants/{tenant_id}", response_model=TenantResponse)
def get_tenant(
    request: Request,
    tenant_id: int,
    claims: TokenClaims = Depends(get_current_claims),
) -> TenantResponse:
    if not (policy.is_super_admin(claims) or policy.belongs_to_tenant(claims, tenant_id)):
        raise Forbidden("cross_tenant", "You can only view your own tenant.")
    service: TenantService = request.app.state.tenant_service
    return TenantResponse.from_tenant(service.get_by_id(tenant_id))
