"""Resolved-tenant lookup."""

from __future__ import annotations

from fastapi import APIRouter

from commerce_api.dependencies import TenantDep
from commerce_api.schemas import TenantResponse

router = APIRouter(prefix="/tenant", tags=["tenant"])


@router.get("", response_model=TenantResponse)
async def get_current_tenant(tenant: TenantDep) -> TenantResponse:
    """Public snapshot of the tenant addressed by the request host or slug header."""
    return TenantResponse.model_validate(tenant)
