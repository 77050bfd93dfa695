"""Earnings reporting for tenant owners."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from commerce_api.dependencies import EffectiveTenantDep, SessionDep
from commerce_api.middleware.rbac import Permission, require_permission
from commerce_api.schemas import EarningsResponse
from commerce_api.services.access_gate import AccessContext
from commerce_api.services.revenue_service import RevenueService

router = APIRouter(prefix="/revenue", tags=["revenue"])


def _service(
    session: SessionDep,
    tenant_id: EffectiveTenantDep,
    _access: AccessContext = Depends(require_permission(Permission.VIEW_REVENUE)),
) -> RevenueService:
    return RevenueService(session, tenant_id=tenant_id)


@router.get("/earnings", response_model=EarningsResponse)
async def get_earnings(service: RevenueService = Depends(_service)) -> EarningsResponse:
    return EarningsResponse.model_validate(await service.earnings())
