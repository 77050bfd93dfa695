"""Platform subscription management for tenant owners."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from commerce_api.dependencies import (
    DirectoryDep,
    EffectiveTenantDep,
    GatewayDep,
    SessionDep,
    SettingsDep,
)
from commerce_api.middleware.rbac import Permission, require_permission
from commerce_api.schemas import (
    MessageResponse,
    PlanResponse,
    RedirectResponse,
    StartSubscriptionRequest,
    SubscriptionResponse,
)
from commerce_api.services.access_gate import AccessContext
from commerce_api.services.subscription_service import SubscriptionService, list_plans

router = APIRouter(prefix="/subscription", tags=["subscription"])

_require_manage = require_permission(Permission.MANAGE_SUBSCRIPTION)


def _service(
    session: SessionDep,
    settings: SettingsDep,
    gateway: GatewayDep,
    directory: DirectoryDep,
    tenant_id: EffectiveTenantDep,
    _access: AccessContext = Depends(_require_manage),
) -> SubscriptionService:
    return SubscriptionService(session, settings, gateway, directory, tenant_id=tenant_id)


@router.get("", response_model=SubscriptionResponse)
async def get_subscription(service: SubscriptionService = Depends(_service)) -> SubscriptionResponse:
    return SubscriptionResponse.model_validate(await service.get_subscription())


@router.get("/plans", response_model=list[PlanResponse])
async def get_plans(_access: AccessContext = Depends(_require_manage)) -> list[PlanResponse]:
    return [PlanResponse.model_validate(p) for p in list_plans()]


@router.post("", response_model=RedirectResponse)
async def start_subscription(
    body: StartSubscriptionRequest,
    service: SubscriptionService = Depends(_service),
    access: AccessContext = Depends(_require_manage),
) -> RedirectResponse:
    """Open a hosted subscription checkout with a trial."""
    url = await service.start_subscription(body.plan, actor_email=access.user.email)
    return RedirectResponse(url=url)


@router.post("/portal", response_model=RedirectResponse)
async def open_billing_portal(service: SubscriptionService = Depends(_service)) -> RedirectResponse:
    return RedirectResponse(url=await service.create_portal())


@router.post("/cancel", response_model=MessageResponse)
async def cancel_subscription(service: SubscriptionService = Depends(_service)) -> MessageResponse:
    """Cancel at period end.  The final state arrives by webhook."""
    await service.cancel()
    return MessageResponse(message="Subscription will be canceled at the end of the billing period")
