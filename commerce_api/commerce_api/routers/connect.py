"""Connected-account onboarding for tenant owners."""

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
from commerce_api.schemas import ConnectStatusResponse, RedirectResponse
from commerce_api.services.access_gate import AccessContext
from commerce_api.services.connect_service import ConnectService

router = APIRouter(prefix="/connect", tags=["connect"])

_require_payouts = require_permission(Permission.MANAGE_PAYOUTS)


def _service(
    session: SessionDep,
    settings: SettingsDep,
    gateway: GatewayDep,
    directory: DirectoryDep,
    tenant_id: EffectiveTenantDep,
    _access: AccessContext = Depends(_require_payouts),
) -> ConnectService:
    return ConnectService(session, settings, gateway, directory, tenant_id=tenant_id)


@router.get("/status", response_model=ConnectStatusResponse)
async def get_connect_status(service: ConnectService = Depends(_service)) -> ConnectStatusResponse:
    return ConnectStatusResponse.model_validate(await service.status())


@router.post("/onboard", response_model=RedirectResponse)
async def start_onboarding(
    service: ConnectService = Depends(_service),
    access: AccessContext = Depends(_require_payouts),
) -> RedirectResponse:
    """Create the connected account on first use and return an onboarding link."""
    url = await service.onboard(actor_email=access.user.email)
    return RedirectResponse(url=url)


@router.get("/dashboard", response_model=RedirectResponse)
async def open_dashboard(service: ConnectService = Depends(_service)) -> RedirectResponse:
    """Return a sign-in link to the connected account's payout dashboard."""
    return RedirectResponse(url=await service.dashboard())
