"""Course checkout endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from commerce_api.dependencies import GatewayDep, SessionDep, SettingsDep, TenantDep
from commerce_api.middleware.rbac import Permission, require_permission
from commerce_api.schemas import CheckoutRequest, CheckoutResponse, EnrollmentStatusResponse
from commerce_api.services.access_gate import AccessContext
from commerce_api.services.checkout_service import CheckoutService

router = APIRouter(prefix="/checkout", tags=["checkout"])


@router.post("/session", response_model=CheckoutResponse)
async def create_checkout_session(
    body: CheckoutRequest,
    session: SessionDep,
    settings: SettingsDep,
    gateway: GatewayDep,
    tenant: TenantDep,
    access: AccessContext = Depends(require_permission(Permission.PURCHASE_COURSES)),
) -> CheckoutResponse:
    """Start a purchase.

    Free selections complete immediately; paid selections return the
    hosted checkout URL.
    """
    service = CheckoutService(session, settings, gateway, tenant=tenant, user=access.user)
    result = await service.checkout(body.course_ids)
    return CheckoutResponse(
        kind=result.kind,
        status=result.status,
        course_ids=result.course_ids,
        payment_id=result.payment_id,
        session_id=result.session_id,
        url=result.redirect_url,
    )


@router.get("/enrollment-status", response_model=EnrollmentStatusResponse)
async def get_enrollment_status(
    session: SessionDep,
    settings: SettingsDep,
    gateway: GatewayDep,
    tenant: TenantDep,
    session_id: str = Query(..., min_length=1, description="Hosted checkout session id."),
    access: AccessContext = Depends(require_permission(Permission.PURCHASE_COURSES)),
) -> EnrollmentStatusResponse:
    """Poll whether the buyer's checkout has settled into enrollments."""
    service = CheckoutService(session, settings, gateway, tenant=tenant, user=access.user)
    return EnrollmentStatusResponse.model_validate(await service.enrollment_status(session_id))
