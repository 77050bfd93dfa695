"""Owner-facing management of a tenant's platform subscription.

Opening, managing, and cancelling happen at the provider; the resulting
state only lands on the tenant through subscription webhooks.
"""

from __future__ import annotations

import logging
from typing import Any

from commerce_core.billing.plans import PLAN_CONFIG, Plan
from commerce_core.billing.statuses import LIVE_STATUSES, SubscriptionStatus
from commerce_core.state.repository import TenantRepository
from commerce_core.state.tables import TenantTable
from sqlalchemy.ext.asyncio import AsyncSession

from commerce_api.config import APISettings
from commerce_api.errors import BadRequestError, NotFoundError
from commerce_api.services.checkout_service import tenant_client_url
from commerce_api.services.stripe_gateway import StripeGateway
from commerce_api.services.tenant_directory import TenantDirectory

logger = logging.getLogger(__name__)


def list_plans() -> list[dict[str, Any]]:
    """Static plan catalogue."""
    return [
        {
            "id": cfg.plan.value,
            "name": cfg.label,
            "monthly_price": cfg.monthly_price,
            "commission_rate": cfg.commission_rate,
            "storage_gb": cfg.storage_gb,
            "ai_generation": cfg.ai_generation,
        }
        for cfg in PLAN_CONFIG.values()
    ]


class SubscriptionService:
    """Subscription operations for one tenant.

    Parameters
    ----------
    session:
        Active database session.
    settings:
        API settings (Stripe configuration, trial length, URLs).
    gateway:
        Outbound payment-provider facade.
    directory:
        Tenant directory, invalidated after tenant writes.
    tenant_id:
        Tenant whose subscription is managed.
    """

    def __init__(
        self,
        session: AsyncSession,
        settings: APISettings,
        gateway: StripeGateway,
        directory: TenantDirectory,
        *,
        tenant_id: str,
    ) -> None:
        self._session = session
        self._settings = settings
        self._gateway = gateway
        self._directory = directory
        self._tenant_id = tenant_id

    async def _tenant(self) -> TenantTable:
        row = await TenantRepository(self._session).get(self._tenant_id)
        if row is None:
            raise NotFoundError("Tenant not found")
        return row

    def _require_stripe(self) -> None:
        if not self._settings.stripe_configured:
            raise BadRequestError("Payments are not configured")

    async def get_subscription(self) -> dict[str, Any]:
        tenant = await self._tenant()
        return {
            "plan": tenant.plan,
            "subscription_status": tenant.subscription_status,
            "trial_ends_at": tenant.trial_ends_at.isoformat() if tenant.trial_ends_at else None,
            "commission_rate": tenant.commission_rate,
            "has_subscription": bool(tenant.external_subscription_id),
        }

    async def start_subscription(self, plan: Plan, *, actor_email: str) -> str:
        """Open a subscription checkout for *plan* and return its URL.

        Raises
        ------
        BadRequestError
            Already subscribed, payments unconfigured, or no price for plan.
        """
        tenant = await self._tenant()
        if (
            tenant.external_subscription_id
            and tenant.subscription_status is not None
            and SubscriptionStatus(tenant.subscription_status) in LIVE_STATUSES
        ):
            raise BadRequestError("You already have an active subscription")
        self._require_stripe()

        price_id = self._settings.price_table().price_for_plan(plan)
        if not price_id:
            raise BadRequestError("Invalid plan")

        customer_id = tenant.external_customer_id
        if not customer_id:
            email = tenant.billing_email or actor_email
            customer_id = await self._gateway.create_customer(email=email, name=tenant.name, tenant_id=tenant.id)
            slug, custom_domain = tenant.slug, tenant.custom_domain
            await TenantRepository(self._session).set_customer_id(tenant.id, customer_id)
            await self._session.commit()
            await self._directory.invalidate_tenant(slug, custom_domain)
            logger.info("Created billing customer %s for tenant %s", customer_id, tenant.id)

        base_url = tenant_client_url(tenant, self._settings)
        hosted = await self._gateway.create_subscription_checkout(
            customer_id=customer_id,
            price_id=price_id,
            trial_period_days=self._settings.trial_period_days,
            metadata={"tenant_id": tenant.id, "plan": plan.value},
            success_url=f"{base_url}/?subscription=success",
            cancel_url=f"{base_url}/finance/subscription?canceled=true",
        )
        return hosted.url

    async def create_portal(self) -> str:
        tenant = await self._tenant()
        self._require_stripe()
        if not tenant.external_customer_id:
            raise BadRequestError("No billing account found")
        return await self._gateway.create_portal_session(
            customer_id=tenant.external_customer_id,
            return_url=f"{tenant_client_url(tenant, self._settings)}/finance/subscription",
        )

    async def cancel(self) -> None:
        """Cancel at period end.  The canceled state arrives by webhook."""
        tenant = await self._tenant()
        self._require_stripe()
        if not tenant.external_subscription_id:
            raise BadRequestError("No active subscription")
        await self._gateway.cancel_at_period_end(tenant.external_subscription_id)
        logger.info("Requested cancellation of subscription %s for tenant %s", tenant.external_subscription_id, tenant.id)
