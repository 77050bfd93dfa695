"""Connected-account onboarding for tenant owners."""

from __future__ import annotations

import logging
from typing import Any

from commerce_core.models.tenant import ConnectStatus
from commerce_core.state.repository import TenantRepository
from commerce_core.state.tables import TenantTable
from sqlalchemy.ext.asyncio import AsyncSession

from commerce_api.config import APISettings
from commerce_api.errors import BadRequestError, NotFoundError
from commerce_api.services.checkout_service import tenant_client_url
from commerce_api.services.connect_reconciler import ConnectReconciler
from commerce_api.services.stripe_gateway import StripeGateway
from commerce_api.services.tenant_directory import TenantDirectory

logger = logging.getLogger(__name__)


class ConnectService:
    """Onboarding and on-demand status refresh of a tenant's connected account."""

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

    @staticmethod
    def _status_body(tenant: TenantTable) -> dict[str, Any]:
        return {
            "connect_status": tenant.connect_status,
            "charges_enabled": tenant.charges_enabled,
            "payouts_enabled": tenant.payouts_enabled,
            "has_account": bool(tenant.external_connect_account_id),
        }

    async def status(self) -> dict[str, Any]:
        """Return capability flags, refreshing from the provider while pending."""
        tenant = await self._tenant()
        if (
            tenant.connect_status == ConnectStatus.PENDING.value
            and tenant.external_connect_account_id
            and self._settings.stripe_configured
        ):
            snapshot = await self._gateway.retrieve_account(tenant.external_connect_account_id)
            reconciler = ConnectReconciler(self._session, self._directory)
            if await reconciler.refresh_from_snapshot(tenant, snapshot):
                await self._session.refresh(tenant)
        return self._status_body(tenant)

    async def onboard(self, *, actor_email: str) -> str:
        """Ensure a connected account exists and return an onboarding link."""
        if not self._settings.stripe_configured:
            raise BadRequestError("Payments are not configured")
        tenant = await self._tenant()
        account_id = tenant.external_connect_account_id
        slug, custom_domain = tenant.slug, tenant.custom_domain
        if not account_id:
            account_id = await self._gateway.create_connect_account(
                email=tenant.billing_email or actor_email,
                tenant_id=tenant.id,
            )
            await TenantRepository(self._session).update_connect(
                tenant.id,
                charges_enabled=False,
                payouts_enabled=False,
                connect_status=ConnectStatus.PENDING.value,
                account_id=account_id,
            )
            await self._session.commit()
            await self._directory.invalidate_tenant(slug, custom_domain)
            logger.info("Created connected account %s for tenant %s", account_id, self._tenant_id)

        base_url = tenant_client_url(tenant, self._settings)
        return await self._gateway.create_account_link(
            account_id=account_id,
            refresh_url=f"{base_url}/finance/payouts?refresh=true",
            return_url=f"{base_url}/finance/payouts?connected=true",
        )

    async def dashboard(self) -> str:
        """Return a sign-in link to the provider's dashboard for the connected account."""
        if not self._settings.stripe_configured:
            raise BadRequestError("Payments are not configured")
        tenant = await self._tenant()
        if not tenant.external_connect_account_id:
            raise BadRequestError("No connected account found")
        return await self._gateway.create_login_link(tenant.external_connect_account_id)
