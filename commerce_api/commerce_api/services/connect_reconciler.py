"""Connected-account capability reconciliation.

Account snapshots are correlated by the connected-account id, never by
tenant metadata.  The three derived fields are a pure function of the
snapshot, so reprocessing the same snapshot rewrites identical values.
"""

from __future__ import annotations

import logging

from commerce_core.billing.events import AccountUpdated
from commerce_core.models.tenant import ConnectStatus, derive_connect_status
from commerce_core.state.repository import TenantRepository
from commerce_core.state.tables import TenantTable
from sqlalchemy.ext.asyncio import AsyncSession

from commerce_api.services.stripe_gateway import AccountSnapshot
from commerce_api.services.tenant_directory import TenantDirectory

logger = logging.getLogger(__name__)


class ConnectReconciler:
    """Write connected-account capability flags onto tenants.

    Parameters
    ----------
    session:
        Active database session.  Writes are committed before the cache is
        invalidated.
    directory:
        Tenant directory whose entries are dropped after a write.
    """

    def __init__(self, session: AsyncSession, directory: TenantDirectory) -> None:
        self._session = session
        self._directory = directory

    async def reconcile(self, event: AccountUpdated) -> str:
        """Apply an account snapshot.  Returns ``updated`` or ``ignored``."""
        tenant = await TenantRepository(self._session).get_by_connect_account(event.account_id)
        if tenant is None:
            logger.warning("Account update %s for unknown connected account %s", event.event_id, event.account_id)
            return "ignored"
        await self.write_capabilities(
            tenant,
            charges_enabled=event.charges_enabled,
            payouts_enabled=event.payouts_enabled,
            disabled_reason=event.disabled_reason,
        )
        return "updated"

    async def refresh_from_snapshot(self, tenant: TenantTable, snapshot: AccountSnapshot) -> bool:
        """Apply a provider snapshot fetched on demand.  Returns ``True`` if anything changed."""
        status = derive_connect_status(
            charges_enabled=snapshot.charges_enabled,
            payouts_enabled=snapshot.payouts_enabled,
            disabled_reason=snapshot.disabled_reason,
        )
        if (
            tenant.charges_enabled == snapshot.charges_enabled
            and tenant.payouts_enabled == snapshot.payouts_enabled
            and tenant.connect_status == status.value
        ):
            return False
        await self.write_capabilities(
            tenant,
            charges_enabled=snapshot.charges_enabled,
            payouts_enabled=snapshot.payouts_enabled,
            disabled_reason=snapshot.disabled_reason,
        )
        return True

    async def write_capabilities(
        self,
        tenant: TenantTable,
        *,
        charges_enabled: bool,
        payouts_enabled: bool,
        disabled_reason: str | None,
    ) -> ConnectStatus:
        status = derive_connect_status(
            charges_enabled=charges_enabled,
            payouts_enabled=payouts_enabled,
            disabled_reason=disabled_reason,
        )
        slug, custom_domain, tenant_id = tenant.slug, tenant.custom_domain, tenant.id
        await TenantRepository(self._session).update_connect(
            tenant_id,
            charges_enabled=charges_enabled,
            payouts_enabled=payouts_enabled,
            connect_status=status.value,
        )
        await self._session.commit()
        await self._directory.invalidate_tenant(slug, custom_domain)
        logger.info(
            "Tenant %s connect status %s (charges=%s, payouts=%s)",
            tenant_id,
            status.value,
            charges_enabled,
            payouts_enabled,
        )
        return status
