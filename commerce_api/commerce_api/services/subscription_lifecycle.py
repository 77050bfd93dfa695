"""Platform subscription state machine driven by provider events.

Each created/updated/deleted subscription event moves a tenant between
``trialing``, ``active``, ``past_due``, ``canceled`` and ``unpaid``.  The
tenant update and its ``subscription_history`` row are written in one
transaction; the history row's unique event id is the idempotency ledger,
so a concurrent duplicate delivery fails on insert and rolls back whole.

Events are applied in arrival order.  There is no sequence check against
the tenant row, so a stale redelivery that arrives after a newer event
overwrites it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from commerce_core.billing.events import SubscriptionChange
from commerce_core.billing.plans import PriceTable, commission_rate_for
from commerce_core.billing.statuses import SubscriptionStatus, map_provider_status
from commerce_core.state.repository import SubscriptionHistoryRepository, TenantRepository
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from commerce_api.services.tenant_directory import TenantDirectory

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TransitionOutcome:
    """Result of applying one subscription event."""

    status: str
    tenant_id: str | None = None
    previous_plan: str | None = None
    new_plan: str | None = None
    previous_status: str | None = None
    new_status: str | None = None


class SubscriptionLifecycle:
    """Apply subscription events to tenants.

    Parameters
    ----------
    session:
        Active database session.  ``apply`` owns the transaction.
    price_table:
        Provider price id to plan mapping.
    directory:
        Tenant directory whose cache entries are dropped after a change.
    """

    def __init__(
        self,
        session: AsyncSession,
        price_table: PriceTable,
        directory: TenantDirectory,
    ) -> None:
        self._session = session
        self._price_table = price_table
        self._directory = directory

    async def apply(self, event: SubscriptionChange) -> TransitionOutcome:
        """Apply *event* and return ``applied``, ``duplicate`` or ``ignored``."""
        tenant = await TenantRepository(self._session).get(event.tenant_id)
        if tenant is None:
            logger.error(
                "Subscription event %s references unknown tenant %s",
                event.event_id,
                event.tenant_id,
            )
            await self._session.rollback()
            return TransitionOutcome(status="ignored", tenant_id=event.tenant_id)

        slug, custom_domain = tenant.slug, tenant.custom_domain
        previous_plan = tenant.plan
        previous_status = tenant.subscription_status
        commission_rate = tenant.commission_rate

        if event.is_deletion:
            new_plan = previous_plan
            new_status = SubscriptionStatus.CANCELED.value
        else:
            new_plan, commission_rate = self._resolve_plan(event, previous_plan, tenant.commission_rate)
            new_status = map_provider_status(event.provider_status).value

        tenants = TenantRepository(self._session)
        history = SubscriptionHistoryRepository(self._session)
        try:
            if event.is_deletion:
                await tenants.set_subscription_status(tenant.id, new_status)
            else:
                await tenants.apply_subscription(
                    tenant.id,
                    subscription_id=event.subscription_id,
                    plan=new_plan,
                    status=new_status,
                    commission_rate=commission_rate,
                    trial_ends_at=event.trial_end,
                    customer_id=event.customer_id,
                )
            await history.append(
                tenant_id=tenant.id,
                external_event_id=event.event_id,
                external_subscription_id=event.subscription_id,
                event_type=event.ledger_event_type,
                previous_plan=previous_plan,
                new_plan=new_plan,
                previous_status=previous_status,
                new_status=new_status,
                raw_event_payload=event.payload,
            )
            await self._session.commit()
        except IntegrityError:
            await self._session.rollback()
            logger.info("Subscription event %s already applied; skipping", event.event_id)
            return TransitionOutcome(status="duplicate", tenant_id=event.tenant_id)
        except Exception:
            await self._session.rollback()
            raise

        await self._directory.invalidate_tenant(slug, custom_domain)
        logger.info(
            "Tenant %s subscription %s: plan %s -> %s, status %s -> %s",
            event.tenant_id,
            event.ledger_event_type,
            previous_plan,
            new_plan,
            previous_status,
            new_status,
        )
        return TransitionOutcome(
            status="applied",
            tenant_id=event.tenant_id,
            previous_plan=previous_plan,
            new_plan=new_plan,
            previous_status=previous_status,
            new_status=new_status,
        )

    def _resolve_plan(
        self,
        event: SubscriptionChange,
        current_plan: str | None,
        current_rate: int,
    ) -> tuple[str | None, int]:
        plan = self._price_table.plan_for_price(event.price_id)
        if plan is None:
            logger.warning(
                "Subscription event %s carries unknown price %s; keeping plan %s",
                event.event_id,
                event.price_id,
                current_plan,
            )
            return current_plan, current_rate
        return plan.value, commission_rate_for(plan)
