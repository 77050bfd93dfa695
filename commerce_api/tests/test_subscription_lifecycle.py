"""Tests for commerce_api/commerce_api/services/subscription_lifecycle.py

Covers:
- Created, updated and deleted transitions of plan and status
- The subscription-history idempotency ledger
- Cache invalidation after commit
"""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
from commerce_core.billing.events import EventKind, SubscriptionChange
from commerce_core.billing.plans import Plan, PriceTable
from commerce_core.billing.statuses import ProviderSubscriptionStatus
from commerce_core.state.repository import SubscriptionHistoryRepository, TenantRepository

from commerce_api.services.subscription_lifecycle import SubscriptionLifecycle
from commerce_api.services.tenant_directory import slug_cache_key

_PRICES = PriceTable({Plan.STARTER: "price_starter", Plan.GROWTH: "price_growth", Plan.SCALE: "price_scale"})


def _change(
    tenant_id: str,
    *,
    event_id: str = "evt_1",
    kind: EventKind = EventKind.SUBSCRIPTION_UPDATED,
    status: ProviderSubscriptionStatus = ProviderSubscriptionStatus.ACTIVE,
    price_id: str | None = "price_growth",
    trial_end: datetime | None = None,
) -> SubscriptionChange:
    return SubscriptionChange(
        kind=kind,
        event_id=event_id,
        subscription_id="sub_1",
        tenant_id=tenant_id,
        provider_status=status,
        price_id=price_id,
        customer_id="cus_1",
        trial_end=trial_end,
        payload={"id": event_id},
    )


async def _apply(session_factory, directory, event: SubscriptionChange):
    async with session_factory() as session:
        return await SubscriptionLifecycle(session, _PRICES, directory).apply(event)


class TestApply:
    @pytest.mark.asyncio
    async def test_trial_then_upgrade(self, session_factory, directory, db_session, seed) -> None:
        tenant = await seed.tenant("acme")
        trial_end = datetime(2026, 11, 1, tzinfo=UTC)

        created = await _apply(
            session_factory,
            directory,
            _change(
                tenant.id,
                event_id="evt_created",
                kind=EventKind.SUBSCRIPTION_CREATED,
                status=ProviderSubscriptionStatus.TRIALING,
                price_id="price_starter",
                trial_end=trial_end,
            ),
        )
        assert created.status == "applied"
        assert created.new_plan == "starter"
        assert created.new_status == "trialing"

        upgraded = await _apply(session_factory, directory, _change(tenant.id, event_id="evt_upgrade"))
        assert upgraded.previous_plan == "starter"
        assert upgraded.new_plan == "growth"

        row = await TenantRepository(db_session).get(tenant.id)
        assert row.plan == "growth"
        assert row.subscription_status == "active"
        assert row.commission_rate == 2
        assert row.external_subscription_id == "sub_1"
        assert row.external_customer_id == "cus_1"

        history = await SubscriptionHistoryRepository(db_session).list_for_tenant(tenant.id)
        assert [h.event_type for h in history] == ["subscription.created", "subscription.updated"]
        assert history[1].previous_plan == "starter"
        assert history[1].new_plan == "growth"

    @pytest.mark.asyncio
    async def test_duplicate_event_is_noop(self, session_factory, directory, db_session, seed) -> None:
        tenant = await seed.tenant("acme")
        event = _change(tenant.id)

        assert (await _apply(session_factory, directory, event)).status == "applied"
        assert (await _apply(session_factory, directory, event)).status == "duplicate"

        history = await SubscriptionHistoryRepository(db_session).list_for_tenant(tenant.id)
        assert len(history) == 1

    @pytest.mark.asyncio
    async def test_deletion_keeps_plan(self, session_factory, directory, db_session, seed) -> None:
        tenant = await seed.tenant("acme")
        await _apply(session_factory, directory, _change(tenant.id, event_id="evt_1"))

        outcome = await _apply(
            session_factory,
            directory,
            _change(
                tenant.id,
                event_id="evt_2",
                kind=EventKind.SUBSCRIPTION_DELETED,
                status=ProviderSubscriptionStatus.CANCELED,
            ),
        )

        assert outcome.new_status == "canceled"
        row = await TenantRepository(db_session).get(tenant.id)
        assert row.subscription_status == "canceled"
        assert row.plan == "growth"
        assert row.commission_rate == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("provider_status", "expected"),
        [
            (ProviderSubscriptionStatus.PAST_DUE, "past_due"),
            (ProviderSubscriptionStatus.INCOMPLETE, "unpaid"),
            (ProviderSubscriptionStatus.PAUSED, "past_due"),
        ],
    )
    async def test_status_mapping(self, session_factory, directory, seed, provider_status, expected) -> None:
        tenant = await seed.tenant("acme")
        outcome = await _apply(session_factory, directory, _change(tenant.id, status=provider_status))
        assert outcome.new_status == expected

    @pytest.mark.asyncio
    async def test_unknown_price_keeps_plan_and_rate(self, session_factory, directory, db_session, seed) -> None:
        tenant = await seed.tenant("acme", plan="scale", commission_rate=0)

        outcome = await _apply(session_factory, directory, _change(tenant.id, price_id="price_legacy"))

        assert outcome.status == "applied"
        row = await TenantRepository(db_session).get(tenant.id)
        assert row.plan == "scale"
        assert row.commission_rate == 0

    @pytest.mark.asyncio
    async def test_unknown_tenant_is_ignored(self, session_factory, directory, db_session) -> None:
        outcome = await _apply(session_factory, directory, _change("ghost"))
        assert outcome.status == "ignored"
        assert not await SubscriptionHistoryRepository(db_session).has_event("evt_1")

    @pytest.mark.asyncio
    async def test_invalidates_tenant_cache(self, session_factory, directory, kv_store, seed) -> None:
        tenant = await seed.tenant("acme")
        await directory.get_by_slug("acme")
        assert await kv_store.get(slug_cache_key("acme")) is not None

        await _apply(session_factory, directory, _change(tenant.id))

        assert await kv_store.get(slug_cache_key("acme")) is None
        assert (await directory.get_by_slug("acme")).commission_rate == 2
