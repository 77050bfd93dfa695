"""Tests for commerce_api/commerce_api/services/connect_reconciler.py and connect_service.py

Covers:
- Connect status derivation from account snapshots
- Cache invalidation after reconciliation
- Status refresh, onboarding and dashboard login links for owners
"""

from __future__ import annotations

import pytest
from commerce_core.billing.events import AccountUpdated
from commerce_core.state.repository import TenantRepository

from commerce_api.errors import BadRequestError
from commerce_api.services.connect_reconciler import ConnectReconciler
from commerce_api.services.connect_service import ConnectService
from commerce_api.services.stripe_gateway import AccountSnapshot
from commerce_api.services.tenant_directory import slug_cache_key


def _account(account_id: str, *, charges: bool, payouts: bool, reason: str | None = None) -> AccountUpdated:
    return AccountUpdated(
        event_id="evt_acct",
        account_id=account_id,
        charges_enabled=charges,
        payouts_enabled=payouts,
        disabled_reason=reason,
    )


class TestConnectReconciler:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("charges", "payouts", "reason", "expected"),
        [
            (True, True, None, "active"),
            (True, False, "requirements.past_due", "restricted"),
            (False, False, None, "pending"),
        ],
    )
    async def test_derives_status(
        self, session_factory, directory, db_session, seed, charges, payouts, reason, expected
    ) -> None:
        tenant = await seed.tenant("acme", charges_enabled=False, payouts_enabled=False, connect_status="pending")

        async with session_factory() as session:
            result = await ConnectReconciler(session, directory).reconcile(
                _account("acct_acme", charges=charges, payouts=payouts, reason=reason)
            )

        assert result == "updated"
        row = await TenantRepository(db_session).get(tenant.id)
        assert row.connect_status == expected
        assert row.charges_enabled is charges
        assert row.payouts_enabled is payouts

    @pytest.mark.asyncio
    async def test_unknown_account_is_ignored(self, session_factory, directory) -> None:
        async with session_factory() as session:
            result = await ConnectReconciler(session, directory).reconcile(
                _account("acct_ghost", charges=True, payouts=True)
            )
        assert result == "ignored"

    @pytest.mark.asyncio
    async def test_invalidates_cache(self, session_factory, directory, kv_store, seed) -> None:
        await seed.tenant("acme", charges_enabled=False, connect_status="pending")
        await directory.get_by_slug("acme")

        async with session_factory() as session:
            await ConnectReconciler(session, directory).reconcile(_account("acct_acme", charges=True, payouts=True))

        assert await kv_store.get(slug_cache_key("acme")) is None

    @pytest.mark.asyncio
    async def test_refresh_without_change(self, session_factory, directory, seed) -> None:
        tenant = await seed.tenant("acme")
        snapshot = AccountSnapshot("acct_acme", charges_enabled=True, payouts_enabled=True, disabled_reason=None)

        async with session_factory() as session:
            row = await TenantRepository(session).get(tenant.id)
            changed = await ConnectReconciler(session, directory).refresh_from_snapshot(row, snapshot)

        assert changed is False


class TestConnectService:
    @pytest.mark.asyncio
    async def test_status_refreshes_while_pending(self, db_session, settings, mock_gateway, directory, seed) -> None:
        tenant = await seed.tenant("acme", charges_enabled=False, payouts_enabled=False, connect_status="pending")
        mock_gateway.retrieve_account.return_value = AccountSnapshot(
            "acct_acme", charges_enabled=True, payouts_enabled=True, disabled_reason=None
        )
        service = ConnectService(db_session, settings, mock_gateway, directory, tenant_id=tenant.id)

        body = await service.status()

        assert body == {
            "connect_status": "active",
            "charges_enabled": True,
            "payouts_enabled": True,
            "has_account": True,
        }
        mock_gateway.retrieve_account.assert_awaited_once_with("acct_acme")

    @pytest.mark.asyncio
    async def test_status_does_not_call_provider_when_active(
        self, db_session, settings, mock_gateway, directory, seed
    ) -> None:
        tenant = await seed.tenant("acme")
        service = ConnectService(db_session, settings, mock_gateway, directory, tenant_id=tenant.id)

        assert (await service.status())["connect_status"] == "active"
        mock_gateway.retrieve_account.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_onboard_creates_account(self, db_session, settings, mock_gateway, directory, seed) -> None:
        tenant = await seed.tenant(
            "acme",
            external_connect_account_id=None,
            charges_enabled=False,
            payouts_enabled=False,
            connect_status="not_started",
        )
        service = ConnectService(db_session, settings, mock_gateway, directory, tenant_id=tenant.id)

        url = await service.onboard(actor_email="owner@acme.test")

        assert url == "https://connect.stripe.test/onboard"
        mock_gateway.create_connect_account.assert_awaited_once_with(email="owner@acme.test", tenant_id=tenant.id)
        link_kwargs = mock_gateway.create_account_link.await_args.kwargs
        assert link_kwargs["account_id"] == "acct_new"
        assert link_kwargs["return_url"] == "https://acme.academy.test/finance/payouts?connected=true"

        db_session.expire_all()
        row = await TenantRepository(db_session).get(tenant.id)
        assert row.external_connect_account_id == "acct_new"
        assert row.connect_status == "pending"

    @pytest.mark.asyncio
    async def test_onboard_reuses_existing_account(self, db_session, settings, mock_gateway, directory, seed) -> None:
        tenant = await seed.tenant("acme", connect_status="pending", charges_enabled=False)
        service = ConnectService(db_session, settings, mock_gateway, directory, tenant_id=tenant.id)

        await service.onboard(actor_email="owner@acme.test")

        mock_gateway.create_connect_account.assert_not_awaited()
        assert mock_gateway.create_account_link.await_args.kwargs["account_id"] == "acct_acme"

    @pytest.mark.asyncio
    async def test_onboard_requires_stripe(self, db_session, settings_factory, mock_gateway, directory, seed) -> None:
        tenant = await seed.tenant("acme")
        service = ConnectService(
            db_session, settings_factory(stripe_secret_key=""), mock_gateway, directory, tenant_id=tenant.id
        )

        with pytest.raises(BadRequestError):
            await service.onboard(actor_email="owner@acme.test")

    @pytest.mark.asyncio
    async def test_dashboard_link_for_connected_account(
        self, db_session, settings, mock_gateway, directory, seed
    ) -> None:
        tenant = await seed.tenant("acme")
        service = ConnectService(db_session, settings, mock_gateway, directory, tenant_id=tenant.id)

        assert await service.dashboard() == "https://connect.stripe.test/dashboard"
        mock_gateway.create_login_link.assert_awaited_once_with("acct_acme")

    @pytest.mark.asyncio
    async def test_dashboard_requires_account(self, db_session, settings, mock_gateway, directory, seed) -> None:
        tenant = await seed.tenant("acme", external_connect_account_id=None, connect_status="not_started")
        service = ConnectService(db_session, settings, mock_gateway, directory, tenant_id=tenant.id)

        with pytest.raises(BadRequestError, match="No connected account"):
            await service.dashboard()
        mock_gateway.create_login_link.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_dashboard_requires_stripe(self, db_session, settings_factory, mock_gateway, directory, seed) -> None:
        tenant = await seed.tenant("acme")
        service = ConnectService(
            db_session, settings_factory(stripe_secret_key=""), mock_gateway, directory, tenant_id=tenant.id
        )

        with pytest.raises(BadRequestError):
            await service.dashboard()
