"""Tests for commerce_api/commerce_api/services/stripe_gateway.py

Covers:
- Course checkout on the connected account
- Subscription, customer, portal and cancel calls
- Connect account, account link and login link calls
- StripeError wrapping into PaymentProviderError
"""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
import stripe

from commerce_api.errors import PaymentProviderError
from commerce_api.services.stripe_gateway import AccountSnapshot, HostedSession, StripeGateway


@pytest.fixture
def sdk() -> MagicMock:
    return MagicMock()


@pytest.fixture
def gateway(settings, sdk):
    gw = StripeGateway(settings)
    patcher = patch.object(gw, "_get_stripe", return_value=sdk)
    patcher.start()
    yield gw
    patcher.stop()


class TestCourseCheckout:
    @pytest.mark.asyncio
    async def test_opens_session_on_connected_account(self, gateway, sdk) -> None:
        sdk.checkout.Session.create.return_value = {"id": "cs_1", "url": "https://pay.test/cs_1"}

        hosted = await gateway.create_course_checkout(
            connect_account_id="acct_1",
            line_items=[{"quantity": 1}],
            application_fee=150,
            metadata={"payment_id": "p1"},
            success_url="https://acme.test/ok",
            cancel_url="https://acme.test/cancel",
            customer_email="buyer@example.test",
        )

        assert hosted == HostedSession(id="cs_1", url="https://pay.test/cs_1")
        kwargs = sdk.checkout.Session.create.call_args.kwargs
        assert kwargs["mode"] == "payment"
        assert kwargs["stripe_account"] == "acct_1"
        assert kwargs["payment_intent_data"] == {"application_fee_amount": 150}
        assert kwargs["customer_email"] == "buyer@example.test"

    @pytest.mark.asyncio
    async def test_provider_error_is_wrapped(self, gateway, sdk) -> None:
        sdk.checkout.Session.create.side_effect = stripe.StripeError("card network down")

        with pytest.raises(PaymentProviderError) as exc_info:
            await gateway.create_course_checkout(
                connect_account_id="acct_1",
                line_items=[{"quantity": 1}],
                application_fee=0,
                metadata={},
                success_url="https://acme.test/ok",
                cancel_url="https://acme.test/cancel",
            )

        assert exc_info.value.status_code == 502
        assert exc_info.value.code == "PAYMENT_PROVIDER_ERROR"


class TestSubscriptionCalls:
    @pytest.mark.asyncio
    async def test_subscription_checkout_carries_metadata(self, gateway, sdk) -> None:
        sdk.checkout.Session.create.return_value = {"id": "cs_sub", "url": "https://pay.test/cs_sub"}
        metadata = {"tenant_id": "t1", "plan": "growth"}

        await gateway.create_subscription_checkout(
            customer_id="cus_1",
            price_id="price_growth",
            trial_period_days=7,
            metadata=metadata,
            success_url="https://acme.test/ok",
            cancel_url="https://acme.test/cancel",
        )

        kwargs = sdk.checkout.Session.create.call_args.kwargs
        assert kwargs["mode"] == "subscription"
        assert kwargs["line_items"] == [{"price": "price_growth", "quantity": 1}]
        assert kwargs["subscription_data"] == {"trial_period_days": 7, "metadata": metadata}

    @pytest.mark.asyncio
    async def test_cancel_at_period_end(self, gateway, sdk) -> None:
        await gateway.cancel_at_period_end("sub_1")
        sdk.Subscription.modify.assert_called_once_with("sub_1", cancel_at_period_end=True)

    @pytest.mark.asyncio
    async def test_create_customer(self, gateway, sdk) -> None:
        sdk.Customer.create.return_value = {"id": "cus_9"}
        assert await gateway.create_customer(email=None, name="Acme", tenant_id="t1") == "cus_9"
        assert sdk.Customer.create.call_args.kwargs["metadata"] == {"tenant_id": "t1"}


class TestConnectCalls:
    @pytest.mark.asyncio
    async def test_retrieve_account(self, gateway, sdk) -> None:
        sdk.Account.retrieve.return_value = {
            "id": "acct_1",
            "charges_enabled": True,
            "payouts_enabled": False,
            "requirements": {"disabled_reason": "requirements.past_due"},
        }

        snapshot = await gateway.retrieve_account("acct_1")

        assert snapshot == AccountSnapshot(
            account_id="acct_1",
            charges_enabled=True,
            payouts_enabled=False,
            disabled_reason="requirements.past_due",
        )

    @pytest.mark.asyncio
    async def test_account_link(self, gateway, sdk) -> None:
        sdk.AccountLink.create.return_value = {"url": "https://connect.test/link"}

        url = await gateway.create_account_link(
            account_id="acct_1", refresh_url="https://acme.test/r", return_url="https://acme.test/done"
        )

        assert url == "https://connect.test/link"
        assert sdk.AccountLink.create.call_args.kwargs["type"] == "account_onboarding"

    @pytest.mark.asyncio
    async def test_login_link(self, gateway, sdk) -> None:
        sdk.Account.create_login_link.return_value = {"url": "https://connect.test/express"}

        assert await gateway.create_login_link("acct_1") == "https://connect.test/express"
        sdk.Account.create_login_link.assert_called_once_with("acct_1")


class TestConfiguration:
    def test_get_stripe_sets_api_key(self, settings) -> None:
        module = StripeGateway(settings)._get_stripe()
        assert module is stripe
        assert stripe.api_key == "sk_test_xxx"
