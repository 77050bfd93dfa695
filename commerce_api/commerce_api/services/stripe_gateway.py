"""Outbound Stripe calls used by checkout, subscriptions, and Connect.

The Stripe SDK is synchronous; each call runs in a worker thread so a slow
provider never blocks the event loop.  Every ``stripe.StripeError`` is
re-raised as :class:`PaymentProviderError`.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

import stripe

from commerce_api.config import APISettings
from commerce_api.errors import PaymentProviderError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class HostedSession:
    """A hosted payment page opened at the provider."""

    id: str
    url: str


@dataclass(frozen=True, slots=True)
class AccountSnapshot:
    """Capability flags of a connected account."""

    account_id: str
    charges_enabled: bool
    payouts_enabled: bool
    disabled_reason: str | None


class StripeGateway:
    """Thin async facade over the Stripe SDK.

    Parameters
    ----------
    settings:
        API settings containing the Stripe secret key.
    """

    def __init__(self, settings: APISettings) -> None:
        self._settings = settings

    def _get_stripe(self) -> Any:
        """Configure and return the Stripe module."""
        stripe.api_key = self._settings.stripe_secret_key.get_secret_value()
        stripe.max_network_retries = 2
        return stripe

    async def _call(self, operation: str, fn: Callable[[], T]) -> T:
        try:
            return await asyncio.to_thread(fn)
        except stripe.StripeError as exc:
            logger.error("Stripe %s failed: %s", operation, exc)
            raise PaymentProviderError(f"Payment provider request failed ({operation})") from exc

    # ------------------------------------------------------------------
    # Course checkout (connected account)
    # ------------------------------------------------------------------

    async def create_course_checkout(
        self,
        *,
        connect_account_id: str,
        line_items: list[dict[str, Any]],
        application_fee: int,
        metadata: dict[str, str],
        success_url: str,
        cancel_url: str,
        customer_email: str | None = None,
    ) -> HostedSession:
        """Open a one-time payment session on the tenant's connected account.

        Parameters
        ----------
        connect_account_id:
            Connected account that receives the funds.
        line_items:
            Provider line items.  Must not be empty.
        application_fee:
            Platform fee in minor units, retained by the platform.
        metadata:
            Correlation fields echoed back on ``checkout.session.completed``.
        success_url, cancel_url:
            Buyer redirect targets.
        customer_email:
            Pre-filled buyer email.
        """
        client = self._get_stripe()
        params: dict[str, Any] = {
            "mode": "payment",
            "line_items": line_items,
            "payment_intent_data": {"application_fee_amount": application_fee},
            "metadata": metadata,
            "success_url": success_url,
            "cancel_url": cancel_url,
            "stripe_account": connect_account_id,
        }
        if customer_email:
            params["customer_email"] = customer_email
        session = await self._call("checkout.create", lambda: client.checkout.Session.create(**params))
        return HostedSession(id=session["id"], url=session["url"])

    # ------------------------------------------------------------------
    # Platform subscription
    # ------------------------------------------------------------------

    async def create_customer(self, *, email: str | None, name: str, tenant_id: str) -> str:
        client = self._get_stripe()
        customer = await self._call(
            "customer.create",
            lambda: client.Customer.create(email=email, name=name, metadata={"tenant_id": tenant_id}),
        )
        return customer["id"]

    async def create_subscription_checkout(
        self,
        *,
        customer_id: str,
        price_id: str,
        trial_period_days: int,
        metadata: dict[str, str],
        success_url: str,
        cancel_url: str,
    ) -> HostedSession:
        """Open a subscription checkout whose subscription carries *metadata*."""
        client = self._get_stripe()
        params: dict[str, Any] = {
            "mode": "subscription",
            "customer": customer_id,
            "line_items": [{"price": price_id, "quantity": 1}],
            "subscription_data": {"trial_period_days": trial_period_days, "metadata": metadata},
            "metadata": metadata,
            "success_url": success_url,
            "cancel_url": cancel_url,
        }
        session = await self._call("subscription_checkout.create", lambda: client.checkout.Session.create(**params))
        return HostedSession(id=session["id"], url=session["url"])

    async def create_portal_session(self, *, customer_id: str, return_url: str) -> str:
        client = self._get_stripe()
        session = await self._call(
            "billing_portal.create",
            lambda: client.billing_portal.Session.create(customer=customer_id, return_url=return_url),
        )
        return session["url"]

    async def cancel_at_period_end(self, subscription_id: str) -> None:
        client = self._get_stripe()
        await self._call(
            "subscription.cancel",
            lambda: client.Subscription.modify(subscription_id, cancel_at_period_end=True),
        )

    # ------------------------------------------------------------------
    # Connect onboarding
    # ------------------------------------------------------------------

    async def create_connect_account(self, *, email: str | None, tenant_id: str) -> str:
        client = self._get_stripe()
        account = await self._call(
            "account.create",
            lambda: client.Account.create(
                type="express",
                email=email,
                metadata={"tenant_id": tenant_id},
                capabilities={
                    "card_payments": {"requested": True},
                    "transfers": {"requested": True},
                },
            ),
        )
        return account["id"]

    async def create_account_link(self, *, account_id: str, refresh_url: str, return_url: str) -> str:
        client = self._get_stripe()
        link = await self._call(
            "account_link.create",
            lambda: client.AccountLink.create(
                account=account_id,
                refresh_url=refresh_url,
                return_url=return_url,
                type="account_onboarding",
            ),
        )
        return link["url"]

    async def retrieve_account(self, account_id: str) -> AccountSnapshot:
        client = self._get_stripe()
        account = await self._call("account.retrieve", lambda: client.Account.retrieve(account_id))
        requirements = account.get("requirements") or {}
        return AccountSnapshot(
            account_id=account["id"],
            charges_enabled=bool(account.get("charges_enabled")),
            payouts_enabled=bool(account.get("payouts_enabled")),
            disabled_reason=requirements.get("disabled_reason"),
        )

    async def create_login_link(self, account_id: str) -> str:
        """Return a single-use sign-in URL for the connected account's dashboard."""
        client = self._get_stripe()
        link = await self._call("login_link.create", lambda: client.Account.create_login_link(account_id))
        return link["url"]
