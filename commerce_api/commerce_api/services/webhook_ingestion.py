"""Verification, deduplication, and dispatch of provider webhooks.

Two channels arrive on separate endpoints, each signed with its own
secret:

* ``platform`` -- platform subscription events.
* ``connect`` -- connected-account and course-checkout events.

The signature is checked against the raw request bytes before anything is
parsed.  Verified events are classified into the closed ``WebhookEvent``
union and routed to exactly one handler.  Subscription events are first
checked against the ``subscription_history`` ledger; settlement and account
reconciliation are idempotent by construction and are not ledgered.

Once a delivery is verified it is always acknowledged: handler failures are
logged and reported in the response body, never as an error status, so a
single bad event cannot stall the provider's delivery queue.  A failed
subscription update writes no ledger row, so the provider's next
redelivery applies it.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import stripe
from commerce_core.billing.events import (
    AccountUpdated,
    CheckoutCompleted,
    MalformedEventError,
    SubscriptionChange,
    UnhandledEvent,
    WebhookChannel,
    WebhookEvent,
    parse_event,
)
from commerce_core.state.repository import SubscriptionHistoryRepository
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from commerce_api.config import APISettings
from commerce_api.errors import WebhookSignatureError
from commerce_api.services.connect_reconciler import ConnectReconciler
from commerce_api.services.settlement_service import SettlementService
from commerce_api.services.subscription_lifecycle import SubscriptionLifecycle
from commerce_api.services.tenant_directory import TenantDirectory

logger = logging.getLogger(__name__)


class WebhookIngestion:
    """Entry point for both webhook channels.

    Parameters
    ----------
    session_factory:
        Factory for the per-event database session.
    settings:
        API settings holding both webhook secrets and the price table.
    directory:
        Tenant directory handed to handlers that mutate tenants.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: APISettings,
        directory: TenantDirectory,
    ) -> None:
        self._session_factory = session_factory
        self._settings = settings
        self._directory = directory

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def _secret_for(self, channel: WebhookChannel) -> str:
        if channel == WebhookChannel.PLATFORM:
            return self._settings.stripe_webhook_secret.get_secret_value()
        return self._settings.stripe_connect_webhook_secret.get_secret_value()

    def verify(self, payload: bytes, signature: str | None, channel: WebhookChannel) -> None:
        """Check the provider signature over the raw *payload*.

        Raises
        ------
        WebhookSignatureError
            Missing header, unconfigured secret, stale timestamp, or
            signature mismatch.
        """
        if not signature:
            raise WebhookSignatureError("Missing Stripe signature")
        secret = self._secret_for(channel)
        if not secret:
            raise WebhookSignatureError(f"No webhook secret configured for the {channel.value} channel")
        try:
            stripe.WebhookSignature.verify_header(
                payload.decode("utf-8"),
                signature,
                secret,
                tolerance=self._settings.stripe_webhook_tolerance_seconds,
            )
        except (stripe.SignatureVerificationError, UnicodeDecodeError) as exc:
            raise WebhookSignatureError("Signature verification failed") from exc

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    async def ingest(self, payload: bytes, signature: str | None, channel: WebhookChannel) -> dict[str, Any]:
        """Verify and process one delivery.

        Returns the acknowledgement body.  Only signature failures raise.
        """
        try:
            self.verify(payload, signature, channel)
        except WebhookSignatureError as exc:
            logger.warning("Rejected %s webhook: %s", channel.value, exc.message)
            raise

        try:
            raw = json.loads(payload)
            if not isinstance(raw, dict):
                raise MalformedEventError(None, None, "event body is not an object")
            event = parse_event(raw, channel)
        except (MalformedEventError, ValueError) as exc:
            logger.error("Malformed %s webhook acknowledged without processing: %s", channel.value, exc)
            return {"received": True, "status": "malformed"}

        try:
            status = await self._dispatch(event)
        except Exception:
            logger.exception("Handler for %s event %s failed", event.kind, event.event_id)
            status = "error"
        return {"received": True, "event_id": event.event_id, "status": status}

    async def _dispatch(self, event: WebhookEvent) -> str:
        if isinstance(event, UnhandledEvent):
            logger.debug("Ignoring unhandled event type %s (%s)", event.event_type, event.event_id)
            return "ignored"

        async with self._session_factory() as session:
            if isinstance(event, SubscriptionChange):
                if await SubscriptionHistoryRepository(session).has_event(event.event_id):
                    logger.info("Subscription event %s already applied", event.event_id)
                    return "duplicate"
                lifecycle = SubscriptionLifecycle(session, self._settings.price_table(), self._directory)
                return (await lifecycle.apply(event)).status

            if isinstance(event, CheckoutCompleted):
                return (await SettlementService(session).settle(event)).status

            if isinstance(event, AccountUpdated):
                return await ConnectReconciler(session, self._directory).reconcile(event)

        raise TypeError(f"Unroutable event {type(event).__name__}")
