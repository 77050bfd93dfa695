"""Settlement of confirmed course payments into enrollments.

One transaction per completed checkout:

1. Move the payment from pending to succeeded (guarded in SQL).
2. Read back the payment's captured items.
3. Insert one enrollment per item, ignoring (user, course) duplicates.
4. Delete the buyer's cart rows for the settled courses.

Replays of the same completion find the payment already succeeded and
re-run steps 2-4, which are no-ops by construction.  A crash before commit
leaves the payment pending, so the provider's redelivery re-settles it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from commerce_core.billing.events import CheckoutCompleted
from commerce_core.state.repository import CartRepository, EnrollmentRepository, PaymentRepository
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SettlementOutcome:
    """Result of finalizing one checkout."""

    status: str
    payment_id: str
    enrolled: int = 0
    cart_rows_removed: int = 0


class SettlementService:
    """Finalize course payments confirmed by the provider.

    Parameters
    ----------
    session:
        Active database session.  ``settle`` commits or rolls back the
        whole transaction itself.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def settle(self, event: CheckoutCompleted) -> SettlementOutcome:
        """Apply a completed checkout.

        Returns a ``SettlementOutcome`` whose ``status`` is ``settled``,
        ``already_settled``, or ``rejected``.  Rejections are logged and
        leave no state change.
        """
        try:
            outcome = await self._settle(event)
        except Exception:
            await self._session.rollback()
            raise
        if outcome.status == "rejected":
            await self._session.rollback()
        else:
            await self._session.commit()
        return outcome

    async def _settle(self, event: CheckoutCompleted) -> SettlementOutcome:
        payments = PaymentRepository(self._session, tenant_id=event.tenant_id)

        payment = await payments.get(event.payment_id)
        if payment is None:
            logger.error(
                "Checkout %s references payment %s unknown to tenant %s",
                event.checkout_session_id,
                event.payment_id,
                event.tenant_id,
            )
            return SettlementOutcome(status="rejected", payment_id=event.payment_id)
        if payment.user_id != event.user_id:
            logger.error(
                "Checkout %s user %s does not own payment %s",
                event.checkout_session_id,
                event.user_id,
                event.payment_id,
            )
            return SettlementOutcome(status="rejected", payment_id=event.payment_id)

        transitioned = await payments.mark_succeeded(
            event.payment_id,
            payment_intent_id=event.payment_intent_id,
            paid_at=datetime.now(UTC),
        )
        if not transitioned:
            await self._session.refresh(payment)
            if payment.status != "succeeded":
                logger.error(
                    "Checkout %s completed for payment %s in status %s; not settling",
                    event.checkout_session_id,
                    event.payment_id,
                    payment.status,
                )
                return SettlementOutcome(status="rejected", payment_id=event.payment_id)

        items = await payments.list_items(event.payment_id)
        enrollments = EnrollmentRepository(self._session, tenant_id=event.tenant_id)
        enrolled = 0
        for item in items:
            created = await enrollments.enroll(
                event.user_id,
                item.course_id,
                price=item.price_at_purchase,
                currency=item.currency_at_purchase,
                payment_id=event.payment_id,
            )
            enrolled += int(created)

        settled_course_ids = [item.course_id for item in items] or event.course_ids
        removed = await CartRepository(self._session, tenant_id=event.tenant_id).remove_courses(
            event.user_id, settled_course_ids
        )

        status = "settled" if transitioned else "already_settled"
        logger.info(
            "Payment %s %s: %d new enrollment(s), %d cart row(s) removed",
            event.payment_id,
            status,
            enrolled,
            removed,
        )
        return SettlementOutcome(
            status=status,
            payment_id=event.payment_id,
            enrolled=enrolled,
            cart_rows_removed=removed,
        )
