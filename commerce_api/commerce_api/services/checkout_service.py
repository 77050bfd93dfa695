"""Course checkout orchestration.

Validates a purchase, then takes one of two paths:

* **Free path** -- every requested course costs 0.  Enrollments are created
  and the matching cart rows removed in one transaction; no payment exists.
* **Paid path** -- at least one course has a price.  All requested courses,
  including zero-priced ones, go through a single pending payment with one
  item per course.  A hosted session is opened on the tenant's connected
  account with the platform fee attached, and settlement happens later
  when the provider confirms payment.

All preconditions are checked before any row is written.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Literal

from commerce_core.billing.plans import calculate_platform_fee
from commerce_core.models.tenant import TenantSnapshot
from commerce_core.models.user import UserSnapshot
from commerce_core.state.repository import (
    CartRepository,
    CourseRepository,
    EnrollmentRepository,
    PaymentRepository,
    TenantRepository,
)
from commerce_core.state.tables import CourseTable, TenantTable
from sqlalchemy.ext.asyncio import AsyncSession

from commerce_api.config import APISettings
from commerce_api.errors import BadRequestError, NotFoundError, PaymentProviderError
from commerce_api.services.stripe_gateway import StripeGateway

logger = logging.getLogger(__name__)

_PUBLISHED = "published"


@dataclass(frozen=True, slots=True)
class CheckoutResult:
    """Outcome of a checkout request."""

    kind: Literal["free", "paid"]
    status: Literal["completed", "pending"]
    course_ids: list[str] = field(default_factory=list)
    payment_id: str | None = None
    session_id: str | None = None
    redirect_url: str | None = None


def tenant_client_url(tenant: TenantSnapshot | TenantTable, settings: APISettings) -> str:
    """Public base URL of a tenant's storefront."""
    host = tenant.custom_domain or f"{tenant.slug}.{settings.base_domain}"
    return f"{settings.client_scheme}://{host}"


class CheckoutService:
    """Checkout operations for one buyer in one tenant.

    Parameters
    ----------
    session:
        Active database session.  The service commits its own writes.
    settings:
        API settings (Stripe configuration, URLs).
    gateway:
        Outbound payment-provider facade.
    tenant:
        Resolved request tenant.
    user:
        Authenticated buyer.
    """

    def __init__(
        self,
        session: AsyncSession,
        settings: APISettings,
        gateway: StripeGateway,
        *,
        tenant: TenantSnapshot,
        user: UserSnapshot,
    ) -> None:
        self._session = session
        self._settings = settings
        self._gateway = gateway
        self._tenant = tenant
        self._user = user

    async def checkout(self, course_ids: list[str]) -> CheckoutResult:
        """Validate and start a purchase of *course_ids*.

        Raises
        ------
        BadRequestError
            Payments not enabled, empty or duplicate selection, unavailable
            course, mixed currencies, or an existing enrollment.
        NotFoundError
            The tenant no longer exists.
        PaymentProviderError
            The provider failed to open the hosted session.  The pending
            payment is marked failed.
        """
        tenant = await self._load_tenant()
        courses = await self._validate(tenant, course_ids)

        if all(course.price == 0 for course in courses):
            return await self._complete_free(courses)
        return await self._start_paid(tenant, courses)

    # ------------------------------------------------------------------
    # Preconditions
    # ------------------------------------------------------------------

    async def _load_tenant(self) -> TenantTable:
        row = await TenantRepository(self._session).get(self._tenant.id)
        if row is None:
            raise NotFoundError("Tenant not found")
        return row

    async def _validate(self, tenant: TenantTable, course_ids: list[str]) -> list[CourseTable]:
        if not self._settings.stripe_configured:
            raise BadRequestError("Payments are not configured")
        if not tenant.external_connect_account_id or not tenant.charges_enabled:
            raise BadRequestError("This academy is not set up to accept payments yet")
        if not course_ids:
            raise BadRequestError("No courses selected")
        if len(set(course_ids)) != len(course_ids):
            raise BadRequestError("Duplicate courses in selection")

        courses = await CourseRepository(self._session, tenant_id=tenant.id).get_many(course_ids)
        if len(courses) != len(course_ids) or any(c.status != _PUBLISHED for c in courses):
            raise BadRequestError("Some courses are not available")

        currencies = {c.currency.lower() for c in courses}
        if len(currencies) > 1:
            raise BadRequestError("Courses in one checkout must share a currency")

        enrolled = await EnrollmentRepository(self._session, tenant_id=tenant.id).enrolled_course_ids(
            self._user.id, course_ids
        )
        if enrolled:
            raise BadRequestError("You are already enrolled in some of these courses")
        return courses

    # ------------------------------------------------------------------
    # Free path
    # ------------------------------------------------------------------

    async def _complete_free(self, courses: list[CourseTable]) -> CheckoutResult:
        enrollments = EnrollmentRepository(self._session, tenant_id=self._tenant.id)
        ids = [c.id for c in courses]
        for course in courses:
            await enrollments.enroll(self._user.id, course.id, price=0, currency=course.currency.lower())
        await CartRepository(self._session, tenant_id=self._tenant.id).remove_courses(self._user.id, ids)
        await self._session.commit()

        logger.info("Free enrollment of user %s in %d course(s) of tenant %s", self._user.id, len(ids), self._tenant.id)
        return CheckoutResult(kind="free", status="completed", course_ids=ids)

    # ------------------------------------------------------------------
    # Paid path
    # ------------------------------------------------------------------

    async def _start_paid(self, tenant: TenantTable, courses: list[CourseTable]) -> CheckoutResult:
        currency = courses[0].currency.lower()
        amount = sum(c.price for c in courses)
        platform_fee = calculate_platform_fee(amount, tenant.commission_rate)
        ids = [c.id for c in courses]

        payments = PaymentRepository(self._session, tenant_id=tenant.id)
        payment = await payments.create(
            user_id=self._user.id,
            amount=amount,
            platform_fee=platform_fee,
            currency=currency,
            items=[(c.id, c.price, c.currency.lower()) for c in courses],
        )
        payment_id = payment.id
        # The pending payment must survive a provider failure.
        await self._session.commit()

        # Provider metadata values are capped at 500 characters; the course
        # list lives on the payment row.
        metadata = {
            "payment_id": payment_id,
            "tenant_id": tenant.id,
            "user_id": self._user.id,
        }
        base_url = tenant_client_url(tenant, self._settings)
        line_items = [
            {
                "price_data": {
                    "currency": currency,
                    "product_data": {"name": c.title},
                    "unit_amount": c.price,
                },
                "quantity": 1,
            }
            for c in courses
            if c.price > 0
        ]

        try:
            hosted = await self._gateway.create_course_checkout(
                connect_account_id=tenant.external_connect_account_id or "",
                line_items=line_items,
                application_fee=platform_fee,
                metadata=metadata,
                success_url=f"{base_url}/checkout/success?session_id={{CHECKOUT_SESSION_ID}}",
                cancel_url=f"{base_url}/courses",
                customer_email=self._user.email,
            )
        except PaymentProviderError:
            await payments.mark_failed(payment_id)
            await self._session.commit()
            logger.warning("Payment %s marked failed after provider error", payment_id)
            raise

        await payments.attach_checkout_session(payment_id, hosted.id, {**metadata, "course_ids": ids})
        await self._session.commit()

        logger.info(
            "Opened checkout %s for payment %s (amount=%d %s, fee=%d)",
            hosted.id,
            payment_id,
            amount,
            currency,
            platform_fee,
        )
        return CheckoutResult(
            kind="paid",
            status="pending",
            course_ids=ids,
            payment_id=payment_id,
            session_id=hosted.id,
            redirect_url=hosted.url,
        )

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    async def enrollment_status(self, checkout_session_id: str) -> dict[str, object]:
        """Report settlement progress of the buyer's checkout session.

        Raises
        ------
        NotFoundError
            No payment of this buyer in this tenant has that session id.
        """
        payment = await PaymentRepository(self._session, tenant_id=self._tenant.id).get_by_checkout_session(
            checkout_session_id, user_id=self._user.id
        )
        if payment is None:
            raise NotFoundError("Payment not found")
        count = await EnrollmentRepository(self._session, tenant_id=self._tenant.id).count_for_payment(payment.id)
        return {
            "status": "completed" if count > 0 else "pending",
            "payment_status": payment.status,
            "enrollment_count": count,
        }
