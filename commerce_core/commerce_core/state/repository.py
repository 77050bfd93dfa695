"""Repository classes providing access to the commerce state store.

Each repository takes an ``AsyncSession`` at construction time and operates
within the caller's transaction boundary.  All writes call ``session.flush()``
so that generated defaults are populated; the caller is responsible for
committing (``async with session.begin()`` or the ``get_session`` helper).

Tenant-scoped repositories take a ``tenant_id`` keyword and never read or
write rows belonging to another tenant.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from commerce_core.state.database import dialect_name
from commerce_core.state.tables import (
    CartItemTable,
    CourseTable,
    EnrollmentTable,
    PaymentItemTable,
    PaymentTable,
    SubscriptionHistoryTable,
    TenantTable,
    UserTable,
    new_id,
)

logger = logging.getLogger(__name__)


async def _dialect_insert_ignore(
    session: AsyncSession,
    table: Any,
    values: dict[str, Any],
    index_elements: list[str],
) -> Any:
    """Dialect-aware insert with ``ON CONFLICT DO NOTHING``.

    Parameters
    ----------
    session:
        The active async session.
    table:
        The SQLAlchemy table class to insert into.
    values:
        Column-value mapping for the row to insert.
    index_elements:
        Columns of the unique constraint used for conflict detection.

    Returns
    -------
    The execution result from ``session.execute()``.  ``rowcount`` is 1 when
    the row was inserted and 0 when it already existed.
    """
    stmt: Any
    if "postgresql" in dialect_name(session):
        from sqlalchemy.dialects.postgresql import insert as _pg_insert

        stmt = _pg_insert(table).values(**values)
    else:
        from sqlalchemy.dialects.sqlite import insert as _sqlite_insert

        stmt = _sqlite_insert(table).values(**values)
    stmt = stmt.on_conflict_do_nothing(index_elements=index_elements)
    return await session.execute(stmt)


# ---------------------------------------------------------------------------
# TenantRepository
# ---------------------------------------------------------------------------


class TenantRepository:
    """Lookup and mutation of tenant rows.  Not tenant-scoped."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, tenant_id: str) -> TenantTable | None:
        return await self._session.get(TenantTable, tenant_id)

    async def get_by_slug(self, slug: str) -> TenantTable | None:
        stmt = select(TenantTable).where(TenantTable.slug == slug)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_custom_domain(self, domain: str) -> TenantTable | None:
        stmt = select(TenantTable).where(func.lower(TenantTable.custom_domain) == domain.strip().lower())
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_connect_account(self, account_id: str) -> TenantTable | None:
        stmt = select(TenantTable).where(TenantTable.external_connect_account_id == account_id)
        result = await self._session.execute(stmt)
        return result.scalars().first()

    async def create(
        self,
        slug: str,
        name: str,
        *,
        custom_domain: str | None = None,
        commission_rate: int = 5,
        billing_email: str | None = None,
    ) -> TenantTable:
        row = TenantTable(
            id=new_id(),
            slug=slug,
            name=name,
            custom_domain=custom_domain,
            commission_rate=commission_rate,
            billing_email=billing_email,
        )
        self._session.add(row)
        await self._session.flush()
        return row

    async def apply_subscription(
        self,
        tenant_id: str,
        *,
        subscription_id: str,
        plan: str | None,
        status: str,
        commission_rate: int,
        trial_ends_at: datetime | None,
        customer_id: str | None = None,
    ) -> None:
        """Write the subscription-derived columns of a tenant."""
        values: dict[str, Any] = {
            "external_subscription_id": subscription_id,
            "plan": plan,
            "subscription_status": status,
            "commission_rate": commission_rate,
            "trial_ends_at": trial_ends_at,
        }
        if customer_id is not None:
            values["external_customer_id"] = customer_id
        stmt = update(TenantTable).where(TenantTable.id == tenant_id).values(**values)
        await self._session.execute(stmt)
        await self._session.flush()

    async def set_subscription_status(self, tenant_id: str, status: str) -> None:
        stmt = update(TenantTable).where(TenantTable.id == tenant_id).values(subscription_status=status)
        await self._session.execute(stmt)
        await self._session.flush()

    async def set_customer_id(self, tenant_id: str, customer_id: str) -> None:
        stmt = update(TenantTable).where(TenantTable.id == tenant_id).values(external_customer_id=customer_id)
        await self._session.execute(stmt)
        await self._session.flush()

    async def update_connect(
        self,
        tenant_id: str,
        *,
        charges_enabled: bool,
        payouts_enabled: bool,
        connect_status: str,
        account_id: str | None = None,
    ) -> None:
        """Write the connected-account capability columns of a tenant."""
        values: dict[str, Any] = {
            "charges_enabled": charges_enabled,
            "payouts_enabled": payouts_enabled,
            "connect_status": connect_status,
        }
        if account_id is not None:
            values["external_connect_account_id"] = account_id
        stmt = update(TenantTable).where(TenantTable.id == tenant_id).values(**values)
        await self._session.execute(stmt)
        await self._session.flush()


# ---------------------------------------------------------------------------
# UserRepository
# ---------------------------------------------------------------------------


class UserRepository:
    """Read access to users."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, user_id: str) -> UserTable | None:
        return await self._session.get(UserTable, user_id)


# ---------------------------------------------------------------------------
# CourseRepository
# ---------------------------------------------------------------------------


class CourseRepository:
    """Tenant-scoped course reads."""

    def __init__(self, session: AsyncSession, *, tenant_id: str) -> None:
        self._session = session
        self._tenant_id = tenant_id

    async def get_many(self, course_ids: Sequence[str]) -> list[CourseTable]:
        """Return the tenant's courses among *course_ids* in request order."""
        if not course_ids:
            return []
        stmt = select(CourseTable).where(
            CourseTable.tenant_id == self._tenant_id,
            CourseTable.id.in_(list(course_ids)),
        )
        result = await self._session.execute(stmt)
        by_id = {row.id: row for row in result.scalars().all()}
        return [by_id[cid] for cid in course_ids if cid in by_id]


# ---------------------------------------------------------------------------
# CartRepository
# ---------------------------------------------------------------------------


class CartRepository:
    """Tenant-scoped cart rows."""

    def __init__(self, session: AsyncSession, *, tenant_id: str) -> None:
        self._session = session
        self._tenant_id = tenant_id

    async def add(self, user_id: str, course_id: str) -> bool:
        result = await _dialect_insert_ignore(
            self._session,
            CartItemTable,
            values={
                "tenant_id": self._tenant_id,
                "user_id": user_id,
                "course_id": course_id,
                "created_at": datetime.now(UTC),
            },
            index_elements=["user_id", "course_id"],
        )
        await self._session.flush()
        return (result.rowcount or 0) > 0  # type: ignore[attr-defined]

    async def list_course_ids(self, user_id: str) -> list[str]:
        stmt = select(CartItemTable.course_id).where(
            CartItemTable.tenant_id == self._tenant_id,
            CartItemTable.user_id == user_id,
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def remove_courses(self, user_id: str, course_ids: Iterable[str]) -> int:
        """Delete the user's cart rows for *course_ids*.  Returns rows removed."""
        ids = list(course_ids)
        if not ids:
            return 0
        stmt = delete(CartItemTable).where(
            CartItemTable.tenant_id == self._tenant_id,
            CartItemTable.user_id == user_id,
            CartItemTable.course_id.in_(ids),
        )
        result = await self._session.execute(stmt)
        await self._session.flush()
        return result.rowcount or 0  # type: ignore[attr-defined]


# ---------------------------------------------------------------------------
# EnrollmentRepository
# ---------------------------------------------------------------------------


class EnrollmentRepository:
    """Tenant-scoped enrollments with insert-or-ignore semantics."""

    def __init__(self, session: AsyncSession, *, tenant_id: str) -> None:
        self._session = session
        self._tenant_id = tenant_id

    async def enrolled_course_ids(self, user_id: str, course_ids: Sequence[str]) -> set[str]:
        """Return the subset of *course_ids* the user is already enrolled in."""
        if not course_ids:
            return set()
        stmt = select(EnrollmentTable.course_id).where(
            EnrollmentTable.user_id == user_id,
            EnrollmentTable.course_id.in_(list(course_ids)),
        )
        result = await self._session.execute(stmt)
        return set(result.scalars().all())

    async def enroll(
        self,
        user_id: str,
        course_id: str,
        *,
        price: int,
        currency: str,
        payment_id: str | None = None,
    ) -> bool:
        """Insert an enrollment unless (user, course) already exists.

        Returns ``True`` when a new row was written.
        """
        result = await _dialect_insert_ignore(
            self._session,
            EnrollmentTable,
            values={
                "tenant_id": self._tenant_id,
                "user_id": user_id,
                "course_id": course_id,
                "payment_id": payment_id,
                "purchase_price": price,
                "purchase_currency": currency,
                "enrolled_at": datetime.now(UTC),
            },
            index_elements=["user_id", "course_id"],
        )
        await self._session.flush()
        return (result.rowcount or 0) > 0  # type: ignore[attr-defined]

    async def count_for_payment(self, payment_id: str) -> int:
        stmt = select(func.count(EnrollmentTable.id)).where(
            EnrollmentTable.tenant_id == self._tenant_id,
            EnrollmentTable.payment_id == payment_id,
        )
        result = await self._session.execute(stmt)
        return int(result.scalar_one())

    async def list_for_user(self, user_id: str) -> list[EnrollmentTable]:
        stmt = (
            select(EnrollmentTable)
            .where(
                EnrollmentTable.tenant_id == self._tenant_id,
                EnrollmentTable.user_id == user_id,
            )
            .order_by(EnrollmentTable.id)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())


# ---------------------------------------------------------------------------
# PaymentRepository
# ---------------------------------------------------------------------------


class PaymentRepository:
    """Tenant-scoped payments and their captured line items.

    Status transitions are guarded in SQL (``WHERE status = 'pending'``) so
    two concurrent writers cannot move a payment out of a terminal state.
    """

    def __init__(self, session: AsyncSession, *, tenant_id: str) -> None:
        self._session = session
        self._tenant_id = tenant_id

    async def create(
        self,
        *,
        user_id: str,
        amount: int,
        platform_fee: int,
        currency: str,
        items: Sequence[tuple[str, int, str]],
    ) -> PaymentTable:
        """Create a pending payment and one item per ``(course_id, price, currency)``."""
        payment = PaymentTable(
            id=new_id(),
            tenant_id=self._tenant_id,
            user_id=user_id,
            amount=amount,
            platform_fee=platform_fee,
            currency=currency,
            status="pending",
        )
        self._session.add(payment)
        await self._session.flush()
        for course_id, price, item_currency in items:
            self._session.add(
                PaymentItemTable(
                    payment_id=payment.id,
                    course_id=course_id,
                    price_at_purchase=price,
                    currency_at_purchase=item_currency,
                )
            )
        await self._session.flush()
        return payment

    async def get(self, payment_id: str) -> PaymentTable | None:
        stmt = select(PaymentTable).where(
            PaymentTable.id == payment_id,
            PaymentTable.tenant_id == self._tenant_id,
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_checkout_session(self, session_id: str, *, user_id: str) -> PaymentTable | None:
        stmt = select(PaymentTable).where(
            PaymentTable.external_checkout_session_id == session_id,
            PaymentTable.tenant_id == self._tenant_id,
            PaymentTable.user_id == user_id,
        )
        result = await self._session.execute(stmt)
        return result.scalars().first()

    async def list_items(self, payment_id: str) -> list[PaymentItemTable]:
        stmt = (
            select(PaymentItemTable).where(PaymentItemTable.payment_id == payment_id).order_by(PaymentItemTable.id)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def list_succeeded(self) -> list[PaymentTable]:
        """Return the tenant's succeeded payments, most recently paid first."""
        stmt = (
            select(PaymentTable)
            .where(
                PaymentTable.tenant_id == self._tenant_id,
                PaymentTable.status == "succeeded",
            )
            .order_by(PaymentTable.paid_at.desc(), PaymentTable.id)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def attach_checkout_session(
        self,
        payment_id: str,
        session_id: str,
        metadata: dict[str, Any],
    ) -> None:
        stmt = (
            update(PaymentTable)
            .where(PaymentTable.id == payment_id, PaymentTable.tenant_id == self._tenant_id)
            .values(external_checkout_session_id=session_id, checkout_metadata=metadata)
        )
        await self._session.execute(stmt)
        await self._session.flush()

    async def mark_succeeded(
        self,
        payment_id: str,
        *,
        payment_intent_id: str | None,
        paid_at: datetime | None = None,
    ) -> bool:
        """Move a pending payment to succeeded.  Returns ``False`` if it was not pending."""
        stmt = (
            update(PaymentTable)
            .where(
                PaymentTable.id == payment_id,
                PaymentTable.tenant_id == self._tenant_id,
                PaymentTable.status == "pending",
            )
            .values(
                status="succeeded",
                external_payment_intent_id=payment_intent_id,
                paid_at=paid_at or datetime.now(UTC),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        await self._session.flush()
        return (result.rowcount or 0) > 0  # type: ignore[attr-defined]

    async def mark_failed(self, payment_id: str) -> bool:
        """Move a pending payment to failed.  Returns ``False`` if it was not pending."""
        stmt = (
            update(PaymentTable)
            .where(
                PaymentTable.id == payment_id,
                PaymentTable.tenant_id == self._tenant_id,
                PaymentTable.status == "pending",
            )
            .values(status="failed")
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        await self._session.flush()
        return (result.rowcount or 0) > 0  # type: ignore[attr-defined]


# ---------------------------------------------------------------------------
# SubscriptionHistoryRepository
# ---------------------------------------------------------------------------


class SubscriptionHistoryRepository:
    """Append-only idempotency ledger for subscription events."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def has_event(self, external_event_id: str) -> bool:
        stmt = select(SubscriptionHistoryTable.id).where(
            SubscriptionHistoryTable.external_event_id == external_event_id
        )
        result = await self._session.execute(stmt)
        return result.first() is not None

    async def append(
        self,
        *,
        tenant_id: str,
        external_event_id: str,
        external_subscription_id: str | None,
        event_type: str,
        previous_plan: str | None,
        new_plan: str | None,
        previous_status: str | None,
        new_status: str | None,
        raw_event_payload: dict[str, Any],
    ) -> SubscriptionHistoryTable:
        """Append one ledger row.

        Raises ``sqlalchemy.exc.IntegrityError`` when *external_event_id* is
        already recorded.
        """
        row = SubscriptionHistoryTable(
            tenant_id=tenant_id,
            external_event_id=external_event_id,
            external_subscription_id=external_subscription_id,
            event_type=event_type,
            previous_plan=previous_plan,
            new_plan=new_plan,
            previous_status=previous_status,
            new_status=new_status,
            raw_event_payload=raw_event_payload,
        )
        self._session.add(row)
        await self._session.flush()
        return row

    async def list_for_tenant(self, tenant_id: str) -> list[SubscriptionHistoryTable]:
        stmt = (
            select(SubscriptionHistoryTable)
            .where(SubscriptionHistoryTable.tenant_id == tenant_id)
            .order_by(SubscriptionHistoryTable.id)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())
