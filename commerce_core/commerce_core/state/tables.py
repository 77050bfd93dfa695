"""SQLAlchemy 2.0 ORM table definitions for the commerce state store.

All tables use the ``Mapped`` / ``mapped_column`` declaration style.  The
``Base`` declarative base is exported for use by Alembic migrations and the
repository layer.

Money columns are integers in the currency's minor unit.  Enumerated
columns store the ``.value`` of the matching domain enum as plain strings.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# JSONB on PostgreSQL, plain JSON (stored as TEXT) on SQLite.
_JsonType = JSONB().with_variant(JSON(), "sqlite")


def _utcnow() -> datetime:
    """Return the current UTC timestamp (timezone-aware)."""
    return datetime.now(UTC)


def new_id() -> str:
    """Return a new opaque primary key."""
    return uuid.uuid4().hex


# ---------------------------------------------------------------------------
# Declarative base
# ---------------------------------------------------------------------------


class Base(DeclarativeBase):
    """Shared declarative base for all commerce tables."""


# ---------------------------------------------------------------------------
# Tenants
# ---------------------------------------------------------------------------


class TenantTable(Base):
    """A storefront.  Never deleted; suspension flips ``status``."""

    __tablename__ = "tenants"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    slug: Mapped[str] = mapped_column(String(63), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(256), nullable=False)
    custom_domain: Mapped[str | None] = mapped_column(String(253), nullable=True, unique=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="active")
    plan: Mapped[str | None] = mapped_column(String(16), nullable=True)
    subscription_status: Mapped[str | None] = mapped_column(String(16), nullable=True)
    trial_ends_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    commission_rate: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    billing_email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    external_customer_id: Mapped[str | None] = mapped_column(String(256), nullable=True)
    external_subscription_id: Mapped[str | None] = mapped_column(String(256), nullable=True)
    external_connect_account_id: Mapped[str | None] = mapped_column(String(256), nullable=True)
    charges_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    payouts_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    connect_status: Mapped[str] = mapped_column(String(16), nullable=False, default="not_started")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    __table_args__ = (
        CheckConstraint("commission_rate >= 0 AND commission_rate <= 100", name="ck_tenants_commission_rate"),
        Index("ix_tenants_connect_account", "external_connect_account_id"),
        Index("ix_tenants_subscription", "external_subscription_id"),
    )


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserTable(Base):
    """Platform user.  ``tenant_id`` is null for superadmins."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    tenant_id: Mapped[str | None] = mapped_column(String(64), ForeignKey("tenants.id"), nullable=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    name: Mapped[str | None] = mapped_column(String(256), nullable=True)
    role: Mapped[str] = mapped_column(String(16), nullable=False, default="student")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "email", name="uq_users_tenant_email"),
        Index("ix_users_tenant", "tenant_id"),
    )


# ---------------------------------------------------------------------------
# Catalogue
# ---------------------------------------------------------------------------


class CourseTable(Base):
    """Sellable course.  Only the commerce-relevant columns live here."""

    __tablename__ = "courses"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    tenant_id: Mapped[str] = mapped_column(String(64), ForeignKey("tenants.id"), nullable=False)
    title: Mapped[str] = mapped_column(String(512), nullable=False)
    price: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="usd")
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="draft")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_courses_price"),
        Index("ix_courses_tenant", "tenant_id"),
    )


class CartItemTable(Base):
    """A course placed in a buyer's cart."""

    __tablename__ = "cart_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(String(64), ForeignKey("tenants.id"), nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), ForeignKey("users.id"), nullable=False)
    course_id: Mapped[str] = mapped_column(String(64), ForeignKey("courses.id"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "course_id", name="uq_cart_items_user_course"),
        Index("ix_cart_items_user_tenant", "user_id", "tenant_id"),
    )


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------


class PaymentTable(Base):
    """One checkout attempt.  Status moves pending -> succeeded | failed only."""

    __tablename__ = "payments"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    tenant_id: Mapped[str] = mapped_column(String(64), ForeignKey("tenants.id"), nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), ForeignKey("users.id"), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    platform_fee: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    external_checkout_session_id: Mapped[str | None] = mapped_column(String(256), nullable=True)
    external_payment_intent_id: Mapped[str | None] = mapped_column(String(256), nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    checkout_metadata: Mapped[dict[str, Any] | None] = mapped_column(_JsonType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_payments_amount"),
        CheckConstraint("status IN ('pending', 'succeeded', 'failed')", name="ck_payments_status"),
        Index("ix_payments_tenant_user", "tenant_id", "user_id"),
        Index("ix_payments_checkout_session", "external_checkout_session_id"),
    )


class PaymentItemTable(Base):
    """Course line of a payment with its price captured at purchase time."""

    __tablename__ = "payment_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    payment_id: Mapped[str] = mapped_column(String(64), ForeignKey("payments.id"), nullable=False)
    course_id: Mapped[str] = mapped_column(String(64), ForeignKey("courses.id"), nullable=False)
    price_at_purchase: Mapped[int] = mapped_column(Integer, nullable=False)
    currency_at_purchase: Mapped[str] = mapped_column(String(3), nullable=False)

    __table_args__ = (
        UniqueConstraint("payment_id", "course_id", name="uq_payment_items_payment_course"),
        Index("ix_payment_items_payment", "payment_id"),
    )


class EnrollmentTable(Base):
    """Granted course access.  At most one row per (user, course)."""

    __tablename__ = "enrollments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(String(64), ForeignKey("tenants.id"), nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), ForeignKey("users.id"), nullable=False)
    course_id: Mapped[str] = mapped_column(String(64), ForeignKey("courses.id"), nullable=False)
    payment_id: Mapped[str | None] = mapped_column(String(64), ForeignKey("payments.id"), nullable=True)
    purchase_price: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    purchase_currency: Mapped[str] = mapped_column(String(3), nullable=False, default="usd")
    enrolled_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "course_id", name="uq_enrollments_user_course"),
        Index("ix_enrollments_payment", "payment_id"),
        Index("ix_enrollments_tenant", "tenant_id"),
    )


# ---------------------------------------------------------------------------
# Subscription history (idempotency ledger)
# ---------------------------------------------------------------------------


class SubscriptionHistoryTable(Base):
    """Append-only record of applied subscription events.

    ``external_event_id`` is unique: a second insert of the same provider
    event fails, which is what makes subscription events apply at most once.
    """

    __tablename__ = "subscription_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(String(64), ForeignKey("tenants.id"), nullable=False)
    external_subscription_id: Mapped[str | None] = mapped_column(String(256), nullable=True)
    external_event_id: Mapped[str] = mapped_column(String(256), nullable=False)
    previous_plan: Mapped[str | None] = mapped_column(String(16), nullable=True)
    new_plan: Mapped[str | None] = mapped_column(String(16), nullable=True)
    previous_status: Mapped[str | None] = mapped_column(String(16), nullable=True)
    new_status: Mapped[str | None] = mapped_column(String(16), nullable=True)
    event_type: Mapped[str] = mapped_column(String(64), nullable=False)
    raw_event_payload: Mapped[dict[str, Any]] = mapped_column(_JsonType, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("external_event_id", name="uq_subscription_history_event"),
        Index("ix_subscription_history_tenant", "tenant_id", "created_at"),
    )

