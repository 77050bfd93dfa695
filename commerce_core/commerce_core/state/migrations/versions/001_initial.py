"""Initial commerce schema.

Creates tenants, users, courses, cart_items, payments, payment_items,
enrollments, and the subscription_history idempotency ledger.

Revision ID: 001
Revises:
Create Date: 2026-10-01 00:00:00.000000+00:00

"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

_JsonType = postgresql.JSONB().with_variant(sa.JSON(), "sqlite")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "tenants",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("slug", sa.String(63), nullable=False, unique=True),
        sa.Column("name", sa.String(256), nullable=False),
        sa.Column("custom_domain", sa.String(253), nullable=True, unique=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="active"),
        sa.Column("plan", sa.String(16), nullable=True),
        sa.Column("subscription_status", sa.String(16), nullable=True),
        sa.Column("trial_ends_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("commission_rate", sa.Integer(), nullable=False, server_default="5"),
        sa.Column("billing_email", sa.String(320), nullable=True),
        sa.Column("external_customer_id", sa.String(256), nullable=True),
        sa.Column("external_subscription_id", sa.String(256), nullable=True),
        sa.Column("external_connect_account_id", sa.String(256), nullable=True),
        sa.Column("charges_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("payouts_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("connect_status", sa.String(16), nullable=False, server_default="not_started"),
        *_timestamps(),
        sa.CheckConstraint(
            "commission_rate >= 0 AND commission_rate <= 100",
            name="ck_tenants_commission_rate",
        ),
    )
    op.create_index("ix_tenants_connect_account", "tenants", ["external_connect_account_id"])
    op.create_index("ix_tenants_subscription", "tenants", ["external_subscription_id"])

    op.create_table(
        "users",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("tenant_id", sa.String(64), sa.ForeignKey("tenants.id"), nullable=True),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("name", sa.String(256), nullable=True),
        sa.Column("role", sa.String(16), nullable=False, server_default="student"),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "email", name="uq_users_tenant_email"),
    )
    op.create_index("ix_users_tenant", "users", ["tenant_id"])

    op.create_table(
        "courses",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("tenant_id", sa.String(64), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("title", sa.String(512), nullable=False),
        sa.Column("price", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("currency", sa.String(3), nullable=False, server_default="usd"),
        sa.Column("status", sa.String(16), nullable=False, server_default="draft"),
        *_timestamps(),
        sa.CheckConstraint("price >= 0", name="ck_courses_price"),
    )
    op.create_index("ix_courses_tenant", "courses", ["tenant_id"])

    op.create_table(
        "cart_items",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("tenant_id", sa.String(64), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("user_id", sa.String(64), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("course_id", sa.String(64), sa.ForeignKey("courses.id"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("user_id", "course_id", name="uq_cart_items_user_course"),
    )
    op.create_index("ix_cart_items_user_tenant", "cart_items", ["user_id", "tenant_id"])

    op.create_table(
        "payments",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("tenant_id", sa.String(64), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("user_id", sa.String(64), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("platform_fee", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("external_checkout_session_id", sa.String(256), nullable=True),
        sa.Column("external_payment_intent_id", sa.String(256), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("checkout_metadata", _JsonType, nullable=True),
        *_timestamps(),
        sa.CheckConstraint("amount >= 0", name="ck_payments_amount"),
        sa.CheckConstraint("status IN ('pending', 'succeeded', 'failed')", name="ck_payments_status"),
    )
    op.create_index("ix_payments_tenant_user", "payments", ["tenant_id", "user_id"])
    op.create_index("ix_payments_checkout_session", "payments", ["external_checkout_session_id"])

    op.create_table(
        "payment_items",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("payment_id", sa.String(64), sa.ForeignKey("payments.id"), nullable=False),
        sa.Column("course_id", sa.String(64), sa.ForeignKey("courses.id"), nullable=False),
        sa.Column("price_at_purchase", sa.Integer(), nullable=False),
        sa.Column("currency_at_purchase", sa.String(3), nullable=False),
        sa.UniqueConstraint("payment_id", "course_id", name="uq_payment_items_payment_course"),
    )
    op.create_index("ix_payment_items_payment", "payment_items", ["payment_id"])

    op.create_table(
        "enrollments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("tenant_id", sa.String(64), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("user_id", sa.String(64), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("course_id", sa.String(64), sa.ForeignKey("courses.id"), nullable=False),
        sa.Column("payment_id", sa.String(64), sa.ForeignKey("payments.id"), nullable=True),
        sa.Column("purchase_price", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("purchase_currency", sa.String(3), nullable=False, server_default="usd"),
        sa.Column("enrolled_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("user_id", "course_id", name="uq_enrollments_user_course"),
    )
    op.create_index("ix_enrollments_payment", "enrollments", ["payment_id"])
    op.create_index("ix_enrollments_tenant", "enrollments", ["tenant_id"])

    op.create_table(
        "subscription_history",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("tenant_id", sa.String(64), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("external_subscription_id", sa.String(256), nullable=True),
        sa.Column("external_event_id", sa.String(256), nullable=False),
        sa.Column("previous_plan", sa.String(16), nullable=True),
        sa.Column("new_plan", sa.String(16), nullable=True),
        sa.Column("previous_status", sa.String(16), nullable=True),
        sa.Column("new_status", sa.String(16), nullable=True),
        sa.Column("event_type", sa.String(64), nullable=False),
        sa.Column("raw_event_payload", _JsonType, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("external_event_id", name="uq_subscription_history_event"),
    )
    op.create_index("ix_subscription_history_tenant", "subscription_history", ["tenant_id", "created_at"])


def downgrade() -> None:
    op.drop_index("ix_subscription_history_tenant")
    op.drop_table("subscription_history")
    op.drop_index("ix_enrollments_tenant")
    op.drop_index("ix_enrollments_payment")
    op.drop_table("enrollments")
    op.drop_index("ix_payment_items_payment")
    op.drop_table("payment_items")
    op.drop_index("ix_payments_checkout_session")
    op.drop_index("ix_payments_tenant_user")
    op.drop_table("payments")
    op.drop_index("ix_cart_items_user_tenant")
    op.drop_table("cart_items")
    op.drop_index("ix_courses_tenant")
    op.drop_table("courses")
    op.drop_index("ix_users_tenant")
    op.drop_table("users")
    op.drop_index("ix_tenants_subscription")
    op.drop_index("ix_tenants_connect_account")
    op.drop_table("tenants")
