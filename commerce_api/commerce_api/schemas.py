"""Request and response bodies shared by the API routers."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from commerce_core.billing.plans import Plan
from commerce_core.models.tenant import ConnectStatus
from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Tenant
# ---------------------------------------------------------------------------


class TenantResponse(BaseModel):
    """Public view of the resolved tenant."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    slug: str
    name: str
    custom_domain: str | None = None
    plan: Plan | None = None
    commission_rate: int
    charges_enabled: bool
    connect_status: ConnectStatus


# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------


class CheckoutRequest(BaseModel):
    """Body of ``POST /checkout/session``."""

    course_ids: list[str] = Field(..., description="Courses to purchase in one checkout.")


class CheckoutResponse(BaseModel):
    kind: Literal["free", "paid"]
    status: Literal["completed", "pending"]
    course_ids: list[str]
    payment_id: str | None = None
    session_id: str | None = None
    url: str | None = None


class EnrollmentStatusResponse(BaseModel):
    status: Literal["completed", "pending"]
    payment_status: str
    enrollment_count: int


# ---------------------------------------------------------------------------
# Webhooks
# ---------------------------------------------------------------------------


class WebhookAck(BaseModel):
    """Acknowledgement returned for every verified delivery."""

    received: bool = True
    event_id: str | None = None
    status: str


# ---------------------------------------------------------------------------
# Subscription
# ---------------------------------------------------------------------------


class PlanResponse(BaseModel):
    id: str
    name: str
    monthly_price: int
    commission_rate: int
    storage_gb: int
    ai_generation: str


class SubscriptionResponse(BaseModel):
    plan: str | None = None
    subscription_status: str | None = None
    trial_ends_at: datetime | None = None
    commission_rate: int
    has_subscription: bool


class StartSubscriptionRequest(BaseModel):
    """Body of ``POST /subscription``."""

    plan: Plan


class RedirectResponse(BaseModel):
    """A provider-hosted page the client should navigate to."""

    url: str


class MessageResponse(BaseModel):
    message: str


# ---------------------------------------------------------------------------
# Connect
# ---------------------------------------------------------------------------


class ConnectStatusResponse(BaseModel):
    connect_status: str
    charges_enabled: bool
    payouts_enabled: bool
    has_account: bool


# ---------------------------------------------------------------------------
# Revenue
# ---------------------------------------------------------------------------


class MonthlyEarnings(BaseModel):
    month: str = Field(..., description="Calendar month as YYYY-MM.")
    gross: int
    fees: int
    net: int


class EarningsResponse(BaseModel):
    """Totals over succeeded payments, in minor units."""

    gross_earnings: int
    platform_fees: int
    net_earnings: int
    transaction_count: int
    monthly_breakdown: list[MonthlyEarnings]
