"""Tenant snapshot model shared by the directory cache and request context.

A ``TenantSnapshot`` is the read-only view of a tenant row that request
handling works against.  Snapshots are what the tenant directory places in
the key-value cache, so they must round-trip through JSON unchanged.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from commerce_core.billing.plans import Plan
from commerce_core.billing.statuses import SubscriptionStatus


class TenantStatus(str, Enum):
    """Administrative state of a tenant."""

    ACTIVE = "active"
    SUSPENDED = "suspended"


class ConnectStatus(str, Enum):
    """Onboarding state of a tenant's payment-provider connected account."""

    NOT_STARTED = "not_started"
    PENDING = "pending"
    ACTIVE = "active"
    RESTRICTED = "restricted"


def derive_connect_status(
    *,
    charges_enabled: bool,
    payouts_enabled: bool,
    disabled_reason: str | None,
) -> ConnectStatus:
    """Derive the connected-account status from provider capability flags."""
    if charges_enabled and payouts_enabled:
        return ConnectStatus.ACTIVE
    if disabled_reason:
        return ConnectStatus.RESTRICTED
    return ConnectStatus.PENDING


class TenantSnapshot(BaseModel):
    """Cached, immutable view of a tenant."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str = Field(..., min_length=1, description="Tenant identifier.")
    slug: str = Field(..., min_length=1, description="Unique subdomain label.")
    name: str = Field(..., description="Display name.")
    custom_domain: str | None = Field(default=None, description="Verified custom hostname, if any.")
    status: TenantStatus = Field(default=TenantStatus.ACTIVE)
    plan: Plan | None = Field(default=None, description="Current platform plan.")
    subscription_status: SubscriptionStatus | None = Field(default=None)
    trial_ends_at: datetime | None = Field(default=None)
    commission_rate: int = Field(default=5, ge=0, le=100, description="Platform commission percent.")
    billing_email: str | None = Field(default=None)
    external_customer_id: str | None = Field(default=None)
    external_subscription_id: str | None = Field(default=None)
    external_connect_account_id: str | None = Field(default=None)
    charges_enabled: bool = Field(default=False)
    payouts_enabled: bool = Field(default=False)
    connect_status: ConnectStatus = Field(default=ConnectStatus.NOT_STARTED)

    @property
    def is_active(self) -> bool:
        return self.status == TenantStatus.ACTIVE
