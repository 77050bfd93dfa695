"""Subscription status vocabulary and the provider-to-internal mapping.

The payment provider reports more subscription states than the platform
distinguishes.  Every provider state maps to exactly one internal state;
the table is checked for completeness at import time so that adding a
provider state without triaging it fails loudly instead of defaulting.
"""

from __future__ import annotations

from enum import Enum


class SubscriptionStatus(str, Enum):
    """Internal subscription state stored on the tenant row."""

    TRIALING = "trialing"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    UNPAID = "unpaid"


class ProviderSubscriptionStatus(str, Enum):
    """Subscription states emitted by the payment provider."""

    TRIALING = "trialing"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    UNPAID = "unpaid"
    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    PAUSED = "paused"


_PROVIDER_STATUS_MAP: dict[ProviderSubscriptionStatus, SubscriptionStatus] = {
    ProviderSubscriptionStatus.TRIALING: SubscriptionStatus.TRIALING,
    ProviderSubscriptionStatus.ACTIVE: SubscriptionStatus.ACTIVE,
    ProviderSubscriptionStatus.PAST_DUE: SubscriptionStatus.PAST_DUE,
    ProviderSubscriptionStatus.CANCELED: SubscriptionStatus.CANCELED,
    ProviderSubscriptionStatus.UNPAID: SubscriptionStatus.UNPAID,
    # First invoice not yet paid: no access until it is.
    ProviderSubscriptionStatus.INCOMPLETE: SubscriptionStatus.UNPAID,
    ProviderSubscriptionStatus.INCOMPLETE_EXPIRED: SubscriptionStatus.CANCELED,
    ProviderSubscriptionStatus.PAUSED: SubscriptionStatus.PAST_DUE,
}

_untriaged = set(ProviderSubscriptionStatus) - set(_PROVIDER_STATUS_MAP)
if _untriaged:
    raise RuntimeError(
        "Provider subscription statuses without an internal mapping: "
        + ", ".join(sorted(s.value for s in _untriaged))
    )

# States in which a tenant may not open a second subscription.
LIVE_STATUSES: frozenset[SubscriptionStatus] = frozenset({SubscriptionStatus.TRIALING, SubscriptionStatus.ACTIVE})


def map_provider_status(status: ProviderSubscriptionStatus) -> SubscriptionStatus:
    """Translate a provider subscription state into the internal state."""
    return _PROVIDER_STATUS_MAP[status]
