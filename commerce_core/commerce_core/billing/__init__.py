"""Plans, fees, subscription statuses, and provider event schemas."""

from commerce_core.billing.events import (
    AccountUpdated,
    CheckoutCompleted,
    EventKind,
    MalformedEventError,
    SubscriptionChange,
    UnhandledEvent,
    WebhookChannel,
    WebhookEvent,
    parse_event,
)
from commerce_core.billing.plans import (
    DEFAULT_COMMISSION_RATE,
    PLAN_CONFIG,
    Plan,
    PlanConfig,
    PriceTable,
    calculate_platform_fee,
    commission_rate_for,
)
from commerce_core.billing.statuses import (
    LIVE_STATUSES,
    ProviderSubscriptionStatus,
    SubscriptionStatus,
    map_provider_status,
)

__all__ = [
    "AccountUpdated",
    "CheckoutCompleted",
    "DEFAULT_COMMISSION_RATE",
    "EventKind",
    "LIVE_STATUSES",
    "MalformedEventError",
    "PLAN_CONFIG",
    "Plan",
    "PlanConfig",
    "PriceTable",
    "ProviderSubscriptionStatus",
    "SubscriptionChange",
    "SubscriptionStatus",
    "UnhandledEvent",
    "WebhookChannel",
    "WebhookEvent",
    "calculate_platform_fee",
    "commission_rate_for",
    "map_provider_status",
    "parse_event",
]
