"""Tests for commerce_core/commerce_core/billing/statuses.py

Covers:
- Provider subscription statuses mapped to internal statuses
- The set of statuses that count as a live subscription
"""

from __future__ import annotations

import pytest
from commerce_core.billing.statuses import (
    LIVE_STATUSES,
    ProviderSubscriptionStatus,
    SubscriptionStatus,
    map_provider_status,
)


class TestMapProviderStatus:
    @pytest.mark.parametrize(
        ("provider", "expected"),
        [
            (ProviderSubscriptionStatus.TRIALING, SubscriptionStatus.TRIALING),
            (ProviderSubscriptionStatus.ACTIVE, SubscriptionStatus.ACTIVE),
            (ProviderSubscriptionStatus.PAST_DUE, SubscriptionStatus.PAST_DUE),
            (ProviderSubscriptionStatus.CANCELED, SubscriptionStatus.CANCELED),
            (ProviderSubscriptionStatus.UNPAID, SubscriptionStatus.UNPAID),
            (ProviderSubscriptionStatus.INCOMPLETE, SubscriptionStatus.UNPAID),
            (ProviderSubscriptionStatus.INCOMPLETE_EXPIRED, SubscriptionStatus.CANCELED),
            (ProviderSubscriptionStatus.PAUSED, SubscriptionStatus.PAST_DUE),
        ],
    )
    def test_mapping(self, provider: ProviderSubscriptionStatus, expected: SubscriptionStatus) -> None:
        assert map_provider_status(provider) is expected

    def test_every_provider_status_is_mapped(self) -> None:
        for status in ProviderSubscriptionStatus:
            assert isinstance(map_provider_status(status), SubscriptionStatus)

    def test_live_statuses(self) -> None:
        assert LIVE_STATUSES == {SubscriptionStatus.TRIALING, SubscriptionStatus.ACTIVE}
