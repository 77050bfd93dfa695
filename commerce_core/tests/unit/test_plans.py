"""Tests for commerce_core/commerce_core/billing/plans.py

Covers:
- Plan terms and commission rates
- Half-up platform fee rounding in minor units
- Price id to plan mapping in both directions
"""

from __future__ import annotations

import pytest
from commerce_core.billing.plans import (
    DEFAULT_COMMISSION_RATE,
    PLAN_CONFIG,
    Plan,
    PriceTable,
    calculate_platform_fee,
    commission_rate_for,
)


class TestPlanConfig:
    def test_commission_rates(self) -> None:
        assert commission_rate_for(Plan.STARTER) == 5
        assert commission_rate_for(Plan.GROWTH) == 2
        assert commission_rate_for(Plan.SCALE) == 0

    def test_every_plan_configured(self) -> None:
        assert set(PLAN_CONFIG) == set(Plan)

    def test_default_rate_is_starter(self) -> None:
        assert DEFAULT_COMMISSION_RATE == 5


class TestCalculatePlatformFee:
    def test_exact_percentage(self) -> None:
        assert calculate_platform_fee(3000, 5) == 150

    def test_rounds_half_up(self) -> None:
        # 5% of 10 cents is exactly 0.5
        assert calculate_platform_fee(10, 5) == 1

    def test_rounds_down_below_half(self) -> None:
        assert calculate_platform_fee(9, 5) == 0

    def test_zero_rate(self) -> None:
        assert calculate_platform_fee(34900, 0) == 0

    def test_zero_amount(self) -> None:
        assert calculate_platform_fee(0, 5) == 0

    def test_negative_amount_rejected(self) -> None:
        with pytest.raises(ValueError, match="non-negative"):
            calculate_platform_fee(-1, 5)

    @pytest.mark.parametrize("rate", [-1, 101])
    def test_rate_out_of_range_rejected(self, rate: int) -> None:
        with pytest.raises(ValueError, match="between 0 and 100"):
            calculate_platform_fee(100, rate)


class TestPriceTable:
    def _table(self) -> PriceTable:
        return PriceTable({Plan.STARTER: "price_s", Plan.GROWTH: "price_g", Plan.SCALE: "price_x"})

    def test_plan_for_price(self) -> None:
        assert self._table().plan_for_price("price_g") is Plan.GROWTH

    def test_unknown_price(self) -> None:
        assert self._table().plan_for_price("price_other") is None
        assert self._table().plan_for_price(None) is None

    def test_price_for_plan(self) -> None:
        assert self._table().price_for_plan(Plan.SCALE) == "price_x"

    def test_complete(self) -> None:
        assert self._table().is_complete()

    def test_empty_price_ids_are_unavailable(self) -> None:
        table = PriceTable({Plan.STARTER: "price_s", Plan.GROWTH: "", Plan.SCALE: ""})
        assert not table.is_complete()
        assert table.price_for_plan(Plan.GROWTH) is None
        assert table.plan_for_price("") is None
