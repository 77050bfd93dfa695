"""Platform plans, price-to-plan resolution, and commission arithmetic.

Three paid plans control the platform's cut of every course sale:

* **Starter** -- 5% commission.
* **Growth** -- 2% commission.
* **Scale** -- no commission.

All money is integer minor units (cents).  Commission rates are integer
percentages, so the platform fee is computed without floating point.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum


class Plan(str, Enum):
    """Platform subscription plan held by a tenant."""

    STARTER = "starter"
    GROWTH = "growth"
    SCALE = "scale"


@dataclass(frozen=True, slots=True)
class PlanConfig:
    """Static commercial terms of a plan."""

    plan: Plan
    label: str
    commission_rate: int
    monthly_price: int
    storage_gb: int
    ai_generation: str


PLAN_CONFIG: dict[Plan, PlanConfig] = {
    Plan.STARTER: PlanConfig(
        plan=Plan.STARTER,
        label="Starter",
        commission_rate=5,
        monthly_price=4900,
        storage_gb=15,
        ai_generation="standard",
    ),
    Plan.GROWTH: PlanConfig(
        plan=Plan.GROWTH,
        label="Growth",
        commission_rate=2,
        monthly_price=9900,
        storage_gb=100,
        ai_generation="unlimited",
    ),
    Plan.SCALE: PlanConfig(
        plan=Plan.SCALE,
        label="Scale",
        commission_rate=0,
        monthly_price=34900,
        storage_gb=2048,
        ai_generation="unlimited",
    ),
}

# Commission applied to tenants that have never subscribed.
DEFAULT_COMMISSION_RATE = PLAN_CONFIG[Plan.STARTER].commission_rate


def commission_rate_for(plan: Plan) -> int:
    """Return the fixed commission percentage for *plan*."""
    return PLAN_CONFIG[plan].commission_rate


def calculate_platform_fee(amount: int, commission_rate: int) -> int:
    """Return the platform fee for a gross *amount* in minor units.

    ``round_half_up(amount * commission_rate / 100)`` computed in integers.

    Raises
    ------
    ValueError
        If *amount* is negative or *commission_rate* is outside 0..100.
    """
    if amount < 0:
        raise ValueError(f"amount must be non-negative, got {amount}")
    if not 0 <= commission_rate <= 100:
        raise ValueError(f"commission_rate must be between 0 and 100, got {commission_rate}")
    return (amount * commission_rate + 50) // 100


class PriceTable:
    """Bidirectional mapping between provider price ids and plans.

    Parameters
    ----------
    price_ids:
        Provider price id configured for each plan.  Plans with an empty
        price id are treated as unavailable for purchase.
    """

    def __init__(self, price_ids: Mapping[Plan, str]) -> None:
        self._plan_to_price: dict[Plan, str] = {plan: pid for plan, pid in price_ids.items() if pid}
        self._price_to_plan: dict[str, Plan] = {pid: plan for plan, pid in self._plan_to_price.items()}

    def plan_for_price(self, price_id: str | None) -> Plan | None:
        """Return the plan sold under *price_id*, or ``None`` if unknown."""
        if not price_id:
            return None
        return self._price_to_plan.get(price_id)

    def price_for_plan(self, plan: Plan) -> str | None:
        """Return the configured price id for *plan*, or ``None``."""
        return self._plan_to_price.get(plan)

    def is_complete(self) -> bool:
        """Return ``True`` when every plan has a price id."""
        return all(plan in self._plan_to_price for plan in Plan)
