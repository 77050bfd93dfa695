"""Owner-facing earnings over a tenant's settled payments.

Only succeeded payments count.  Amounts stay in minor units; net is gross
minus the platform fees retained at checkout.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any

from commerce_core.state.repository import PaymentRepository
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

# Months returned in the breakdown, newest first.
BREAKDOWN_MONTHS = 12


class RevenueService:
    """Earnings reads for one tenant."""

    def __init__(self, session: AsyncSession, *, tenant_id: str) -> None:
        self._session = session
        self._tenant_id = tenant_id

    async def earnings(self) -> dict[str, Any]:
        """Return lifetime totals and a per-month breakdown of succeeded payments."""
        payments = await PaymentRepository(self._session, tenant_id=self._tenant_id).list_succeeded()

        gross = sum(p.amount for p in payments)
        fees = sum(p.platform_fee for p in payments)

        monthly: dict[str, list[int]] = defaultdict(lambda: [0, 0])
        for payment in payments:
            settled_at = payment.paid_at or payment.created_at
            bucket = monthly[settled_at.strftime("%Y-%m")]
            bucket[0] += payment.amount
            bucket[1] += payment.platform_fee

        breakdown = [
            {"month": month, "gross": g, "fees": f, "net": g - f}
            for month, (g, f) in sorted(monthly.items(), reverse=True)[:BREAKDOWN_MONTHS]
        ]
        return {
            "gross_earnings": gross,
            "platform_fees": fees,
            "net_earnings": gross - fees,
            "transaction_count": len(payments),
            "monthly_breakdown": breakdown,
        }
