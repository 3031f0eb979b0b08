"""Revenue figures derived from the attribution ledger."""

import logging
from datetime import date
from decimal import Decimal
from typing import Optional, Dict, Any

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.models.attribution import PaymentAttribution
from referral_ledger.services.commission_rates import quantize_money
from referral_ledger.services.payout_service import payout_month_for

logger = logging.getLogger(__name__)

BREAKDOWN_MONTHS = 6


def _money(value) -> Decimal:
    return quantize_money(Decimal(str(value or 0)))


def _shift_month(month: date, delta: int) -> date:
    index = month.year * 12 + (month.month - 1) + delta
    return date(index // 12, index % 12 + 1, 1)


class RevenueService:
    """Service for revenue reporting"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_revenue_stats(self, today: Optional[date] = None) -> Dict[str, Any]:
        """
        Total, current-month and unattributed revenue plus a six-month
        breakdown keyed "YYYY-MM", oldest first.
        """
        current_month = payout_month_for(today)
        first_month = _shift_month(current_month, -(BREAKDOWN_MONTHS - 1))

        totals = (await self.db.execute(
            select(
                func.coalesce(func.sum(PaymentAttribution.final_amount), 0),
                func.coalesce(func.sum(PaymentAttribution.commission_amount), 0),
            )
        )).one()
        unattributed = (await self.db.execute(
            select(func.coalesce(func.sum(PaymentAttribution.final_amount), 0))
            .where(PaymentAttribution.creator_id.is_(None))
        )).scalar()

        rows = await self.db.execute(
            select(
                PaymentAttribution.payment_month,
                PaymentAttribution.creator_id.is_not(None),
                func.count(PaymentAttribution.id),
                func.coalesce(func.sum(PaymentAttribution.final_amount), 0),
                func.coalesce(func.sum(PaymentAttribution.commission_amount), 0),
            )
            .where(PaymentAttribution.payment_month >= first_month)
            .group_by(PaymentAttribution.payment_month, PaymentAttribution.creator_id.is_not(None))
        )

        months = {
            _shift_month(first_month, i): {
                "revenue": Decimal("0.00"),
                "attributed_revenue": Decimal("0.00"),
                "commission": Decimal("0.00"),
                "payments": 0,
            }
            for i in range(BREAKDOWN_MONTHS)
        }
        for month, attributed, count, revenue, commission in rows.all():
            bucket = months.get(month)
            if bucket is None:
                continue
            bucket["revenue"] += _money(revenue)
            bucket["commission"] += _money(commission)
            bucket["payments"] += count
            if attributed:
                bucket["attributed_revenue"] += _money(revenue)

        breakdown = [
            {"month": month.strftime("%Y-%m"), **values}
            for month, values in sorted(months.items())
        ]

        return {
            "total_revenue": _money(totals[0]),
            "this_month_revenue": months[current_month]["revenue"],
            "unattributed_revenue": _money(unattributed),
            "total_commission": _money(totals[1]),
            "monthly_breakdown": breakdown,
        }
