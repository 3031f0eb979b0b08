"""
Recalculation Engine

Rebuilds every cached figure from the payment_attributions ledger:
- Creator lifetime_paid_users and available_balance
- Creator and CMO monthly payout records
- Discount code paid_conversions

total_withdrawn is preserved, so available_balance always equals lifetime
commission minus what has already left the platform. Running it twice in a
row changes nothing the second time.
"""

import logging
import uuid
from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Optional, List, Dict, Any, Tuple

from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.config import settings
from referral_ledger.models.attribution import PaymentAttribution
from referral_ledger.models.creator import CreatorAccount, DiscountCode
from referral_ledger.models.payout import CreatorPayout, CMOPayout, PayoutStatus
from referral_ledger.services.audit_service import AuditService
from referral_ledger.services.commission_rates import (
    CommissionSchedule,
    cmo_override_amount,
    quantize_money,
)
from referral_ledger.services.operation_lock import LEDGER_BULK_LOCK, single_flight

logger = logging.getLogger(__name__)

BALANCE_TOLERANCE = Decimal("0.01")
ZERO = Decimal("0.00")

# (entity_id, payout_month) -> (paid users, commission)
PayoutTotals = Dict[Tuple[uuid.UUID, date], Tuple[int, Decimal]]


class RecalculationService:
    """Service for rebuilding caches from the attribution ledger"""

    def __init__(self, db: AsyncSession, schedule: Optional[CommissionSchedule] = None):
        self.db = db
        self.schedule = schedule or settings.commission_schedule()

    # ========================================================================
    # Ledger aggregates
    # ========================================================================

    async def creator_totals(self) -> Dict[uuid.UUID, Tuple[int, Decimal]]:
        """Attribution count and commission sum per creator."""
        result = await self.db.execute(
            select(
                PaymentAttribution.creator_id,
                func.count(PaymentAttribution.id),
                func.coalesce(func.sum(PaymentAttribution.commission_amount), 0),
            )
            .where(PaymentAttribution.creator_id.is_not(None))
            .group_by(PaymentAttribution.creator_id)
        )
        return {
            creator_id: (count, quantize_money(Decimal(str(total))))
            for creator_id, count, total in result.all()
        }

    async def creator_payout_totals(self) -> PayoutTotals:
        result = await self.db.execute(
            select(
                PaymentAttribution.creator_id,
                PaymentAttribution.payment_month,
                func.count(PaymentAttribution.id),
                func.coalesce(func.sum(PaymentAttribution.commission_amount), 0),
            )
            .where(PaymentAttribution.creator_id.is_not(None))
            .group_by(PaymentAttribution.creator_id, PaymentAttribution.payment_month)
        )
        return {
            (creator_id, month): (count, quantize_money(Decimal(str(total))))
            for creator_id, month, count, total in result.all()
        }

    async def cmo_payout_totals(self) -> PayoutTotals:
        """
        Override totals per (CMO, month), using each creator's current CMO.

        The override is rounded per attribution and then summed, matching what
        the attribution writer adds one payment at a time.
        """
        result = await self.db.execute(
            select(
                CreatorAccount.cmo_id,
                PaymentAttribution.payment_month,
                PaymentAttribution.commission_amount,
            )
            .join(CreatorAccount, CreatorAccount.id == PaymentAttribution.creator_id)
            .where(CreatorAccount.cmo_id.is_not(None))
        )
        users: Dict[Tuple[uuid.UUID, date], int] = defaultdict(int)
        amounts: Dict[Tuple[uuid.UUID, date], Decimal] = defaultdict(lambda: ZERO)
        for cmo_id, month, commission in result.all():
            key = (cmo_id, month)
            users[key] += 1
            amounts[key] += cmo_override_amount(commission, self.schedule)
        return {key: (users[key], amounts[key]) for key in users}

    # ========================================================================
    # Discrepancy report
    # ========================================================================

    async def stats_discrepancies(self) -> List[Dict[str, Any]]:
        """Cached vs. ledger-derived creator counters."""
        totals = await self.creator_totals()
        result = await self.db.execute(select(CreatorAccount).order_by(CreatorAccount.display_name))

        report = []
        for creator in result.scalars().all():
            actual_count, commission = totals.get(creator.id, (0, ZERO))
            actual_balance = quantize_money(commission - (creator.total_withdrawn or ZERO))
            cached_balance = creator.available_balance or ZERO
            report.append({
                "creator_id": creator.id,
                "display_name": creator.display_name,
                "referral_code": creator.referral_code,
                "cached_paid_users": creator.lifetime_paid_users,
                "actual_paid_users": actual_count,
                "cached_balance": cached_balance,
                "actual_balance": actual_balance,
                "has_discrepancy": (
                    creator.lifetime_paid_users != actual_count
                    or abs(cached_balance - actual_balance) > BALANCE_TOLERANCE
                ),
            })
        return report

    # ========================================================================
    # Rebuild
    # ========================================================================

    async def recalculate_stats(self, operator_id: Optional[uuid.UUID] = None) -> Dict[str, int]:
        """
        Rebuild all caches from the ledger.

        Each row is written in its own savepoint; a failing row is counted and
        the run continues. Raises OperationInProgressError while a reconcile or
        recalculate run holds the shared bulk ledger lock.
        """
        async with single_flight(self.db, LEDGER_BULK_LOCK, operation="recalculate_stats"):
            before = await self.stats_discrepancies()
            mismatched = sum(1 for row in before if row["has_discrepancy"])

            creators_updated, creator_failures = await self._rebuild_creators()
            creator_payouts, creator_removed, creator_payout_failures = await self._regenerate_payouts(
                CreatorPayout, "creator_id", await self.creator_payout_totals()
            )
            cmo_payouts, cmo_removed, cmo_payout_failures = await self._regenerate_payouts(
                CMOPayout, "cmo_id", await self.cmo_payout_totals()
            )
            codes_updated, code_failures = await self._rebuild_discount_codes()

            summary = {
                "creators_updated": creators_updated,
                "creator_payouts_regenerated": creator_payouts,
                "cmo_payouts_regenerated": cmo_payouts,
                "payouts_removed": creator_removed + cmo_removed,
                "discount_codes_updated": codes_updated,
                "failed": creator_failures + creator_payout_failures + cmo_payout_failures + code_failures,
            }

            await AuditService(self.db).log(
                action="RECALCULATE",
                entity_type="LEDGER",
                operator_id=operator_id,
                new_values={**summary, "creators_with_discrepancy": mismatched},
                description=f"Recalculated stats, {mismatched} creators had drifted",
            )
            await self.db.commit()

        logger.info(f"Recalculation finished: {summary}")
        return summary

    async def _rebuild_creators(self) -> Tuple[int, int]:
        totals = await self.creator_totals()
        result = await self.db.execute(select(CreatorAccount))

        updated = 0
        failed = 0
        for creator in result.scalars().all():
            creator_id = creator.id
            count, commission = totals.get(creator_id, (0, ZERO))
            try:
                async with self.db.begin_nested():
                    creator.lifetime_paid_users = count
                    creator.available_balance = quantize_money(commission - (creator.total_withdrawn or ZERO))
                updated += 1
            except SQLAlchemyError:
                failed += 1
                logger.exception(f"Failed to rebuild creator {creator_id}")
        return updated, failed

    async def _regenerate_payouts(
        self,
        model,
        key_name: str,
        expected: PayoutTotals,
    ) -> Tuple[int, int, int]:
        """
        Make the payout table match expected.

        Existing rows keep their status and paid_at; missing rows are created
        pending; unpaid rows without ledger backing are deleted. Paid rows
        without backing are kept and reported.
        """
        result = await self.db.execute(select(model))
        existing = {(getattr(p, key_name), p.payout_month): p for p in result.scalars().all()}
        statuses = {key: p.status for key, p in existing.items()}

        regenerated = 0
        removed = 0
        failed = 0
        for key, (users, amount) in expected.items():
            try:
                async with self.db.begin_nested():
                    record = existing.get(key)
                    if record is None:
                        self.db.add(model(
                            **{key_name: key[0]},
                            payout_month=key[1],
                            total_paid_users=users,
                            commission_amount=amount,
                            status=PayoutStatus.PENDING.value,
                        ))
                    else:
                        record.total_paid_users = users
                        record.commission_amount = amount
                regenerated += 1
            except SQLAlchemyError:
                failed += 1
                logger.exception(f"Failed to regenerate {model.__tablename__} row {key}")

        for key, record in existing.items():
            if key in expected:
                continue
            if statuses[key] == PayoutStatus.PAID.value:
                logger.warning(
                    f"Paid {model.__tablename__} row {key} has no ledger backing, leaving it intact"
                )
                continue
            try:
                async with self.db.begin_nested():
                    await self.db.delete(record)
                removed += 1
            except SQLAlchemyError:
                failed += 1
                logger.exception(f"Failed to remove {model.__tablename__} row {key}")

        return regenerated, removed, failed

    async def _rebuild_discount_codes(self) -> Tuple[int, int]:
        result = await self.db.execute(
            select(PaymentAttribution.discount_code_id, func.count(PaymentAttribution.id))
            .where(PaymentAttribution.discount_code_id.is_not(None))
            .group_by(PaymentAttribution.discount_code_id)
        )
        conversions = dict(result.all())

        codes = await self.db.execute(select(DiscountCode))
        updated = 0
        failed = 0
        for code in codes.scalars().all():
            code_value = code.code
            try:
                async with self.db.begin_nested():
                    code.paid_conversions = conversions.get(code.id, 0)
                updated += 1
            except SQLAlchemyError:
                failed += 1
                logger.exception(f"Failed to rebuild discount code {code_value}")
        return updated, failed
