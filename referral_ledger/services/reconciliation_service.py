"""
Orphan Detector

An orphan is a completed payment with no attribution row, usually left by a
finalize call that failed or never ran. Orphans are found by comparing the
payments table with the ledger and repaired by re-running the attribution
writer for each one.
"""

import logging
import uuid
from typing import Optional, List, Dict, Any, Iterable

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.models.attribution import PaymentAttribution, PaymentType
from referral_ledger.models.payment import RawPayment, UserProfile
from referral_ledger.schemas.attribution import FinalizePaymentRequest, FinalizePaymentResult
from referral_ledger.services.attribution_service import AttributionService
from referral_ledger.services.audit_service import AuditService
from referral_ledger.services.commission_rates import CommissionSchedule
from referral_ledger.services.exceptions import LedgerError, NotFoundError, AttributionError
from referral_ledger.services.operation_lock import LEDGER_BULK_LOCK, single_flight

logger = logging.getLogger(__name__)

COMPLETED = "completed"
DEFAULT_TIER = "starter"


def detect_orphans(
    completed_payments: Iterable[RawPayment],
    attributed_order_ids: Iterable[str],
) -> List[RawPayment]:
    """Completed payments whose order_id has no attribution, in input order."""
    attributed = set(attributed_order_ids)
    return [p for p in completed_payments if p.order_id not in attributed]


class ReconciliationService:
    """Service for finding and repairing orphaned payments"""

    def __init__(self, db: AsyncSession, schedule: Optional[CommissionSchedule] = None):
        self.db = db
        self.schedule = schedule

    async def _completed_orphans(self) -> List[RawPayment]:
        result = await self.db.execute(
            select(RawPayment)
            .where(RawPayment.status == COMPLETED)
            .order_by(RawPayment.created_at)
        )
        completed = list(result.scalars().all())
        if not completed:
            return []

        attributed_result = await self.db.execute(
            select(PaymentAttribution.order_id).where(
                PaymentAttribution.order_id.in_([p.order_id for p in completed])
            )
        )
        return detect_orphans(completed, attributed_result.scalars().all())

    async def find_orphans(self) -> List[Dict[str, Any]]:
        """Orphaned payments with the buyer's email ("Unknown" when no profile)."""
        orphans = await self._completed_orphans()

        user_ids = {p.user_id for p in orphans if p.user_id}
        emails = {}
        if user_ids:
            profiles = await self.db.execute(
                select(UserProfile.user_id, UserProfile.email).where(UserProfile.user_id.in_(user_ids))
            )
            emails = {row.user_id: row.email for row in profiles}

        return [
            {
                "order_id": p.order_id,
                "user_id": p.user_id,
                "email": emails.get(p.user_id) or "Unknown",
                "amount": p.amount,
                "original_amount": p.original_amount,
                "tier": p.tier,
                "payment_type": p.payment_type,
                "ref_creator": p.ref_creator,
                "discount_code": p.discount_code,
                "created_at": p.created_at,
            }
            for p in orphans
        ]

    @staticmethod
    def build_request(payment: RawPayment) -> FinalizePaymentRequest:
        """Rebuild the finalize call checkout would have made for this payment."""
        if payment.user_id is None:
            raise AttributionError(
                "Payment has no user_id and cannot be attributed",
                {"order_id": payment.order_id},
            )
        payment_type = payment.payment_type or PaymentType.CARD.value
        if payment_type not in {t.value for t in PaymentType}:
            payment_type = PaymentType.CARD.value
        try:
            return FinalizePaymentRequest(
                order_id=payment.order_id,
                user_id=payment.user_id,
                enrollment_id=payment.enrollment_id,
                amount=payment.amount or 0,
                original_amount=payment.original_amount if payment.original_amount is not None else payment.amount,
                tier=payment.tier or DEFAULT_TIER,
                payment_type=payment_type,
                referral_code=payment.ref_creator,
                discount_code=payment.discount_code,
                paid_at=payment.created_at,
            )
        except ValidationError as e:
            fields = sorted({".".join(str(part) for part in err["loc"]) for err in e.errors()})
            raise AttributionError(
                f"Payment has invalid data in {', '.join(fields)}",
                {"order_id": payment.order_id, "fields": fields},
            )

    async def fix_orphan(self, order_id: str) -> FinalizePaymentResult:
        """Re-run attribution for exactly one completed payment."""
        result = await self.db.execute(select(RawPayment).where(RawPayment.order_id == order_id))
        payment = result.scalar_one_or_none()
        if not payment:
            raise NotFoundError("Payment not found", {"order_id": order_id})
        if payment.status != COMPLETED:
            raise AttributionError(
                f"Payment is {payment.status}, only completed payments are attributed",
                {"order_id": order_id},
            )

        request = self.build_request(payment)
        outcome = await AttributionService(self.db, self.schedule).finalize_payment(request)
        if outcome.success:
            logger.info(f"Fixed orphan {order_id} (already_attributed={outcome.already_attributed})")
        else:
            logger.warning(f"Could not fix orphan {order_id}: {outcome.error}")
        return outcome

    async def reconcile_orphans(self, operator_id: Optional[uuid.UUID] = None) -> Dict[str, Any]:
        """
        Attribute every orphan, continuing past individual failures.

        Runs under the shared bulk ledger lock; raises OperationInProgressError
        while another reconcile or recalculate run holds it.
        """
        async with single_flight(self.db, LEDGER_BULK_LOCK, operation="reconcile_orphans"):
            orphans = await self._completed_orphans()
            order_ids = [p.order_id for p in orphans]
            logger.info(f"Reconciling {len(order_ids)} orphaned payments")

            fixed = 0
            failed = 0
            errors: List[str] = []
            for order_id in order_ids:
                try:
                    outcome = await self.fix_orphan(order_id)
                except LedgerError as e:
                    failed += 1
                    errors.append(f"{order_id}: {e.message}")
                    continue
                except SQLAlchemyError as e:
                    await self.db.rollback()
                    logger.exception(f"Database error fixing orphan {order_id}")
                    failed += 1
                    errors.append(f"{order_id}: {e}")
                    continue
                if outcome.success:
                    fixed += 1
                else:
                    failed += 1
                    errors.append(f"{order_id}: {outcome.error}")

            await AuditService(self.db).log(
                action="RECONCILE",
                entity_type="LEDGER",
                operator_id=operator_id,
                new_values={"fixed": fixed, "failed": failed},
                description=f"Reconciled orphans: {fixed} fixed, {failed} failed",
            )
            await self.db.commit()

        if failed:
            logger.warning(f"Reconcile finished with {failed} failures")
        logger.info(f"Reconcile finished: {fixed} fixed")
        return {"fixed": fixed, "failed": failed, "errors": errors}
