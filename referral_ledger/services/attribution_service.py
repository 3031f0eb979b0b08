"""
Attribution Writer

Turns one completed payment into ledger state, in a single transaction:
1. Idempotency gate on order_id
2. Creator resolution (sticky user attribution > referral code > discount code)
3. First-touch user attribution
4. Rate resolution and commission snapshot
5. Attribution insert
6. Creator caches, creator payout record, discount code conversions
7. CMO override payout record

Any failure rolls the whole transaction back. The payment is then an orphan
and the reconciliation tools can re-run it.
"""

import logging
import uuid
from decimal import Decimal
from typing import Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.config import settings
from referral_ledger.models.attribution import PaymentAttribution, UserAttribution, ReferralSource
from referral_ledger.models.creator import CreatorAccount, DiscountCode
from referral_ledger.schemas.attribution import FinalizePaymentRequest, FinalizePaymentResult
from referral_ledger.services.commission_rates import (
    CommissionSchedule,
    resolve_creator_rate,
    compute_commission,
    cmo_override_amount,
    quantize_money,
)
from referral_ledger.services.payout_service import PayoutService, payout_month_for

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


class AttributionService:
    """Service for writing payment attributions"""

    def __init__(self, db: AsyncSession, schedule: Optional[CommissionSchedule] = None):
        self.db = db
        self.schedule = schedule or settings.commission_schedule()
        self.payouts = PayoutService(db)

    async def get_attribution(self, order_id: str) -> Optional[PaymentAttribution]:
        result = await self.db.execute(
            select(PaymentAttribution).where(PaymentAttribution.order_id == order_id)
        )
        return result.scalar_one_or_none()

    async def finalize_payment(self, request: FinalizePaymentRequest) -> FinalizePaymentResult:
        """
        Attribute a completed payment. Safe to call any number of times per order.

        Returns a structured result instead of raising, so webhook and checkout
        callers never have to handle ledger exceptions.
        """
        try:
            existing = await self.get_attribution(request.order_id)
            if existing:
                logger.info(f"Order {request.order_id} already attributed, skipping")
                return self._already_attributed(existing)

            attribution = await self._write_attribution(request)
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            # Lost a race against another writer for the same order
            existing = await self.get_attribution(request.order_id)
            if existing:
                logger.info(f"Order {request.order_id} attributed concurrently, skipping")
                return self._already_attributed(existing)
            logger.error(f"Integrity error finalizing {request.order_id}: {e.orig}")
            return FinalizePaymentResult(
                success=False,
                order_id=request.order_id,
                error=f"Integrity error: {e.orig}",
            )
        except Exception as e:
            await self.db.rollback()
            logger.exception(f"Failed to finalize payment {request.order_id}")
            return FinalizePaymentResult(
                success=False,
                order_id=request.order_id,
                error=str(e),
            )

        logger.info(
            f"Attributed order {attribution.order_id} to creator {attribution.creator_id} "
            f"commission={attribution.commission_amount} rate={attribution.commission_rate}"
        )
        return FinalizePaymentResult(
            success=True,
            order_id=attribution.order_id,
            attribution_id=attribution.id,
            creator_id=attribution.creator_id,
            commission_amount=attribution.commission_amount,
        )

    @staticmethod
    def _already_attributed(attribution: PaymentAttribution) -> FinalizePaymentResult:
        return FinalizePaymentResult(
            success=True,
            order_id=attribution.order_id,
            already_attributed=True,
            attribution_id=attribution.id,
            creator_id=attribution.creator_id,
            commission_amount=attribution.commission_amount,
        )

    # ========================================================================
    # Creator resolution
    # ========================================================================

    async def _active_discount_code(self, code: Optional[str]) -> Optional[DiscountCode]:
        if not code:
            return None
        result = await self.db.execute(
            select(DiscountCode).where(
                DiscountCode.code == code,
                DiscountCode.is_active == True,  # noqa: E712
            )
        )
        discount_code = result.scalar_one_or_none()
        if not discount_code:
            logger.warning(f"Unknown or inactive discount code {code}")
        return discount_code

    async def resolve_creator(
        self,
        request: FinalizePaymentRequest,
    ) -> Tuple[Optional[CreatorAccount], Optional[DiscountCode], Optional[UserAttribution], Optional[str]]:
        """
        Find the creator to credit.

        Returns (creator, discount_code, existing user attribution, referral source).
        A user already bound to a creator always stays with that creator.
        """
        discount_code = await self._active_discount_code(request.discount_code)

        result = await self.db.execute(
            select(UserAttribution).where(UserAttribution.user_id == request.user_id)
        )
        user_attribution = result.scalar_one_or_none()
        if user_attribution:
            creator = await self.db.get(CreatorAccount, user_attribution.creator_id)
            return creator, discount_code, user_attribution, user_attribution.referral_source

        if request.referral_code:
            result = await self.db.execute(
                select(CreatorAccount).where(CreatorAccount.referral_code == request.referral_code)
            )
            creator = result.scalar_one_or_none()
            if creator:
                return creator, discount_code, None, ReferralSource.LINK.value
            logger.warning(f"Unknown referral code {request.referral_code} on order {request.order_id}")

        if discount_code:
            creator = await self.db.get(CreatorAccount, discount_code.creator_id)
            if creator:
                return creator, discount_code, None, ReferralSource.DISCOUNT_CODE.value

        return None, discount_code, None, None

    # ========================================================================
    # Write path
    # ========================================================================

    async def _write_attribution(self, request: FinalizePaymentRequest) -> PaymentAttribution:
        creator, discount_code, user_attribution, source = await self.resolve_creator(request)

        # A code only earns the conversion when it belongs to the credited creator
        credited_code_id: Optional[uuid.UUID] = None
        if creator and discount_code and discount_code.creator_id == creator.id:
            credited_code_id = discount_code.id

        if creator and user_attribution is None:
            self.db.add(UserAttribution(
                user_id=request.user_id,
                creator_id=creator.id,
                discount_code_id=credited_code_id,
                referral_source=source,
            ))

        final_amount = quantize_money(request.amount)
        original_amount = quantize_money(
            request.original_amount if request.original_amount is not None else request.amount
        )
        discount_applied = max(original_amount - final_amount, ZERO)

        if creator:
            rate = resolve_creator_rate(
                creator.lifetime_paid_users,
                creator.custom_commission_rate,
                self.schedule,
            )
            commission = compute_commission(final_amount, rate)
        else:
            rate = Decimal("0")
            commission = ZERO

        payment_month = payout_month_for(request.paid_at)

        attribution = PaymentAttribution(
            order_id=request.order_id,
            user_id=request.user_id,
            enrollment_id=request.enrollment_id,
            creator_id=creator.id if creator else None,
            discount_code_id=credited_code_id,
            original_amount=original_amount,
            final_amount=final_amount,
            discount_applied=discount_applied,
            commission_rate=rate,
            commission_amount=commission,
            tier=request.tier,
            payment_type=request.payment_type.value,
            payment_month=payment_month,
        )
        self.db.add(attribution)
        # Fires the order_id unique constraint before any cache is touched
        await self.db.flush()

        if not creator:
            logger.info(f"Order {request.order_id} recorded as direct sale")
            return attribution

        await self.db.execute(
            update(CreatorAccount)
            .where(CreatorAccount.id == creator.id)
            .values(
                lifetime_paid_users=CreatorAccount.lifetime_paid_users + 1,
                available_balance=CreatorAccount.available_balance + commission,
            )
        )
        await self.payouts.record_creator_commission(creator.id, payment_month, commission)

        if credited_code_id:
            await self.db.execute(
                update(DiscountCode)
                .where(DiscountCode.id == credited_code_id)
                .values(paid_conversions=DiscountCode.paid_conversions + 1)
            )

        if creator.cmo_id:
            override = cmo_override_amount(commission, self.schedule)
            await self.payouts.record_cmo_override(creator.cmo_id, payment_month, override)

        return attribution
