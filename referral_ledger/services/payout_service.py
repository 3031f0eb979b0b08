"""
Payout Aggregator

Maintains one payout record per (entity, calendar month) for creators and
CMOs:
- Incremental accumulation as attributions are written
- Period closing (pending -> eligible)
- Operator-confirmed payment (pending/eligible -> paid, irreversible)
"""

import hmac
import logging
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional, List, Dict, Union

from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.config import settings
from referral_ledger.models.payout import CreatorPayout, CMOPayout, PayoutStatus, PayoutKind
from referral_ledger.services.audit_service import AuditService
from referral_ledger.services.exceptions import (
    NotFoundError,
    PayoutError,
    ConfirmationRequiredError,
)

logger = logging.getLogger(__name__)

PayoutRecord = Union[CreatorPayout, CMOPayout]


def payout_month_for(moment: Optional[Union[datetime, date]] = None) -> date:
    """First day of the calendar month containing moment (default: now, UTC)."""
    if moment is None:
        moment = datetime.now(timezone.utc)
    if isinstance(moment, datetime) and moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return date(moment.year, moment.month, 1)


def verify_confirmation_code(
    amount: Decimal,
    supplied_code: Optional[str],
    threshold: Decimal,
    expected_code: Optional[str],
) -> None:
    """
    Require the operator one-time code for amounts at or above threshold.

    With no code configured, large amounts cannot be confirmed at all.
    """
    if amount < threshold:
        return
    if not expected_code:
        raise ConfirmationRequiredError(
            "Confirmation code is not configured; large amounts cannot be approved",
            {"amount": str(amount), "threshold": str(threshold)},
        )
    if not supplied_code or not hmac.compare_digest(supplied_code.strip(), expected_code):
        raise ConfirmationRequiredError(
            "Valid confirmation code required for this amount",
            {"amount": str(amount), "threshold": str(threshold)},
        )


def _model_for(kind: Union[PayoutKind, str]):
    kind = PayoutKind(kind)
    if kind == PayoutKind.CREATOR:
        return CreatorPayout, CreatorPayout.creator_id
    return CMOPayout, CMOPayout.cmo_id


class PayoutService:
    """Service for creator and CMO payout records"""

    def __init__(
        self,
        db: AsyncSession,
        confirmation_threshold: Optional[Decimal] = None,
        confirmation_code: Optional[str] = None,
    ):
        self.db = db
        self.confirmation_threshold = (
            confirmation_threshold
            if confirmation_threshold is not None
            else settings.PAYOUT_CONFIRMATION_THRESHOLD
        )
        self.confirmation_code = (
            confirmation_code
            if confirmation_code is not None
            else settings.PAYOUT_CONFIRMATION_CODE
        )

    # ========================================================================
    # Accumulation
    # ========================================================================

    async def record_creator_commission(
        self,
        creator_id: uuid.UUID,
        payout_month: date,
        commission_amount: Decimal,
        paid_users: int = 1,
    ) -> bool:
        """Add one attribution to the creator's monthly record. Returns True if created."""
        return await self._accumulate(
            PayoutKind.CREATOR, creator_id, payout_month, commission_amount, paid_users
        )

    async def record_cmo_override(
        self,
        cmo_id: uuid.UUID,
        payout_month: date,
        override_amount: Decimal,
        paid_users: int = 1,
    ) -> bool:
        """Add one override to the CMO's monthly record. Returns True if created."""
        return await self._accumulate(
            PayoutKind.CMO, cmo_id, payout_month, override_amount, paid_users
        )

    async def _accumulate(
        self,
        kind: PayoutKind,
        entity_id: uuid.UUID,
        payout_month: date,
        amount: Decimal,
        paid_users: int,
    ) -> bool:
        model, key_column = _model_for(kind)
        increment = (
            update(model)
            .where(key_column == entity_id, model.payout_month == payout_month)
            .values(
                total_paid_users=model.total_paid_users + paid_users,
                commission_amount=model.commission_amount + amount,
                updated_at=datetime.now(timezone.utc),
            )
        )

        existing = await self.get_payout_for_month(kind, entity_id, payout_month)
        if existing:
            await self.db.execute(increment)
            return False

        try:
            async with self.db.begin_nested():
                self.db.add(model(
                    **{key_column.key: entity_id},
                    payout_month=payout_month,
                    total_paid_users=paid_users,
                    commission_amount=amount,
                    status=PayoutStatus.PENDING.value,
                ))
        except IntegrityError:
            # Created by a concurrent writer between the update and the insert
            logger.info(f"{kind.value} payout {entity_id}/{payout_month} created concurrently, incrementing")
            await self.db.execute(increment)
            return False

        logger.info(f"Created {kind.value} payout record for {entity_id} month {payout_month}")
        return True

    # ========================================================================
    # Queries
    # ========================================================================

    async def get_payout(self, kind: Union[PayoutKind, str], payout_id: uuid.UUID) -> PayoutRecord:
        model, _ = _model_for(kind)
        result = await self.db.execute(select(model).where(model.id == payout_id))
        payout = result.scalar_one_or_none()
        if not payout:
            raise NotFoundError("Payout not found", {"kind": PayoutKind(kind).value, "id": str(payout_id)})
        return payout

    async def get_payout_for_month(
        self,
        kind: Union[PayoutKind, str],
        entity_id: uuid.UUID,
        payout_month: date,
    ) -> Optional[PayoutRecord]:
        model, key_column = _model_for(kind)
        result = await self.db.execute(
            select(model).where(key_column == entity_id, model.payout_month == payout_month)
        )
        return result.scalar_one_or_none()

    async def list_payouts(
        self,
        kind: Union[PayoutKind, str],
        status: Optional[str] = None,
        entity_id: Optional[uuid.UUID] = None,
        payout_month: Optional[date] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> tuple[List[PayoutRecord], int]:
        model, key_column = _model_for(kind)
        stmt = select(model).order_by(model.payout_month.desc(), model.created_at.desc())

        if status:
            stmt = stmt.where(model.status == status)
        if entity_id:
            stmt = stmt.where(key_column == entity_id)
        if payout_month:
            stmt = stmt.where(model.payout_month == payout_month)

        total = (await self.db.execute(select(func.count()).select_from(stmt.subquery()))).scalar()

        result = await self.db.execute(stmt.offset(skip).limit(limit))
        return list(result.scalars().all()), total

    # ========================================================================
    # State transitions
    # ========================================================================

    async def close_periods(self, today: Optional[date] = None) -> Dict[str, int]:
        """
        Move pending records of finished months to eligible.

        Operator-triggered; the current month always stays pending.
        """
        current_month = payout_month_for(today)
        closed = {}
        for kind in PayoutKind:
            model, _ = _model_for(kind)
            result = await self.db.execute(
                update(model)
                .where(
                    model.status == PayoutStatus.PENDING.value,
                    model.payout_month < current_month,
                )
                .values(status=PayoutStatus.ELIGIBLE.value, updated_at=datetime.now(timezone.utc))
                .execution_options(synchronize_session="fetch")
            )
            closed[kind.value] = result.rowcount or 0

        await self.db.commit()
        logger.info(f"Closed payout periods before {current_month}: {closed}")
        return closed

    async def mark_paid(
        self,
        kind: Union[PayoutKind, str],
        payout_id: uuid.UUID,
        operator_id: Optional[uuid.UUID] = None,
        confirmation_code: Optional[str] = None,
    ) -> PayoutRecord:
        """
        Mark a payout record as paid.

        Only pending or eligible records can be paid, and paid is final.
        Amounts at or above the confirmation threshold need the operator code.
        """
        kind = PayoutKind(kind)
        payout = await self.get_payout(kind, payout_id)

        if payout.status == PayoutStatus.PAID.value:
            raise PayoutError("Payout is already paid", {"id": str(payout_id)})
        if payout.status not in (PayoutStatus.PENDING.value, PayoutStatus.ELIGIBLE.value):
            raise PayoutError(f"Cannot pay payout in status {payout.status}", {"id": str(payout_id)})

        verify_confirmation_code(
            payout.commission_amount,
            confirmation_code,
            self.confirmation_threshold,
            self.confirmation_code,
        )

        old_status = payout.status
        payout.status = PayoutStatus.PAID.value
        payout.paid_at = datetime.now(timezone.utc)
        payout.paid_by = operator_id

        await AuditService(self.db).log(
            action="MARK_PAID",
            entity_type=f"{kind.value.upper()}_PAYOUT",
            entity_id=payout.id,
            operator_id=operator_id,
            old_values={"status": old_status},
            new_values={"status": payout.status, "commission_amount": str(payout.commission_amount)},
            description=f"Marked {kind.value} payout for {payout.payout_month} as paid",
        )

        await self.db.commit()
        await self.db.refresh(payout)
        logger.info(f"{kind.value} payout {payout_id} marked paid by {operator_id}")
        return payout
