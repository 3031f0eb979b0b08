"""
Withdrawal Service

Creator withdrawals against available_balance:
- Request (validated against balance and minimum, fee computed)
- Approve (moves the amount into total_withdrawn)
- Reject
- Mark paid (after the bank transfer)
"""

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, List, Tuple

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.config import settings
from referral_ledger.models.creator import CreatorAccount
from referral_ledger.models.withdrawal import WithdrawalRequest, WithdrawalStatus
from referral_ledger.schemas.withdrawal import WithdrawalCreate
from referral_ledger.services.audit_service import AuditService
from referral_ledger.services.commission_rates import quantize_money
from referral_ledger.services.exceptions import NotFoundError, PayoutError
from referral_ledger.services.payout_service import verify_confirmation_code

logger = logging.getLogger(__name__)


class WithdrawalService:
    """Service for creator withdrawal requests"""

    def __init__(
        self,
        db: AsyncSession,
        fee_percent: Optional[Decimal] = None,
        min_amount: Optional[Decimal] = None,
        confirmation_threshold: Optional[Decimal] = None,
        confirmation_code: Optional[str] = None,
    ):
        self.db = db
        self.fee_percent = fee_percent if fee_percent is not None else settings.WITHDRAWAL_FEE_PERCENT
        self.min_amount = min_amount if min_amount is not None else settings.MIN_WITHDRAWAL_AMOUNT
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

    async def _get_creator(self, creator_id: uuid.UUID) -> CreatorAccount:
        creator = await self.db.get(CreatorAccount, creator_id)
        if not creator:
            raise NotFoundError("Creator not found", {"id": str(creator_id)})
        return creator

    async def get_withdrawal(self, withdrawal_id: uuid.UUID) -> WithdrawalRequest:
        withdrawal = await self.db.get(WithdrawalRequest, withdrawal_id)
        if not withdrawal:
            raise NotFoundError("Withdrawal request not found", {"id": str(withdrawal_id)})
        return withdrawal

    async def _pending_total(self, creator_id: uuid.UUID) -> Decimal:
        result = await self.db.execute(
            select(func.coalesce(func.sum(WithdrawalRequest.amount), 0)).where(
                WithdrawalRequest.creator_id == creator_id,
                WithdrawalRequest.status == WithdrawalStatus.PENDING.value,
            )
        )
        return quantize_money(Decimal(str(result.scalar() or 0)))

    async def request_withdrawal(self, data: WithdrawalCreate) -> WithdrawalRequest:
        """
        Create a pending withdrawal.

        The amount must be at least the minimum and fit in the balance left
        after other pending requests.
        """
        creator = await self._get_creator(data.creator_id)
        amount = quantize_money(data.amount)

        if amount <= 0:
            raise PayoutError("Withdrawal amount must be positive")
        if amount < self.min_amount:
            raise PayoutError(
                f"Minimum withdrawal is {self.min_amount}",
                {"amount": str(amount), "minimum": str(self.min_amount)},
            )

        pending = await self._pending_total(creator.id)
        available = creator.available_balance - pending
        if amount > available:
            raise PayoutError(
                "Insufficient balance",
                {"amount": str(amount), "available": str(available)},
            )

        fee = quantize_money(amount * self.fee_percent / Decimal("100"))
        withdrawal = WithdrawalRequest(
            creator_id=creator.id,
            amount=amount,
            fee_amount=fee,
            net_amount=amount - fee,
            status=WithdrawalStatus.PENDING.value,
            bank_details=data.bank_details,
        )
        self.db.add(withdrawal)
        await self.db.commit()
        await self.db.refresh(withdrawal)
        logger.info(f"Withdrawal {withdrawal.id} requested by creator {creator.id}: {amount}")
        return withdrawal

    async def approve(
        self,
        withdrawal_id: uuid.UUID,
        operator_id: Optional[uuid.UUID] = None,
        confirmation_code: Optional[str] = None,
    ) -> WithdrawalRequest:
        withdrawal = await self.get_withdrawal(withdrawal_id)
        if withdrawal.status != WithdrawalStatus.PENDING.value:
            raise PayoutError(f"Cannot approve withdrawal in status {withdrawal.status}")

        creator = await self._get_creator(withdrawal.creator_id)
        if withdrawal.amount > creator.available_balance:
            raise PayoutError(
                "Insufficient balance",
                {"amount": str(withdrawal.amount), "available": str(creator.available_balance)},
            )

        verify_confirmation_code(
            withdrawal.amount,
            confirmation_code,
            self.confirmation_threshold,
            self.confirmation_code,
        )

        await self.db.execute(
            update(CreatorAccount)
            .where(CreatorAccount.id == creator.id)
            .values(
                total_withdrawn=CreatorAccount.total_withdrawn + withdrawal.amount,
                available_balance=CreatorAccount.available_balance - withdrawal.amount,
            )
        )
        withdrawal.status = WithdrawalStatus.APPROVED.value
        withdrawal.processed_by = operator_id
        withdrawal.processed_at = datetime.now(timezone.utc)

        await AuditService(self.db).log(
            action="APPROVE",
            entity_type="WITHDRAWAL",
            entity_id=withdrawal.id,
            operator_id=operator_id,
            old_values={"status": WithdrawalStatus.PENDING.value},
            new_values={"status": withdrawal.status, "amount": str(withdrawal.amount)},
            description=f"Approved withdrawal for creator {creator.referral_code}",
        )
        await self.db.commit()
        await self.db.refresh(withdrawal)
        logger.info(f"Withdrawal {withdrawal.id} approved by {operator_id}")
        return withdrawal

    async def reject(
        self,
        withdrawal_id: uuid.UUID,
        reason: str,
        operator_id: Optional[uuid.UUID] = None,
    ) -> WithdrawalRequest:
        withdrawal = await self.get_withdrawal(withdrawal_id)
        if withdrawal.status != WithdrawalStatus.PENDING.value:
            raise PayoutError(f"Cannot reject withdrawal in status {withdrawal.status}")

        withdrawal.status = WithdrawalStatus.REJECTED.value
        withdrawal.rejection_reason = reason
        withdrawal.processed_by = operator_id
        withdrawal.processed_at = datetime.now(timezone.utc)

        await AuditService(self.db).log(
            action="REJECT",
            entity_type="WITHDRAWAL",
            entity_id=withdrawal.id,
            operator_id=operator_id,
            new_values={"status": withdrawal.status, "reason": reason},
        )
        await self.db.commit()
        await self.db.refresh(withdrawal)
        return withdrawal

    async def mark_paid(
        self,
        withdrawal_id: uuid.UUID,
        transaction_reference: Optional[str] = None,
        operator_id: Optional[uuid.UUID] = None,
    ) -> WithdrawalRequest:
        withdrawal = await self.get_withdrawal(withdrawal_id)
        if withdrawal.status != WithdrawalStatus.APPROVED.value:
            raise PayoutError("Only approved withdrawals can be marked paid")

        withdrawal.status = WithdrawalStatus.PAID.value
        withdrawal.transaction_reference = transaction_reference
        withdrawal.paid_at = datetime.now(timezone.utc)

        await AuditService(self.db).log(
            action="MARK_PAID",
            entity_type="WITHDRAWAL",
            entity_id=withdrawal.id,
            operator_id=operator_id,
            new_values={"status": withdrawal.status, "transaction_reference": transaction_reference},
        )
        await self.db.commit()
        await self.db.refresh(withdrawal)
        return withdrawal

    async def list_withdrawals(
        self,
        status: Optional[str] = None,
        creator_id: Optional[uuid.UUID] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> Tuple[List[WithdrawalRequest], int]:
        stmt = select(WithdrawalRequest)
        if status:
            stmt = stmt.where(WithdrawalRequest.status == status)
        if creator_id:
            stmt = stmt.where(WithdrawalRequest.creator_id == creator_id)

        total = (await self.db.execute(select(func.count()).select_from(stmt.subquery()))).scalar()

        stmt = stmt.order_by(WithdrawalRequest.created_at.desc()).offset(skip).limit(limit)
        result = await self.db.execute(stmt)
        return list(result.scalars().all()), total
