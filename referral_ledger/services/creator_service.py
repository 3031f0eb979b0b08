"""
Creator Service

Admin operations on referral program participants:
- Creator and CMO registration with referral codes
- Commission overrides and CMO assignment (audited)
- Discount codes
- Creator stats
"""

import logging
import random
import string
import uuid
from decimal import Decimal
from typing import Optional, List, Tuple

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.config import settings
from referral_ledger.models.attribution import PaymentAttribution
from referral_ledger.models.creator import CreatorAccount, CMOAccount, DiscountCode
from referral_ledger.schemas.creator import CreatorCreate, CMOCreate, DiscountCodeCreate
from referral_ledger.services.audit_service import AuditService
from referral_ledger.services.commission_rates import CommissionSchedule, resolve_creator_rate, quantize_money
from referral_ledger.services.exceptions import LedgerError, NotFoundError
from referral_ledger.services.payout_service import payout_month_for

logger = logging.getLogger(__name__)


class CreatorService:
    """Service for creator, CMO and discount code administration"""

    def __init__(self, db: AsyncSession, schedule: Optional[CommissionSchedule] = None):
        self.db = db
        self.schedule = schedule or settings.commission_schedule()

    # ========================================================================
    # Referral Code Generation
    # ========================================================================

    async def generate_referral_code(self, name: str, model=CreatorAccount) -> str:
        """
        Generate unique referral code from a display name
        Example: RAVI2K5M (first 4 letters of name + 4 random)
        """
        prefix = ''.join(c for c in name.upper() if c.isalpha())[:4]
        if len(prefix) < 4:
            prefix = prefix.ljust(4, 'X')

        while True:
            suffix = ''.join(random.choices(string.ascii_uppercase + string.digits, k=4))
            code = f"{prefix}{suffix}"

            result = await self.db.execute(
                select(model.id).where(model.referral_code == code)
            )
            if not result.scalar_one_or_none():
                return code

    # ========================================================================
    # CMOs
    # ========================================================================

    async def create_cmo(self, data: CMOCreate) -> CMOAccount:
        referral_code = data.referral_code or await self.generate_referral_code(data.display_name, CMOAccount)
        cmo = CMOAccount(display_name=data.display_name, referral_code=referral_code)
        self.db.add(cmo)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise LedgerError(f"Referral code {referral_code} is already taken")
        await self.db.refresh(cmo)
        logger.info(f"Created CMO {cmo.referral_code}")
        return cmo

    async def get_cmo(self, cmo_id: uuid.UUID) -> CMOAccount:
        cmo = await self.db.get(CMOAccount, cmo_id)
        if not cmo:
            raise NotFoundError("CMO not found", {"id": str(cmo_id)})
        return cmo

    async def list_cmos(self) -> List[CMOAccount]:
        result = await self.db.execute(select(CMOAccount).order_by(CMOAccount.display_name))
        return list(result.scalars().all())

    # ========================================================================
    # Creators
    # ========================================================================

    async def create_creator(self, data: CreatorCreate) -> CreatorAccount:
        if data.cmo_id:
            await self.get_cmo(data.cmo_id)

        referral_code = data.referral_code or await self.generate_referral_code(data.display_name)
        creator = CreatorAccount(
            display_name=data.display_name,
            referral_code=referral_code,
            cmo_id=data.cmo_id,
            custom_commission_rate=data.custom_commission_rate,
        )
        self.db.add(creator)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise LedgerError(f"Referral code {referral_code} is already taken")
        await self.db.refresh(creator)
        logger.info(f"Created creator {creator.referral_code}")
        return creator

    async def get_creator(self, creator_id: uuid.UUID) -> CreatorAccount:
        creator = await self.db.get(CreatorAccount, creator_id)
        if not creator:
            raise NotFoundError("Creator not found", {"id": str(creator_id)})
        return creator

    async def list_creators(
        self,
        cmo_id: Optional[uuid.UUID] = None,
        search: Optional[str] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> Tuple[List[CreatorAccount], int]:
        stmt = select(CreatorAccount)
        if cmo_id:
            stmt = stmt.where(CreatorAccount.cmo_id == cmo_id)
        if search:
            pattern = f"%{search}%"
            stmt = stmt.where(
                CreatorAccount.display_name.ilike(pattern)
                | CreatorAccount.referral_code.ilike(pattern)
            )

        total = (await self.db.execute(select(func.count()).select_from(stmt.subquery()))).scalar()

        stmt = stmt.order_by(CreatorAccount.lifetime_paid_users.desc()).offset(skip).limit(limit)
        result = await self.db.execute(stmt)
        return list(result.scalars().all()), total

    async def set_commission_override(
        self,
        creator_id: uuid.UUID,
        rate: Optional[Decimal],
        operator_id: Optional[uuid.UUID] = None,
    ) -> CreatorAccount:
        """
        Set or clear (rate=None) the creator's fixed commission rate.

        Applies to future attributions only.
        """
        creator = await self.get_creator(creator_id)
        old_rate = creator.custom_commission_rate
        creator.custom_commission_rate = rate

        await AuditService(self.db).log(
            action="SET_OVERRIDE" if rate is not None else "CLEAR_OVERRIDE",
            entity_type="CREATOR",
            entity_id=creator.id,
            operator_id=operator_id,
            old_values={"custom_commission_rate": str(old_rate) if old_rate is not None else None},
            new_values={"custom_commission_rate": str(rate) if rate is not None else None},
            description=f"Commission override for {creator.referral_code}",
        )
        await self.db.commit()
        await self.db.refresh(creator)
        logger.info(f"Commission override for {creator.referral_code}: {old_rate} -> {rate}")
        return creator

    async def assign_cmo(
        self,
        creator_id: uuid.UUID,
        cmo_id: Optional[uuid.UUID],
        operator_id: Optional[uuid.UUID] = None,
    ) -> CreatorAccount:
        """Attach the creator to a CMO, or detach with cmo_id=None."""
        creator = await self.get_creator(creator_id)
        if cmo_id:
            await self.get_cmo(cmo_id)

        old_cmo = creator.cmo_id
        creator.cmo_id = cmo_id

        await AuditService(self.db).log(
            action="ASSIGN_CMO",
            entity_type="CREATOR",
            entity_id=creator.id,
            operator_id=operator_id,
            old_values={"cmo_id": str(old_cmo) if old_cmo else None},
            new_values={"cmo_id": str(cmo_id) if cmo_id else None},
            description=f"CMO assignment for {creator.referral_code}",
        )
        await self.db.commit()
        await self.db.refresh(creator)
        return creator

    async def get_creator_stats(self, creator_id: uuid.UUID) -> dict:
        creator = await self.get_creator(creator_id)

        this_month = await self.db.execute(
            select(func.count(PaymentAttribution.id)).where(
                PaymentAttribution.creator_id == creator.id,
                PaymentAttribution.payment_month == payout_month_for(),
            )
        )
        lifetime = await self.db.execute(
            select(func.coalesce(func.sum(PaymentAttribution.commission_amount), 0)).where(
                PaymentAttribution.creator_id == creator.id
            )
        )

        if creator.custom_commission_rate is not None:
            rate_source = "custom"
        elif creator.lifetime_paid_users >= self.schedule.tier_threshold:
            rate_source = "elevated"
        else:
            rate_source = "base"

        return {
            "creator_id": creator.id,
            "referral_code": creator.referral_code,
            "lifetime_paid_users": creator.lifetime_paid_users,
            "this_month_paid_users": this_month.scalar() or 0,
            "available_balance": creator.available_balance,
            "total_withdrawn": creator.total_withdrawn,
            "lifetime_commission": quantize_money(Decimal(str(lifetime.scalar() or 0))),
            "current_rate": resolve_creator_rate(
                creator.lifetime_paid_users, creator.custom_commission_rate, self.schedule
            ),
            "rate_source": rate_source,
            "users_to_next_tier": max(self.schedule.tier_threshold - creator.lifetime_paid_users, 0),
        }

    # ========================================================================
    # Discount Codes
    # ========================================================================

    async def create_discount_code(self, creator_id: uuid.UUID, data: DiscountCodeCreate) -> DiscountCode:
        await self.get_creator(creator_id)
        discount_code = DiscountCode(
            code=data.code,
            creator_id=creator_id,
            discount_percent=data.discount_percent,
            is_active=True,
        )
        self.db.add(discount_code)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise LedgerError(f"Discount code {data.code} already exists")
        await self.db.refresh(discount_code)
        logger.info(f"Created discount code {discount_code.code} for creator {creator_id}")
        return discount_code

    async def list_discount_codes(self, creator_id: uuid.UUID) -> List[DiscountCode]:
        result = await self.db.execute(
            select(DiscountCode)
            .where(DiscountCode.creator_id == creator_id)
            .order_by(DiscountCode.created_at.desc())
        )
        return list(result.scalars().all())

    async def set_discount_code_active(self, code_id: uuid.UUID, is_active: bool) -> DiscountCode:
        discount_code = await self.db.get(DiscountCode, code_id)
        if not discount_code:
            raise NotFoundError("Discount code not found", {"id": str(code_id)})
        discount_code.is_active = is_active
        await self.db.commit()
        await self.db.refresh(discount_code)
        return discount_code
