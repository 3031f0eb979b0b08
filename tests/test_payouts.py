"""Payout records: accumulation, period closing and payment."""

import uuid
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import select

from referral_ledger.models import CMOPayout, AuditLog
from referral_ledger.services.exceptions import (
    ConfirmationRequiredError,
    NotFoundError,
    PayoutError,
)
from referral_ledger.services.payout_service import PayoutService, payout_month_for


class TestPayoutMonth:

    def test_first_day_of_month(self):
        assert payout_month_for(datetime(2026, 7, 31, 23, 59)) == date(2026, 7, 1)
        assert payout_month_for(date(2026, 2, 14)) == date(2026, 2, 1)

    def test_converts_to_utc(self):
        ist = timezone(timedelta(hours=5, minutes=30))
        # 2026-08-01 02:00 IST is still July in UTC
        assert payout_month_for(datetime(2026, 8, 1, 2, 0, tzinfo=ist)) == date(2026, 7, 1)


class TestAccumulation:

    @pytest.mark.asyncio
    async def test_creates_then_increments(self, db, create_creator):
        creator = await create_creator("ALICE")
        payouts = PayoutService(db)
        month = date(2026, 6, 1)

        created = await payouts.record_creator_commission(creator.id, month, Decimal("80.00"))
        again = await payouts.record_creator_commission(creator.id, month, Decimal("40.00"))
        await db.commit()

        assert created is True
        assert again is False
        record = await payouts.get_payout_for_month("creator", creator.id, month)
        assert record.total_paid_users == 2
        assert record.commission_amount == Decimal("120.00")
        assert record.status == "pending"

    @pytest.mark.asyncio
    async def test_months_are_separate_records(self, db, create_cmo):
        cmo = await create_cmo()
        payouts = PayoutService(db)

        await payouts.record_cmo_override(cmo.id, date(2026, 6, 1), Decimal("2.40"))
        await payouts.record_cmo_override(cmo.id, date(2026, 7, 1), Decimal("3.60"))
        await db.commit()

        rows = (await db.execute(select(CMOPayout).order_by(CMOPayout.payout_month))).scalars().all()
        assert [(r.payout_month, r.commission_amount) for r in rows] == [
            (date(2026, 6, 1), Decimal("2.40")),
            (date(2026, 7, 1), Decimal("3.60")),
        ]


class TestClosePeriods:

    @pytest.mark.asyncio
    async def test_only_finished_months_become_eligible(self, db, create_creator, create_cmo):
        creator = await create_creator("ALICE")
        cmo = await create_cmo()
        payouts = PayoutService(db)
        await payouts.record_creator_commission(creator.id, date(2026, 5, 1), Decimal("10.00"))
        await payouts.record_creator_commission(creator.id, date(2026, 6, 1), Decimal("10.00"))
        await payouts.record_cmo_override(cmo.id, date(2026, 5, 1), Decimal("0.30"))
        await db.commit()

        closed = await payouts.close_periods(today=date(2026, 6, 15))

        assert closed == {"creator": 1, "cmo": 1}
        may = await payouts.get_payout_for_month("creator", creator.id, date(2026, 5, 1))
        june = await payouts.get_payout_for_month("creator", creator.id, date(2026, 6, 1))
        assert may.status == "eligible"
        assert june.status == "pending"


class TestMarkPaid:

    async def _payout(self, db, creator, amount):
        payouts = PayoutService(db)
        await payouts.record_creator_commission(creator.id, date(2026, 4, 1), Decimal(amount))
        await db.commit()
        return await payouts.get_payout_for_month("creator", creator.id, date(2026, 4, 1))

    @pytest.mark.asyncio
    async def test_marks_paid_and_audits(self, db, create_creator):
        creator = await create_creator("ALICE")
        record = await self._payout(db, creator, "120.00")
        operator = uuid.uuid4()

        paid = await PayoutService(db).mark_paid("creator", record.id, operator_id=operator)

        assert paid.status == "paid"
        assert paid.paid_at is not None
        assert paid.paid_by == operator
        audit = (await db.execute(select(AuditLog).where(AuditLog.action == "MARK_PAID"))).scalar_one()
        assert audit.entity_type == "CREATOR_PAYOUT"
        assert audit.entity_id == record.id

    @pytest.mark.asyncio
    async def test_paid_is_final(self, db, create_creator):
        creator = await create_creator("ALICE")
        record = await self._payout(db, creator, "120.00")
        payouts = PayoutService(db)
        await payouts.mark_paid("creator", record.id)

        with pytest.raises(PayoutError):
            await payouts.mark_paid("creator", record.id)

    @pytest.mark.asyncio
    async def test_eligible_record_can_be_paid(self, db, create_creator):
        creator = await create_creator("ALICE")
        record = await self._payout(db, creator, "120.00")
        payouts = PayoutService(db)
        await payouts.close_periods(today=date(2026, 5, 2))

        paid = await payouts.mark_paid("creator", record.id)

        assert paid.status == "paid"

    @pytest.mark.asyncio
    async def test_unknown_payout(self, db):
        with pytest.raises(NotFoundError):
            await PayoutService(db).mark_paid("cmo", uuid.uuid4())

    @pytest.mark.asyncio
    async def test_large_amount_needs_configured_code(self, db, create_creator):
        creator = await create_creator("ALICE")
        record = await self._payout(db, creator, "75000.00")
        payouts = PayoutService(db, confirmation_threshold=Decimal("50000"), confirmation_code="")

        with pytest.raises(ConfirmationRequiredError):
            await payouts.mark_paid("creator", record.id, confirmation_code="123456")

    @pytest.mark.asyncio
    async def test_large_amount_with_code(self, db, create_creator):
        creator = await create_creator("ALICE")
        record = await self._payout(db, creator, "75000.00")
        payouts = PayoutService(db, confirmation_threshold=Decimal("50000"), confirmation_code="482913")

        with pytest.raises(ConfirmationRequiredError):
            await payouts.mark_paid("creator", record.id)
        with pytest.raises(ConfirmationRequiredError):
            await payouts.mark_paid("creator", record.id, confirmation_code="000000")

        paid = await payouts.mark_paid("creator", record.id, confirmation_code="482913")
        assert paid.status == "paid"

    @pytest.mark.asyncio
    async def test_threshold_is_inclusive(self, db, create_creator):
        creator = await create_creator("ALICE")
        record = await self._payout(db, creator, "50000.00")
        payouts = PayoutService(db, confirmation_threshold=Decimal("50000"), confirmation_code="482913")

        with pytest.raises(ConfirmationRequiredError):
            await payouts.mark_paid("creator", record.id)
