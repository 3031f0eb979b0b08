"""Attribution writer: idempotence, creator resolution, caches and payouts."""

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import select, func
from sqlalchemy.exc import OperationalError

from referral_ledger.models import (
    PaymentAttribution,
    UserAttribution,
    CreatorPayout,
    CMOPayout,
)
from referral_ledger.services.attribution_service import AttributionService
from referral_ledger.services.payout_service import PayoutService

from tests.conftest import SCHEDULE


async def _count(db, model, *criteria):
    result = await db.execute(select(func.count()).select_from(model).where(*criteria))
    return result.scalar()


class TestFinalizePayment:
    """Core write path"""

    @pytest.mark.asyncio
    async def test_base_tier_commission(self, db, create_creator, request_factory):
        creator = await create_creator("ALICE", lifetime_paid_users=10)

        result = await AttributionService(db, SCHEDULE).finalize_payment(
            request_factory("order-c", amount="1500.00", referral_code="alice")
        )

        assert result.success
        assert not result.already_attributed
        assert result.creator_id == creator.id
        assert result.commission_amount == Decimal("120.00")

        attribution = await AttributionService(db, SCHEDULE).get_attribution("order-c")
        assert attribution.commission_rate == Decimal("0.08")
        assert attribution.payment_type == "card"

        await db.refresh(creator)
        assert creator.lifetime_paid_users == 11
        assert creator.available_balance == Decimal("120.00")

    @pytest.mark.asyncio
    async def test_cmo_receives_override(self, db, create_cmo, create_creator, request_factory):
        cmo = await create_cmo()
        creator = await create_creator("BOB", lifetime_paid_users=500, cmo=cmo)
        paid_at = datetime(2026, 3, 14, 9, 30, tzinfo=timezone.utc)

        result = await AttributionService(db, SCHEDULE).finalize_payment(
            request_factory("order-d", amount="1500.00", referral_code="BOB", paid_at=paid_at)
        )

        assert result.commission_amount == Decimal("180.00")
        cmo_payout = await PayoutService(db).get_payout_for_month("cmo", cmo.id, date(2026, 3, 1))
        assert cmo_payout.total_paid_users == 1
        assert cmo_payout.commission_amount == Decimal("5.40")
        assert cmo_payout.status == "pending"

        creator_payout = await PayoutService(db).get_payout_for_month("creator", creator.id, date(2026, 3, 1))
        assert creator_payout.total_paid_users == 1
        assert creator_payout.commission_amount == Decimal("180.00")

    @pytest.mark.asyncio
    async def test_payouts_accumulate_within_month(self, db, create_cmo, create_creator, request_factory):
        cmo = await create_cmo()
        creator = await create_creator("CARA", cmo=cmo)
        paid_at = datetime(2026, 5, 2, tzinfo=timezone.utc)
        service = AttributionService(db, SCHEDULE)

        await service.finalize_payment(request_factory("o-1", amount="1000", referral_code="CARA", paid_at=paid_at))
        await service.finalize_payment(request_factory("o-2", amount="500", referral_code="CARA", paid_at=paid_at))

        creator_payout = await PayoutService(db).get_payout_for_month("creator", creator.id, date(2026, 5, 1))
        assert creator_payout.total_paid_users == 2
        assert creator_payout.commission_amount == Decimal("120.00")

        cmo_payout = await PayoutService(db).get_payout_for_month("cmo", cmo.id, date(2026, 5, 1))
        assert cmo_payout.total_paid_users == 2
        assert cmo_payout.commission_amount == Decimal("3.60")
        assert await _count(db, CMOPayout) == 1

    @pytest.mark.asyncio
    async def test_payment_month_follows_paid_at(self, db, create_creator, request_factory):
        await create_creator("DANA")
        paid_at = datetime(2025, 12, 31, 23, 0, tzinfo=timezone.utc)

        await AttributionService(db, SCHEDULE).finalize_payment(
            request_factory("order-dec", referral_code="DANA", paid_at=paid_at)
        )

        attribution = await AttributionService(db, SCHEDULE).get_attribution("order-dec")
        assert attribution.payment_month == date(2025, 12, 1)


class TestIdempotence:
    """Repeated finalize calls for one order"""

    @pytest.mark.asyncio
    async def test_second_call_is_no_op(self, db, create_cmo, create_creator, request_factory):
        cmo = await create_cmo()
        creator = await create_creator("ALICE", cmo=cmo)
        request = request_factory("order-dup", amount="1000", referral_code="ALICE")
        service = AttributionService(db, SCHEDULE)

        first = await service.finalize_payment(request)
        second = await service.finalize_payment(request)

        assert first.success and second.success
        assert second.already_attributed
        assert second.attribution_id == first.attribution_id
        assert second.commission_amount == Decimal("80.00")

        assert await _count(db, PaymentAttribution) == 1
        await db.refresh(creator)
        assert creator.lifetime_paid_users == 1
        assert creator.available_balance == Decimal("80.00")

        payout = (await db.execute(select(CMOPayout))).scalar_one()
        assert payout.total_paid_users == 1

    @pytest.mark.asyncio
    async def test_duplicate_insert_reports_already_attributed(self, db, create_creator, request_factory, monkeypatch):
        """Losing a race on the order_id constraint is reported as a duplicate."""
        await create_creator("ALICE")
        request = request_factory("order-race", referral_code="ALICE")
        service = AttributionService(db, SCHEDULE)
        await service.finalize_payment(request)

        original = service.get_attribution
        calls = {"n": 0}

        async def miss_first_lookup(order_id):
            calls["n"] += 1
            if calls["n"] == 1:
                return None
            return await original(order_id)

        monkeypatch.setattr(service, "get_attribution", miss_first_lookup)
        result = await service.finalize_payment(request)

        assert result.success
        assert result.already_attributed
        assert await _count(db, PaymentAttribution) == 1


class TestCreatorResolution:
    """Sticky attribution, codes and direct sales"""

    @pytest.mark.asyncio
    async def test_sticky_attribution_beats_new_referral_code(self, db, create_creator, request_factory):
        alice = await create_creator("ALICE")
        bob = await create_creator("BOB")
        user_id = uuid.uuid4()
        service = AttributionService(db, SCHEDULE)

        await service.finalize_payment(request_factory("o-1", user_id=user_id, referral_code="ALICE"))
        result = await service.finalize_payment(request_factory("o-2", user_id=user_id, referral_code="BOB"))

        assert result.creator_id == alice.id
        await db.refresh(bob)
        assert bob.lifetime_paid_users == 0

        user_attribution = (await db.execute(select(UserAttribution))).scalar_one()
        assert user_attribution.creator_id == alice.id
        assert user_attribution.referral_source == "link"

    @pytest.mark.asyncio
    async def test_sticky_attribution_without_code(self, db, create_creator, request_factory):
        alice = await create_creator("ALICE")
        user_id = uuid.uuid4()
        service = AttributionService(db, SCHEDULE)

        await service.finalize_payment(request_factory("o-1", user_id=user_id, referral_code="ALICE"))
        result = await service.finalize_payment(request_factory("o-2", user_id=user_id, tier="upgrade-pro", payment_type="upgrade"))

        assert result.creator_id == alice.id

    @pytest.mark.asyncio
    async def test_discount_code_resolves_owner(self, db, create_creator, create_discount_code, request_factory):
        creator = await create_creator("ALICE")
        code = await create_discount_code(creator, "ALICE10")

        result = await AttributionService(db, SCHEDULE).finalize_payment(
            request_factory("o-dc", amount="900", original_amount=Decimal("1000"), discount_code="alice10")
        )

        assert result.creator_id == creator.id
        attribution = await AttributionService(db, SCHEDULE).get_attribution("o-dc")
        assert attribution.discount_code_id == code.id
        assert attribution.discount_applied == Decimal("100.00")
        assert attribution.commission_amount == Decimal("72.00")

        await db.refresh(code)
        assert code.paid_conversions == 1
        user_attribution = (await db.execute(select(UserAttribution))).scalar_one()
        assert user_attribution.referral_source == "discount_code"

    @pytest.mark.asyncio
    async def test_referral_code_beats_discount_code(self, db, create_creator, create_discount_code, request_factory):
        alice = await create_creator("ALICE")
        bob = await create_creator("BOB")
        bob_code = await create_discount_code(bob, "BOB20")

        result = await AttributionService(db, SCHEDULE).finalize_payment(
            request_factory("o-1", referral_code="ALICE", discount_code="BOB20")
        )

        assert result.creator_id == alice.id
        attribution = await AttributionService(db, SCHEDULE).get_attribution("o-1")
        assert attribution.discount_code_id is None
        await db.refresh(bob_code)
        assert bob_code.paid_conversions == 0

    @pytest.mark.asyncio
    async def test_inactive_discount_code_is_ignored(self, db, create_creator, create_discount_code, request_factory):
        creator = await create_creator("ALICE")
        await create_discount_code(creator, "OLDCODE", is_active=False)

        result = await AttributionService(db, SCHEDULE).finalize_payment(
            request_factory("o-1", discount_code="OLDCODE")
        )

        assert result.success
        assert result.creator_id is None

    @pytest.mark.asyncio
    async def test_direct_sale(self, db, request_factory):
        result = await AttributionService(db, SCHEDULE).finalize_payment(request_factory("o-direct"))

        assert result.success
        assert result.creator_id is None
        assert result.commission_amount == Decimal("0.00")
        assert await _count(db, UserAttribution) == 0
        assert await _count(db, CreatorPayout) == 0

    @pytest.mark.asyncio
    async def test_unknown_referral_code_is_direct_sale(self, db, create_creator, request_factory):
        await create_creator("ALICE")

        result = await AttributionService(db, SCHEDULE).finalize_payment(
            request_factory("o-unknown", referral_code="NOBODY")
        )

        assert result.success
        assert result.creator_id is None
        attribution = await AttributionService(db, SCHEDULE).get_attribution("o-unknown")
        assert attribution.commission_rate == Decimal("0")


class TestRateSnapshot:
    """Rates are frozen into each attribution"""

    @pytest.mark.asyncio
    async def test_override_change_does_not_touch_past_rows(self, db, create_creator, request_factory):
        creator = await create_creator("ALICE")
        service = AttributionService(db, SCHEDULE)
        await service.finalize_payment(request_factory("o-1", amount="1000", referral_code="ALICE"))

        creator.custom_commission_rate = Decimal("0.20")
        await db.commit()
        await service.finalize_payment(request_factory("o-2", amount="1000", referral_code="ALICE"))

        first = await service.get_attribution("o-1")
        second = await service.get_attribution("o-2")
        assert first.commission_rate == Decimal("0.08")
        assert first.commission_amount == Decimal("80.00")
        assert second.commission_rate == Decimal("0.20")
        assert second.commission_amount == Decimal("200.00")

    @pytest.mark.asyncio
    async def test_rate_uses_count_before_this_payment(self, db, create_creator, request_factory):
        creator = await create_creator("ALICE", lifetime_paid_users=499)
        service = AttributionService(db, SCHEDULE)

        first = await service.finalize_payment(request_factory("o-499", amount="100", referral_code="ALICE"))
        second = await service.finalize_payment(request_factory("o-500", amount="100", referral_code="ALICE"))

        assert first.commission_amount == Decimal("8.00")
        assert second.commission_amount == Decimal("12.00")
        await db.refresh(creator)
        assert creator.lifetime_paid_users == 501


class TestFailureRollback:
    """A failing step leaves no partial state"""

    @pytest.mark.asyncio
    async def test_payout_failure_rolls_back_everything(self, db, create_creator, request_factory, monkeypatch):
        creator = await create_creator("ALICE")
        service = AttributionService(db, SCHEDULE)

        async def boom(*args, **kwargs):
            raise RuntimeError("payout store unavailable")

        monkeypatch.setattr(service.payouts, "record_creator_commission", boom)
        result = await service.finalize_payment(request_factory("o-fail", referral_code="ALICE"))

        assert not result.success
        assert "payout store unavailable" in result.error
        assert await _count(db, PaymentAttribution) == 0
        assert await _count(db, UserAttribution) == 0
        await db.refresh(creator)
        assert creator.lifetime_paid_users == 0
        assert creator.available_balance == Decimal("0.00")

    @pytest.mark.asyncio
    async def test_lookup_failure_is_reported(self, db, request_factory, monkeypatch):
        service = AttributionService(db, SCHEDULE)

        async def locked(order_id):
            raise OperationalError("SELECT payment_attributions", {}, Exception("database is locked"))

        monkeypatch.setattr(service, "get_attribution", locked)
        result = await service.finalize_payment(request_factory("o-locked"))

        assert not result.success
        assert result.order_id == "o-locked"
        assert "database is locked" in result.error
        assert await _count(db, PaymentAttribution) == 0
