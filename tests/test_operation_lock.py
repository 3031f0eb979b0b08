"""Single-flight guard for bulk operations."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from referral_ledger.models import OperationLock
from referral_ledger.services.exceptions import OperationInProgressError
from referral_ledger.services.operation_lock import single_flight


class TestSingleFlight:

    @pytest.mark.asyncio
    async def test_second_caller_is_refused(self, db, session_factory):
        async with single_flight(db, "recalculate_stats"):
            async with session_factory() as other:
                with pytest.raises(OperationInProgressError):
                    async with single_flight(other, "recalculate_stats"):
                        pass

    @pytest.mark.asyncio
    async def test_names_are_independent(self, db, session_factory):
        async with single_flight(db, "recalculate_stats"):
            async with session_factory() as other:
                async with single_flight(other, "reconcile_orphans"):
                    pass

    @pytest.mark.asyncio
    async def test_released_on_exit(self, db):
        async with single_flight(db, "recalculate_stats"):
            pass

        async with single_flight(db, "recalculate_stats"):
            pass

        remaining = (await db.execute(select(OperationLock))).scalars().all()
        assert remaining == []

    @pytest.mark.asyncio
    async def test_released_when_block_raises(self, db):
        with pytest.raises(RuntimeError):
            async with single_flight(db, "recalculate_stats"):
                raise RuntimeError("boom")

        remaining = (await db.execute(select(OperationLock))).scalars().all()
        assert remaining == []

    @pytest.mark.asyncio
    async def test_stale_lock_is_reclaimed(self, db, session_factory):
        past = datetime.now(timezone.utc) - timedelta(hours=2)
        async with session_factory() as crashed:
            crashed.add(OperationLock(
                name="recalculate_stats",
                acquired_at=past,
                expires_at=past + timedelta(hours=1),
            ))
            await crashed.commit()

        async with single_flight(db, "recalculate_stats"):
            lock = (await db.execute(select(OperationLock))).scalar_one()
            assert lock.expires_at.replace(tzinfo=None) > datetime.now(timezone.utc).replace(tzinfo=None)
