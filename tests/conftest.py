"""
Shared fixtures: a fresh SQLite database per test and small factories for
ledger records.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import uuid
from datetime import datetime, timezone
from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from referral_ledger import models  # noqa: F401
from referral_ledger.database import Base, enable_sqlite_savepoints, get_db
from referral_ledger.models import CMOAccount, CreatorAccount, DiscountCode, RawPayment, UserProfile
from referral_ledger.schemas.attribution import FinalizePaymentRequest
from referral_ledger.services.commission_rates import CommissionSchedule

SCHEDULE = CommissionSchedule(
    base_rate=Decimal("0.08"),
    elevated_rate=Decimal("0.12"),
    tier_threshold=500,
    cmo_override_rate=Decimal("0.03"),
)


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    enable_sqlite_savepoints(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory):
    from referral_ledger.main import app

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


# ============================================================================
# Factories
# ============================================================================

@pytest.fixture
def create_cmo(db):
    async def _create(referral_code="CMOONE", display_name="Campaign Owner"):
        cmo = CMOAccount(display_name=display_name, referral_code=referral_code)
        db.add(cmo)
        await db.commit()
        await db.refresh(cmo)
        return cmo
    return _create


@pytest.fixture
def create_creator(db):
    async def _create(
        referral_code="ALICE",
        lifetime_paid_users=0,
        cmo=None,
        custom_commission_rate=None,
        available_balance=Decimal("0.00"),
        total_withdrawn=Decimal("0.00"),
    ):
        creator = CreatorAccount(
            display_name=referral_code.title(),
            referral_code=referral_code,
            cmo_id=cmo.id if cmo else None,
            lifetime_paid_users=lifetime_paid_users,
            custom_commission_rate=custom_commission_rate,
            available_balance=available_balance,
            total_withdrawn=total_withdrawn,
        )
        db.add(creator)
        await db.commit()
        await db.refresh(creator)
        return creator
    return _create


@pytest.fixture
def create_discount_code(db):
    async def _create(creator, code="SAVE10", discount_percent=Decimal("10"), is_active=True):
        discount_code = DiscountCode(
            code=code,
            creator_id=creator.id,
            discount_percent=discount_percent,
            is_active=is_active,
        )
        db.add(discount_code)
        await db.commit()
        await db.refresh(discount_code)
        return discount_code
    return _create


@pytest.fixture
def create_payment(db):
    async def _create(
        order_id,
        user_id=None,
        status="completed",
        amount=Decimal("1500.00"),
        original_amount=None,
        ref_creator=None,
        discount_code=None,
        tier="pro",
        payment_type="card",
        email=None,
        created_at=None,
    ):
        payment = RawPayment(
            order_id=order_id,
            user_id=user_id,
            status=status,
            amount=amount,
            original_amount=original_amount,
            tier=tier,
            payment_type=payment_type,
            ref_creator=ref_creator,
            discount_code=discount_code,
            created_at=created_at or datetime.now(timezone.utc),
        )
        db.add(payment)
        if email and user_id:
            db.add(UserProfile(user_id=user_id, email=email))
        await db.commit()
        return payment
    return _create


def make_request(order_id="order-1", user_id=None, amount="1500.00", **kwargs) -> FinalizePaymentRequest:
    """Build a finalize request with sensible defaults."""
    return FinalizePaymentRequest(
        order_id=order_id,
        user_id=user_id or uuid.uuid4(),
        amount=Decimal(amount),
        tier=kwargs.pop("tier", "pro"),
        **kwargs,
    )


@pytest.fixture
def request_factory():
    return make_request
