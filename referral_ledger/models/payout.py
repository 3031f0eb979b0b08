"""Monthly payout records for creators and CMOs.

One row per (entity, payout_month). Rows accumulate as attributions arrive,
become eligible once the month closes, and are marked paid by an operator.
"""
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import String, Date, DateTime, ForeignKey, Integer, UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from referral_ledger.database import Base
from referral_ledger.db_types import UUIDType, MoneyType

if TYPE_CHECKING:
    from referral_ledger.models.creator import CreatorAccount, CMOAccount


class PayoutStatus(str, Enum):
    """Payout record status."""
    PENDING = "pending"      # Month still accumulating
    ELIGIBLE = "eligible"    # Month closed, ready to pay
    PAID = "paid"            # Paid by an operator, final


class PayoutKind(str, Enum):
    """Which payout table a record lives in."""
    CREATOR = "creator"
    CMO = "cmo"


class CreatorPayout(Base):
    """Creator commission accumulated for one calendar month."""
    __tablename__ = "creator_payouts"
    __table_args__ = (
        UniqueConstraint("creator_id", "payout_month", name="uq_creator_payout_month"),
        Index('ix_creator_payouts_status', 'status'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    creator_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("creator_accounts.id", ondelete="CASCADE"),
        nullable=False
    )
    payout_month: Mapped[date] = mapped_column(Date, nullable=False)

    total_paid_users: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    commission_amount: Mapped[Decimal] = mapped_column(
        MoneyType,
        default=Decimal("0.00"),
        nullable=False
    )

    status: Mapped[str] = mapped_column(
        String(20),
        default=PayoutStatus.PENDING.value,
        nullable=False,
        comment="pending, eligible, paid"
    )
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    creator: Mapped["CreatorAccount"] = relationship(
        "CreatorAccount",
        back_populates="payouts"
    )

    @property
    def kind(self) -> str:
        return PayoutKind.CREATOR.value

    @property
    def entity_id(self) -> uuid.UUID:
        return self.creator_id

    def __repr__(self) -> str:
        return f"<CreatorPayout(creator={self.creator_id}, month={self.payout_month}, status={self.status})>"


class CMOPayout(Base):
    """CMO override commission accumulated for one calendar month."""
    __tablename__ = "cmo_payouts"
    __table_args__ = (
        UniqueConstraint("cmo_id", "payout_month", name="uq_cmo_payout_month"),
        Index('ix_cmo_payouts_status', 'status'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    cmo_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("cmo_accounts.id", ondelete="CASCADE"),
        nullable=False
    )
    payout_month: Mapped[date] = mapped_column(Date, nullable=False)

    total_paid_users: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    commission_amount: Mapped[Decimal] = mapped_column(
        MoneyType,
        default=Decimal("0.00"),
        nullable=False
    )

    status: Mapped[str] = mapped_column(
        String(20),
        default=PayoutStatus.PENDING.value,
        nullable=False,
        comment="pending, eligible, paid"
    )
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    cmo: Mapped["CMOAccount"] = relationship(
        "CMOAccount",
        back_populates="payouts"
    )

    @property
    def kind(self) -> str:
        return PayoutKind.CMO.value

    @property
    def entity_id(self) -> uuid.UUID:
        return self.cmo_id

    def __repr__(self) -> str:
        return f"<CMOPayout(cmo={self.cmo_id}, month={self.payout_month}, status={self.status})>"
