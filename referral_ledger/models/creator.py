"""Referral program participants: creators, CMOs and discount codes.

Creators refer students through a referral link or one of their discount
codes. A creator may belong to a CMO, who earns an override commission on
every sale the creator brings in.

The counters on CreatorAccount and DiscountCode are caches derived from the
payment_attributions ledger and can be rebuilt at any time.
"""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Optional, List

from sqlalchemy import String, Boolean, DateTime, ForeignKey, Integer, Numeric, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from referral_ledger.database import Base
from referral_ledger.db_types import UUIDType, MoneyType, RateType

if TYPE_CHECKING:
    from referral_ledger.models.payout import CreatorPayout, CMOPayout


class CMOAccount(Base):
    """Campaign/marketing owner managing a group of creators."""
    __tablename__ = "cmo_accounts"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    display_name: Mapped[str] = mapped_column(String(200), nullable=False)
    referral_code: Mapped[str] = mapped_column(
        String(20),
        unique=True,
        nullable=False,
        index=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    # Weak back-reference: creators point at the CMO, the CMO does not own them
    creators: Mapped[List["CreatorAccount"]] = relationship(
        "CreatorAccount",
        back_populates="cmo"
    )
    payouts: Mapped[List["CMOPayout"]] = relationship(
        "CMOPayout",
        back_populates="cmo"
    )

    def __repr__(self) -> str:
        return f"<CMOAccount(code={self.referral_code})>"


class CreatorAccount(Base):
    """
    Content creator earning commission on referred payments.

    lifetime_paid_users and available_balance are maintained incrementally by
    the attribution writer and overwritten by the recalculation engine.
    total_withdrawn is never recomputed; it records money already paid out.
    """
    __tablename__ = "creator_accounts"
    __table_args__ = (
        Index('ix_creator_accounts_cmo_id', 'cmo_id'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    display_name: Mapped[str] = mapped_column(String(200), nullable=False)
    referral_code: Mapped[str] = mapped_column(
        String(20),
        unique=True,
        nullable=False,
        index=True,
        comment="Upper-case referral code used in referral links"
    )

    cmo_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("cmo_accounts.id", ondelete="SET NULL"),
        nullable=True
    )

    # Cached aggregates
    lifetime_paid_users: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    available_balance: Mapped[Decimal] = mapped_column(
        MoneyType,
        default=Decimal("0.00"),
        nullable=False
    )
    total_withdrawn: Mapped[Decimal] = mapped_column(
        MoneyType,
        default=Decimal("0.00"),
        nullable=False
    )

    custom_commission_rate: Mapped[Optional[Decimal]] = mapped_column(
        RateType,
        nullable=True,
        comment="Overrides the tier schedule when set, including 0"
    )

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

    cmo: Mapped[Optional["CMOAccount"]] = relationship(
        "CMOAccount",
        back_populates="creators"
    )
    discount_codes: Mapped[List["DiscountCode"]] = relationship(
        "DiscountCode",
        back_populates="creator"
    )
    payouts: Mapped[List["CreatorPayout"]] = relationship(
        "CreatorPayout",
        back_populates="creator"
    )

    def __repr__(self) -> str:
        return f"<CreatorAccount(code={self.referral_code}, paid_users={self.lifetime_paid_users})>"


class DiscountCode(Base):
    """Discount code owned by a creator; redeeming it refers the buyer to that creator."""
    __tablename__ = "discount_codes"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    code: Mapped[str] = mapped_column(
        String(30),
        unique=True,
        nullable=False,
        index=True
    )
    creator_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("creator_accounts.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    discount_percent: Mapped[Decimal] = mapped_column(
        Numeric(5, 2),
        nullable=False,
        comment="Percentage off the list price (10 = 10%)"
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Cache: number of attributions credited to this code
    paid_conversions: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    creator: Mapped["CreatorAccount"] = relationship(
        "CreatorAccount",
        back_populates="discount_codes"
    )

    def __repr__(self) -> str:
        return f"<DiscountCode(code={self.code}, conversions={self.paid_conversions})>"
