"""Append-only attribution ledger.

PaymentAttribution is the source of truth for every commission figure in the
system. Rows are inserted once per order and never updated or deleted.
UserAttribution binds a user to the creator that first referred them.
"""
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import String, Date, DateTime, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from referral_ledger.database import Base
from referral_ledger.db_types import UUIDType, MoneyType, RateType

if TYPE_CHECKING:
    from referral_ledger.models.creator import CreatorAccount, DiscountCode


# ==================== ENUMS (stored as VARCHAR) ====================

class PaymentType(str, Enum):
    """How the buyer paid."""
    CARD = "card"          # Gateway card payment
    BANK = "bank"          # Manual bank transfer approved by an admin
    UPGRADE = "upgrade"    # Paid tier upgrade of an existing enrollment


class ReferralSource(str, Enum):
    """How a user was first bound to a creator."""
    LINK = "link"
    DISCOUNT_CODE = "discount_code"


# ==================== MODELS ====================

class PaymentAttribution(Base):
    """
    Immutable record linking one completed payment to its referring creator.

    commission_rate and commission_amount are snapshots taken at write time;
    later tier or override changes never touch existing rows.
    """
    __tablename__ = "payment_attributions"
    __table_args__ = (
        Index('ix_payment_attributions_creator_month', 'creator_id', 'payment_month'),
        Index('ix_payment_attributions_payment_month', 'payment_month'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    # Idempotency key
    order_id: Mapped[str] = mapped_column(
        String(100),
        unique=True,
        nullable=False,
        comment="Gateway order id; at most one attribution per order"
    )
    user_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False, index=True)
    enrollment_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)

    # Null for direct sales
    creator_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("creator_accounts.id", ondelete="RESTRICT"),
        nullable=True
    )
    discount_code_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("discount_codes.id", ondelete="SET NULL"),
        nullable=True,
        comment="Set when the discount code earned the conversion"
    )

    # Amounts
    original_amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    final_amount: Mapped[Decimal] = mapped_column(
        MoneyType,
        nullable=False,
        comment="Amount paid after discount"
    )
    discount_applied: Mapped[Decimal] = mapped_column(
        MoneyType,
        default=Decimal("0.00"),
        nullable=False
    )

    # Commission snapshot
    commission_rate: Mapped[Decimal] = mapped_column(RateType, nullable=False)
    commission_amount: Mapped[Decimal] = mapped_column(
        MoneyType,
        nullable=False,
        comment="final_amount x commission_rate"
    )

    tier: Mapped[str] = mapped_column(String(50), nullable=False)
    payment_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="card, bank, upgrade"
    )
    payment_month: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        comment="First day of the calendar month the payment belongs to"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    creator: Mapped[Optional["CreatorAccount"]] = relationship("CreatorAccount")
    discount_code: Mapped[Optional["DiscountCode"]] = relationship("DiscountCode")

    def __repr__(self) -> str:
        return f"<PaymentAttribution(order={self.order_id}, commission={self.commission_amount})>"


class UserAttribution(Base):
    """First-touch binding of a user to the creator who referred them. Never overwritten."""
    __tablename__ = "user_attributions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        unique=True,
        nullable=False
    )
    creator_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("creator_accounts.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    discount_code_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("discount_codes.id", ondelete="SET NULL"),
        nullable=True
    )
    referral_source: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="link, discount_code"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    creator: Mapped["CreatorAccount"] = relationship("CreatorAccount")

    def __repr__(self) -> str:
        return f"<UserAttribution(user={self.user_id}, creator={self.creator_id})>"
