import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import String, DateTime, ForeignKey, Text, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from referral_ledger.database import Base
from referral_ledger.db_types import UUIDType, MoneyType

if TYPE_CHECKING:
    from referral_ledger.models.creator import CreatorAccount


class WithdrawalStatus(str, Enum):
    """Withdrawal request status."""
    PENDING = "pending"
    APPROVED = "approved"    # Balance moved into total_withdrawn
    REJECTED = "rejected"
    PAID = "paid"            # Funds transferred


class WithdrawalRequest(Base):
    """Creator request to withdraw part of the available balance."""
    __tablename__ = "withdrawal_requests"
    __table_args__ = (
        Index('ix_withdrawal_requests_creator_status', 'creator_id', 'status'),
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

    amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    fee_amount: Mapped[Decimal] = mapped_column(
        MoneyType,
        default=Decimal("0.00"),
        nullable=False
    )
    net_amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        default=WithdrawalStatus.PENDING.value,
        nullable=False,
        comment="pending, approved, rejected, paid"
    )

    # Payment destination
    bank_details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    transaction_reference: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    processed_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    creator: Mapped["CreatorAccount"] = relationship("CreatorAccount")

    def __repr__(self) -> str:
        return f"<WithdrawalRequest(creator={self.creator_id}, amount={self.amount}, status={self.status})>"
