"""Records written by the checkout flow and read by the reconciliation tools."""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, DateTime, Index
from sqlalchemy.orm import Mapped, mapped_column

from referral_ledger.database import Base
from referral_ledger.db_types import UUIDType, MoneyType


class RawPayment(Base):
    """
    Gateway payment as recorded by checkout.

    The engine never writes this table; completed rows without a matching
    payment_attributions row are orphans.
    """
    __tablename__ = "payments"
    __table_args__ = (
        Index('ix_payments_status', 'status'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    order_id: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
    enrollment_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="pending, completed, failed, refunded"
    )
    amount: Mapped[Optional[Decimal]] = mapped_column(MoneyType, nullable=True)
    original_amount: Mapped[Optional[Decimal]] = mapped_column(MoneyType, nullable=True)
    tier: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    payment_type: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    # Referral metadata captured at checkout
    ref_creator: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    discount_code: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<RawPayment(order={self.order_id}, status={self.status})>"


class UserProfile(Base):
    """Buyer profile, used to show who an orphaned payment belongs to."""
    __tablename__ = "profiles"

    user_id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    display_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
