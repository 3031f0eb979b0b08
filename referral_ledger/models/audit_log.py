import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import String, DateTime, Text, JSON
from sqlalchemy.orm import Mapped, mapped_column

from referral_ledger.database import Base
from referral_ledger.db_types import UUIDType


class AuditLog(Base):
    """
    Audit log of operator actions on the ledger.
    Records: override changes, CMO assignments, payouts marked paid,
    withdrawal decisions, bulk reconciliation and recalculation runs.
    """
    __tablename__ = "audit_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    # Operator who performed the action (no user table in this service)
    operator_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)

    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    # Actions: SET_OVERRIDE, CLEAR_OVERRIDE, ASSIGN_CMO, MARK_PAID,
    #          APPROVE, REJECT, RECALCULATE, RECONCILE, etc.

    entity_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    # Entity types: CREATOR, CMO_PAYOUT, CREATOR_PAYOUT, WITHDRAWAL, LEDGER

    entity_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)

    old_values: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    new_values: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True
    )

    def __repr__(self) -> str:
        return f"<AuditLog(action='{self.action}', entity='{self.entity_type}', id='{self.entity_id}')>"
