from datetime import datetime, timezone

from sqlalchemy import String, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from referral_ledger.database import Base


class OperationLock(Base):
    """
    Single-flight marker for bulk admin operations.

    The operation name is the primary key, so a second concurrent insert
    fails on the constraint. Rows past expires_at are stale and reclaimable.
    """
    __tablename__ = "operation_locks"

    name: Mapped[str] = mapped_column(String(100), primary_key=True)
    acquired_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<OperationLock(name={self.name}, expires_at={self.expires_at})>"
