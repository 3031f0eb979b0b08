"""
Single-flight guard for bulk admin operations.

Usage:
    async with single_flight(db, LEDGER_BULK_LOCK, operation="recalculate_stats"):
        ...

A second caller for the same name gets OperationInProgressError until the
first one exits or its lock expires. Reconcile and recalculate both rewrite
creator caches and payout records, so they share LEDGER_BULK_LOCK and exclude
each other as well as themselves.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.config import settings
from referral_ledger.models.operation_lock import OperationLock
from referral_ledger.services.exceptions import OperationInProgressError

logger = logging.getLogger(__name__)

# Shared by every operation that rewrites ledger caches
LEDGER_BULK_LOCK = "ledger_bulk"


@asynccontextmanager
async def single_flight(
    db: AsyncSession,
    name: str,
    operation: Optional[str] = None,
    ttl_seconds: Optional[int] = None,
):
    """
    Hold the named operation lock for the duration of the block.

    operation labels the caller in logs and errors; it defaults to name.
    """
    operation = operation or name
    ttl = ttl_seconds if ttl_seconds is not None else settings.BULK_OPERATION_LOCK_TTL_SECONDS
    now = datetime.now(timezone.utc)

    # Reclaim a lock left behind by a crashed run
    stale = await db.execute(
        delete(OperationLock).where(
            OperationLock.name == name,
            OperationLock.expires_at < now,
        ).execution_options(synchronize_session="fetch")
    )
    if (stale.rowcount or 0) > 0:
        logger.warning(f"Reclaimed stale lock for {name}")

    db.add(OperationLock(name=name, acquired_at=now, expires_at=now + timedelta(seconds=ttl)))
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        logger.warning(f"Cannot start {operation}: {name} lock is held")
        raise OperationInProgressError(
            f"Cannot start {operation}: another bulk ledger operation is running",
            {"operation": operation, "lock": name},
        )

    logger.info(f"Acquired {name} lock for {operation}")
    try:
        yield
    finally:
        # Drop whatever the block left uncommitted before releasing
        await db.rollback()
        await db.execute(
            delete(OperationLock)
            .where(OperationLock.name == name)
            .execution_options(synchronize_session="fetch")
        )
        await db.commit()
        logger.info(f"Released {name} lock for {operation}")
