"""API endpoints for orphan repair and ledger recalculation."""
from fastapi import APIRouter

from referral_ledger.api.deps import DB, OperatorId, ledger_http_error
from referral_ledger.schemas.attribution import FinalizePaymentResult
from referral_ledger.schemas.reconciliation import (
    OrphanListResponse,
    ReconcileAllResponse,
    DiscrepancyListResponse,
    RecalculateResponse,
)
from referral_ledger.services.exceptions import LedgerError, OperationInProgressError
from referral_ledger.services.reconciliation_service import ReconciliationService
from referral_ledger.services.recalculation_service import RecalculationService

router = APIRouter()


# ==================== Orphans ====================

@router.get("/orphans", response_model=OrphanListResponse)
async def list_orphans(db: DB):
    """Completed payments with no attribution."""
    orphans = await ReconciliationService(db).find_orphans()
    return OrphanListResponse(items=orphans, total=len(orphans))


@router.post("/orphans/{order_id}/fix", response_model=FinalizePaymentResult)
async def fix_orphan(order_id: str, db: DB):
    """Attribute one orphaned payment."""
    try:
        return await ReconciliationService(db).fix_orphan(order_id)
    except LedgerError as e:
        raise ledger_http_error(e)


@router.post("/reconcile-all", response_model=ReconcileAllResponse)
async def reconcile_all(db: DB, operator_id: OperatorId):
    """Attribute every orphan; individual failures are reported, not raised."""
    try:
        outcome = await ReconciliationService(db).reconcile_orphans(operator_id)
    except OperationInProgressError as e:
        return ReconcileAllResponse(success=False, error=e.message)
    return ReconcileAllResponse(success=True, **outcome)


# ==================== Recalculation ====================

@router.get("/discrepancies", response_model=DiscrepancyListResponse)
async def list_discrepancies(db: DB, only_mismatched: bool = False):
    """Cached creator counters compared with the ledger."""
    report = await RecalculationService(db).stats_discrepancies()
    mismatched = [row for row in report if row["has_discrepancy"]]
    items = mismatched if only_mismatched else report
    return DiscrepancyListResponse(items=items, total=len(items), with_discrepancy=len(mismatched))


@router.post("/recalculate", response_model=RecalculateResponse)
async def recalculate(db: DB, operator_id: OperatorId):
    """Rebuild creator caches, payout records and discount code counters from the ledger."""
    try:
        summary = await RecalculationService(db).recalculate_stats(operator_id)
    except OperationInProgressError as e:
        return RecalculateResponse(success=False, error=e.message)
    return RecalculateResponse(success=True, **summary)
