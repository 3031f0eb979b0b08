"""API endpoints for creator and CMO payout records."""
from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query

from referral_ledger.api.deps import DB, OperatorId, ledger_http_error
from referral_ledger.models.payout import PayoutKind, PayoutStatus
from referral_ledger.schemas.payout import (
    PayoutResponse,
    PayoutListResponse,
    MarkPaidRequest,
    ClosePeriodsRequest,
    ClosePeriodsResponse,
)
from referral_ledger.services.exceptions import LedgerError
from referral_ledger.services.payout_service import PayoutService

router = APIRouter()


@router.get("", response_model=PayoutListResponse)
async def list_payouts(
    db: DB,
    kind: PayoutKind = PayoutKind.CREATOR,
    status: Optional[PayoutStatus] = None,
    entity_id: Optional[UUID] = None,
    payout_month: Optional[date] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
):
    """List payout records of one kind."""
    items, total = await PayoutService(db).list_payouts(
        kind,
        status=status.value if status else None,
        entity_id=entity_id,
        payout_month=payout_month,
        skip=skip,
        limit=limit,
    )
    return PayoutListResponse(items=[PayoutResponse.model_validate(p) for p in items], total=total)


@router.post("/close-periods", response_model=ClosePeriodsResponse)
async def close_periods(db: DB, request: Optional[ClosePeriodsRequest] = None):
    """Move pending records of finished months to eligible."""
    closed = await PayoutService(db).close_periods(request.today if request else None)
    return ClosePeriodsResponse(closed=closed)


@router.get("/{kind}/{payout_id}", response_model=PayoutResponse)
async def get_payout(kind: PayoutKind, payout_id: UUID, db: DB):
    try:
        return await PayoutService(db).get_payout(kind, payout_id)
    except LedgerError as e:
        raise ledger_http_error(e)


@router.post("/{kind}/{payout_id}/mark-paid", response_model=PayoutResponse)
async def mark_payout_paid(
    kind: PayoutKind,
    payout_id: UUID,
    db: DB,
    operator_id: OperatorId,
    request: Optional[MarkPaidRequest] = None,
):
    """
    Mark a payout as paid. Irreversible.

    Amounts at or above the confirmation threshold need the operator
    one-time code in the body.
    """
    try:
        return await PayoutService(db).mark_paid(
            kind,
            payout_id,
            operator_id=operator_id,
            confirmation_code=request.confirmation_code if request else None,
        )
    except LedgerError as e:
        raise ledger_http_error(e)
