"""API endpoints for creator withdrawals."""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query, status

from referral_ledger.api.deps import DB, OperatorId, ledger_http_error
from referral_ledger.models.withdrawal import WithdrawalStatus
from referral_ledger.schemas.withdrawal import (
    WithdrawalCreate,
    WithdrawalApprove,
    WithdrawalReject,
    WithdrawalMarkPaid,
    WithdrawalResponse,
    WithdrawalListResponse,
)
from referral_ledger.services.exceptions import LedgerError
from referral_ledger.services.withdrawal_service import WithdrawalService

router = APIRouter()


@router.post("", response_model=WithdrawalResponse, status_code=status.HTTP_201_CREATED)
async def request_withdrawal(data: WithdrawalCreate, db: DB):
    try:
        return await WithdrawalService(db).request_withdrawal(data)
    except LedgerError as e:
        raise ledger_http_error(e)


@router.get("", response_model=WithdrawalListResponse)
async def list_withdrawals(
    db: DB,
    status: Optional[WithdrawalStatus] = None,
    creator_id: Optional[UUID] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
):
    items, total = await WithdrawalService(db).list_withdrawals(
        status=status.value if status else None,
        creator_id=creator_id,
        skip=skip,
        limit=limit,
    )
    return WithdrawalListResponse(
        items=[WithdrawalResponse.model_validate(w) for w in items],
        total=total,
    )


@router.post("/{withdrawal_id}/approve", response_model=WithdrawalResponse)
async def approve_withdrawal(
    withdrawal_id: UUID,
    db: DB,
    operator_id: OperatorId,
    data: Optional[WithdrawalApprove] = None,
):
    """Approve a pending withdrawal and move the amount out of the balance."""
    try:
        return await WithdrawalService(db).approve(
            withdrawal_id,
            operator_id=operator_id,
            confirmation_code=data.confirmation_code if data else None,
        )
    except LedgerError as e:
        raise ledger_http_error(e)


@router.post("/{withdrawal_id}/reject", response_model=WithdrawalResponse)
async def reject_withdrawal(withdrawal_id: UUID, data: WithdrawalReject, db: DB, operator_id: OperatorId):
    try:
        return await WithdrawalService(db).reject(withdrawal_id, data.reason, operator_id)
    except LedgerError as e:
        raise ledger_http_error(e)


@router.post("/{withdrawal_id}/mark-paid", response_model=WithdrawalResponse)
async def mark_withdrawal_paid(
    withdrawal_id: UUID,
    db: DB,
    operator_id: OperatorId,
    data: Optional[WithdrawalMarkPaid] = None,
):
    try:
        return await WithdrawalService(db).mark_paid(
            withdrawal_id,
            transaction_reference=data.transaction_reference if data else None,
            operator_id=operator_id,
        )
    except LedgerError as e:
        raise ledger_http_error(e)
