"""API endpoints for creators, CMOs and discount codes."""
from typing import Optional, List
from uuid import UUID

from fastapi import APIRouter, Query, status

from referral_ledger.api.deps import DB, OperatorId, ledger_http_error
from referral_ledger.schemas.creator import (
    CMOCreate,
    CMOResponse,
    CreatorCreate,
    CreatorResponse,
    CreatorListResponse,
    CommissionOverrideUpdate,
    CMOAssignment,
    CreatorStatsResponse,
    DiscountCodeCreate,
    DiscountCodeResponse,
)
from referral_ledger.services.creator_service import CreatorService
from referral_ledger.services.exceptions import LedgerError

router = APIRouter()


# ==================== CMOs ====================

@router.post("/cmos", response_model=CMOResponse, status_code=status.HTTP_201_CREATED)
async def create_cmo(data: CMOCreate, db: DB):
    try:
        return await CreatorService(db).create_cmo(data)
    except LedgerError as e:
        raise ledger_http_error(e)


@router.get("/cmos", response_model=List[CMOResponse])
async def list_cmos(db: DB):
    return await CreatorService(db).list_cmos()


# ==================== Creators ====================

@router.post("", response_model=CreatorResponse, status_code=status.HTTP_201_CREATED)
async def create_creator(data: CreatorCreate, db: DB):
    """Register a creator; a referral code is generated when none is given."""
    try:
        return await CreatorService(db).create_creator(data)
    except LedgerError as e:
        raise ledger_http_error(e)


@router.get("", response_model=CreatorListResponse)
async def list_creators(
    db: DB,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    cmo_id: Optional[UUID] = None,
    search: Optional[str] = None,
):
    skip = (page - 1) * page_size
    creators, total = await CreatorService(db).list_creators(
        cmo_id=cmo_id, search=search, skip=skip, limit=page_size
    )
    return CreatorListResponse(
        items=[CreatorResponse.model_validate(c) for c in creators],
        total=total,
        page=page,
        page_size=page_size,
        total_pages=(total + page_size - 1) // page_size,
    )


@router.get("/{creator_id}", response_model=CreatorResponse)
async def get_creator(creator_id: UUID, db: DB):
    try:
        return await CreatorService(db).get_creator(creator_id)
    except LedgerError as e:
        raise ledger_http_error(e)


@router.get("/{creator_id}/stats", response_model=CreatorStatsResponse)
async def get_creator_stats(creator_id: UUID, db: DB):
    """Cached counters plus this month's paid users and the current rate."""
    try:
        return await CreatorService(db).get_creator_stats(creator_id)
    except LedgerError as e:
        raise ledger_http_error(e)


@router.put("/{creator_id}/commission-override", response_model=CreatorResponse)
async def set_commission_override(
    creator_id: UUID,
    data: CommissionOverrideUpdate,
    db: DB,
    operator_id: OperatorId,
):
    """Set a fixed commission rate, or clear it with null. Future payments only."""
    try:
        return await CreatorService(db).set_commission_override(
            creator_id, data.custom_commission_rate, operator_id
        )
    except LedgerError as e:
        raise ledger_http_error(e)


@router.put("/{creator_id}/cmo", response_model=CreatorResponse)
async def assign_cmo(creator_id: UUID, data: CMOAssignment, db: DB, operator_id: OperatorId):
    try:
        return await CreatorService(db).assign_cmo(creator_id, data.cmo_id, operator_id)
    except LedgerError as e:
        raise ledger_http_error(e)


# ==================== Discount Codes ====================

@router.post(
    "/{creator_id}/discount-codes",
    response_model=DiscountCodeResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_discount_code(creator_id: UUID, data: DiscountCodeCreate, db: DB):
    try:
        return await CreatorService(db).create_discount_code(creator_id, data)
    except LedgerError as e:
        raise ledger_http_error(e)


@router.get("/{creator_id}/discount-codes", response_model=List[DiscountCodeResponse])
async def list_discount_codes(creator_id: UUID, db: DB):
    return await CreatorService(db).list_discount_codes(creator_id)


@router.post("/discount-codes/{code_id}/deactivate", response_model=DiscountCodeResponse)
async def deactivate_discount_code(code_id: UUID, db: DB):
    try:
        return await CreatorService(db).set_discount_code_active(code_id, False)
    except LedgerError as e:
        raise ledger_http_error(e)
