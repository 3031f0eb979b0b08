"""
Pydantic schemas for creator and CMO payout records.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List, Dict
from uuid import UUID

from pydantic import BaseModel

from referral_ledger.schemas.base import BaseResponseSchema


class PayoutResponse(BaseResponseSchema):
    """Either payout table; entity_id is the creator or CMO id"""
    id: UUID
    kind: str
    entity_id: UUID
    payout_month: date
    total_paid_users: int
    commission_amount: Decimal
    status: str
    paid_at: Optional[datetime] = None
    paid_by: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime


class PayoutListResponse(BaseModel):
    items: List[PayoutResponse]
    total: int


class MarkPaidRequest(BaseModel):
    confirmation_code: Optional[str] = None


class ClosePeriodsRequest(BaseModel):
    today: Optional[date] = None


class ClosePeriodsResponse(BaseModel):
    closed: Dict[str, int]
