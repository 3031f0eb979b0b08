"""
Pydantic schemas for creator withdrawals.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from uuid import UUID

from pydantic import BaseModel, Field

from referral_ledger.schemas.base import BaseResponseSchema, BaseCreateSchema


class WithdrawalCreate(BaseCreateSchema):
    creator_id: UUID
    amount: Decimal = Field(..., gt=0)
    bank_details: Optional[str] = Field(None, max_length=1000)


class WithdrawalApprove(BaseModel):
    confirmation_code: Optional[str] = None


class WithdrawalReject(BaseModel):
    reason: str = Field(..., min_length=3, max_length=1000)


class WithdrawalMarkPaid(BaseModel):
    transaction_reference: Optional[str] = Field(None, max_length=100)


class WithdrawalResponse(BaseResponseSchema):
    id: UUID
    creator_id: UUID
    amount: Decimal
    fee_amount: Decimal
    net_amount: Decimal
    status: str
    bank_details: Optional[str] = None
    transaction_reference: Optional[str] = None
    rejection_reason: Optional[str] = None
    processed_by: Optional[UUID] = None
    processed_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    created_at: datetime


class WithdrawalListResponse(BaseModel):
    items: List[WithdrawalResponse]
    total: int
