"""
Pydantic schemas for creators, CMOs and discount codes.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from referral_ledger.schemas.base import BaseResponseSchema, BaseCreateSchema


def _upper_code(v):
    if v is None:
        return None
    v = v.strip().upper()
    return v or None


# ============================================================================
# CMO
# ============================================================================

class CMOCreate(BaseCreateSchema):
    display_name: str = Field(..., min_length=2, max_length=200)
    referral_code: Optional[str] = Field(None, max_length=20, description="Generated when omitted")

    @field_validator('referral_code')
    @classmethod
    def normalize_code(cls, v):
        return _upper_code(v)


class CMOResponse(BaseResponseSchema):
    id: UUID
    display_name: str
    referral_code: str
    created_at: datetime


# ============================================================================
# Creator
# ============================================================================

class CreatorCreate(BaseCreateSchema):
    display_name: str = Field(..., min_length=2, max_length=200)
    referral_code: Optional[str] = Field(None, max_length=20, description="Generated when omitted")
    cmo_id: Optional[UUID] = None
    custom_commission_rate: Optional[Decimal] = Field(None, ge=0, le=1)

    @field_validator('referral_code')
    @classmethod
    def normalize_code(cls, v):
        return _upper_code(v)


class CreatorResponse(BaseResponseSchema):
    id: UUID
    display_name: str
    referral_code: str
    cmo_id: Optional[UUID] = None
    lifetime_paid_users: int
    available_balance: Decimal
    total_withdrawn: Decimal
    custom_commission_rate: Optional[Decimal] = None
    created_at: datetime
    updated_at: datetime


class CreatorListResponse(BaseModel):
    items: List[CreatorResponse]
    total: int
    page: int
    page_size: int
    total_pages: int


class CommissionOverrideUpdate(BaseModel):
    """Set a fixed rate (0-1), or null to fall back to the tier schedule"""
    custom_commission_rate: Optional[Decimal] = Field(None, ge=0, le=1)


class CMOAssignment(BaseModel):
    cmo_id: Optional[UUID] = None


class CreatorStatsResponse(BaseModel):
    creator_id: UUID
    referral_code: str
    lifetime_paid_users: int
    this_month_paid_users: int
    available_balance: Decimal
    total_withdrawn: Decimal
    lifetime_commission: Decimal
    current_rate: Decimal
    rate_source: str
    users_to_next_tier: int


# ============================================================================
# Discount Codes
# ============================================================================

class DiscountCodeCreate(BaseCreateSchema):
    code: str = Field(..., min_length=3, max_length=30)
    discount_percent: Decimal = Field(..., gt=0, le=100)

    @field_validator('code')
    @classmethod
    def normalize_code(cls, v):
        return _upper_code(v)


class DiscountCodeResponse(BaseResponseSchema):
    id: UUID
    code: str
    creator_id: UUID
    discount_percent: Decimal
    is_active: bool
    paid_conversions: int
    created_at: datetime
