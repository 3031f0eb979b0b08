"""
Pydantic schemas for payment finalization and the attribution ledger.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from referral_ledger.models.attribution import PaymentType
from referral_ledger.schemas.base import BaseResponseSchema, BaseCreateSchema


class FinalizePaymentRequest(BaseCreateSchema):
    """Completed payment handed over by the checkout flow"""
    order_id: str = Field(..., min_length=1, max_length=100)
    user_id: UUID
    enrollment_id: Optional[UUID] = None
    amount: Decimal = Field(..., ge=0, description="Final amount paid after discount")
    original_amount: Optional[Decimal] = Field(None, ge=0, description="List price before discount")
    tier: str = Field(..., min_length=1, max_length=50)
    payment_type: PaymentType = PaymentType.CARD
    referral_code: Optional[str] = Field(None, max_length=20)
    discount_code: Optional[str] = Field(None, max_length=30)
    paid_at: Optional[datetime] = Field(None, description="Defaults to now; decides the payment month")

    @field_validator('referral_code', 'discount_code')
    @classmethod
    def normalize_code(cls, v):
        if v is None:
            return None
        v = v.strip().upper()
        return v or None


class FinalizePaymentResult(BaseModel):
    """Outcome of finalize_payment. Never raised; failures come back with success=False."""
    success: bool
    order_id: str
    already_attributed: bool = False
    attribution_id: Optional[UUID] = None
    creator_id: Optional[UUID] = None
    commission_amount: Optional[Decimal] = None
    error: Optional[str] = None


class PaymentAttributionResponse(BaseResponseSchema):
    """Schema for attribution ledger rows"""
    id: UUID
    order_id: str
    user_id: UUID
    enrollment_id: Optional[UUID] = None
    creator_id: Optional[UUID] = None
    discount_code_id: Optional[UUID] = None
    original_amount: Decimal
    final_amount: Decimal
    discount_applied: Decimal
    commission_rate: Decimal
    commission_amount: Decimal
    tier: str
    payment_type: str
    payment_month: date
    created_at: datetime
