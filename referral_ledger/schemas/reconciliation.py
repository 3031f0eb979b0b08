"""
Pydantic schemas for orphan detection, repair and ledger recalculation.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from uuid import UUID

from pydantic import BaseModel


class OrphanPaymentResponse(BaseModel):
    """Completed payment with no attribution"""
    order_id: str
    user_id: Optional[UUID] = None
    email: str = "Unknown"
    amount: Optional[Decimal] = None
    original_amount: Optional[Decimal] = None
    tier: Optional[str] = None
    payment_type: Optional[str] = None
    ref_creator: Optional[str] = None
    discount_code: Optional[str] = None
    created_at: datetime


class OrphanListResponse(BaseModel):
    items: List[OrphanPaymentResponse]
    total: int


class ReconcileAllResponse(BaseModel):
    success: bool
    fixed: int = 0
    failed: int = 0
    errors: List[str] = []
    error: Optional[str] = None


class StatsDiscrepancyResponse(BaseModel):
    """Cached creator counters compared with the ledger"""
    creator_id: UUID
    display_name: str
    referral_code: str
    cached_paid_users: int
    actual_paid_users: int
    cached_balance: Decimal
    actual_balance: Decimal
    has_discrepancy: bool


class DiscrepancyListResponse(BaseModel):
    items: List[StatsDiscrepancyResponse]
    total: int
    with_discrepancy: int


class RecalculateResponse(BaseModel):
    success: bool
    creators_updated: int = 0
    creator_payouts_regenerated: int = 0
    cmo_payouts_regenerated: int = 0
    payouts_removed: int = 0
    discount_codes_updated: int = 0
    failed: int = 0
    error: Optional[str] = None
