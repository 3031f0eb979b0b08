"""
Pydantic schemas for revenue reporting and the audit trail.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from uuid import UUID

from pydantic import BaseModel

from referral_ledger.schemas.base import BaseResponseSchema


class MonthlyRevenue(BaseModel):
    month: str  # YYYY-MM
    revenue: Decimal
    attributed_revenue: Decimal
    commission: Decimal
    payments: int


class RevenueStatsResponse(BaseModel):
    total_revenue: Decimal
    this_month_revenue: Decimal
    unattributed_revenue: Decimal
    total_commission: Decimal
    monthly_breakdown: List[MonthlyRevenue]


class AuditLogResponse(BaseResponseSchema):
    id: UUID
    operator_id: Optional[UUID] = None
    action: str
    entity_type: str
    entity_id: Optional[UUID] = None
    old_values: Optional[dict] = None
    new_values: Optional[dict] = None
    description: Optional[str] = None
    created_at: datetime


class AuditLogListResponse(BaseModel):
    items: List[AuditLogResponse]
    total: int
