"""API endpoints for revenue reporting and the audit trail."""
from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query

from referral_ledger.api.deps import DB
from referral_ledger.schemas.revenue import RevenueStatsResponse, AuditLogResponse, AuditLogListResponse
from referral_ledger.services.audit_service import AuditService
from referral_ledger.services.revenue_service import RevenueService

router = APIRouter()


@router.get("/revenue", response_model=RevenueStatsResponse)
async def revenue_stats(db: DB, today: Optional[date] = None):
    """Total, this month, unattributed revenue and a six-month breakdown."""
    return await RevenueService(db).get_revenue_stats(today)


@router.get("/audit-logs", response_model=AuditLogListResponse)
async def list_audit_logs(
    db: DB,
    entity_type: Optional[str] = None,
    entity_id: Optional[UUID] = None,
    action: Optional[str] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
):
    logs, total = await AuditService(db).get_audit_logs(
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        skip=skip,
        limit=limit,
    )
    return AuditLogListResponse(
        items=[AuditLogResponse.model_validate(log) for log in logs],
        total=total,
    )
