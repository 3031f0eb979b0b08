from fastapi import APIRouter

from referral_ledger.api.v1.endpoints import (
    payments,
    reconciliation,
    payouts,
    creators,
    withdrawals,
    reports,
)


# Create main API router
api_router = APIRouter(prefix="/api/v1")

# ==================== Attribution ====================
api_router.include_router(
    payments.router,
    prefix="/payments",
    tags=["Payments"]
)

# ==================== Reconciliation ====================
api_router.include_router(
    reconciliation.router,
    prefix="/reconciliation",
    tags=["Reconciliation"]
)

# ==================== Payouts ====================
api_router.include_router(
    payouts.router,
    prefix="/payouts",
    tags=["Payouts"]
)
api_router.include_router(
    withdrawals.router,
    prefix="/withdrawals",
    tags=["Withdrawals"]
)

# ==================== Referral Program ====================
api_router.include_router(
    creators.router,
    prefix="/creators",
    tags=["Creators"]
)

# ==================== Reports ====================
api_router.include_router(
    reports.router,
    prefix="/reports",
    tags=["Reports"]
)
