"""API endpoints for payment finalization and the attribution ledger."""
from fastapi import APIRouter, HTTPException, status

from referral_ledger.api.deps import DB
from referral_ledger.schemas.attribution import (
    FinalizePaymentRequest,
    FinalizePaymentResult,
    PaymentAttributionResponse,
)
from referral_ledger.services.attribution_service import AttributionService

router = APIRouter()


@router.post("/finalize", response_model=FinalizePaymentResult)
async def finalize_payment(request: FinalizePaymentRequest, db: DB):
    """
    Attribute a completed payment.

    Called once by checkout after the gateway confirms the purchase. Repeating
    the call for the same order_id is a no-op that reports already_attributed.
    Failures are returned with success=false and leave the payment orphaned.
    """
    return await AttributionService(db).finalize_payment(request)


@router.get("/attributions/{order_id}", response_model=PaymentAttributionResponse)
async def get_attribution(order_id: str, db: DB):
    """Get the attribution recorded for an order."""
    attribution = await AttributionService(db).get_attribution(order_id)
    if not attribution:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Attribution not found")
    return attribution
