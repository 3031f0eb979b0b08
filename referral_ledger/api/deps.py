from typing import Annotated, Optional
import uuid
import logging

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.database import get_db
from referral_ledger.services.exceptions import (
    LedgerError,
    NotFoundError,
    ConfirmationRequiredError,
    OperationInProgressError,
)


logger = logging.getLogger(__name__)


async def get_operator_id(
    x_operator_id: Annotated[Optional[str], Header()] = None,
) -> Optional[uuid.UUID]:
    """
    Operator identity recorded in the audit log.

    Authentication happens upstream; this service only reads the id the
    gateway forwards.
    """
    if not x_operator_id:
        return None
    try:
        return uuid.UUID(x_operator_id)
    except ValueError:
        logger.warning(f"Invalid X-Operator-Id header: {x_operator_id}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Operator-Id must be a UUID",
        )


def ledger_http_error(exc: LedgerError) -> HTTPException:
    """Map a service error to the HTTP status the API reports."""
    if isinstance(exc, NotFoundError):
        status_code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, ConfirmationRequiredError):
        status_code = status.HTTP_403_FORBIDDEN
    elif isinstance(exc, OperationInProgressError):
        status_code = status.HTTP_409_CONFLICT
    else:
        status_code = status.HTTP_400_BAD_REQUEST
    return HTTPException(status_code=status_code, detail=exc.message)


# Type aliases for cleaner dependency injection
DB = Annotated[AsyncSession, Depends(get_db)]
OperatorId = Annotated[Optional[uuid.UUID], Depends(get_operator_id)]
