"""Errors raised by ledger services for single-item admin operations."""
from typing import Dict


class LedgerError(Exception):
    """Base exception for ledger errors."""
    def __init__(self, message: str, details: Dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class NotFoundError(LedgerError):
    """Referenced record does not exist."""
    pass


class AttributionError(LedgerError):
    """Payment cannot be attributed (e.g. missing buyer)."""
    pass


class PayoutError(LedgerError):
    """Invalid payout or withdrawal state transition."""
    pass


class ConfirmationRequiredError(LedgerError):
    """Operator one-time code missing or wrong for a large amount."""
    pass


class OperationInProgressError(LedgerError):
    """Another run of the same bulk operation holds the guard."""
    pass
