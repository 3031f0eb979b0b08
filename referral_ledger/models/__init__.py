from referral_ledger.models.creator import CMOAccount, CreatorAccount, DiscountCode
from referral_ledger.models.attribution import (
    PaymentAttribution,
    UserAttribution,
    PaymentType,
    ReferralSource,
)
from referral_ledger.models.payout import CreatorPayout, CMOPayout, PayoutStatus, PayoutKind
from referral_ledger.models.payment import RawPayment, UserProfile
from referral_ledger.models.withdrawal import WithdrawalRequest, WithdrawalStatus
from referral_ledger.models.operation_lock import OperationLock
from referral_ledger.models.audit_log import AuditLog

__all__ = [
    "CMOAccount",
    "CreatorAccount",
    "DiscountCode",
    "PaymentAttribution",
    "UserAttribution",
    "PaymentType",
    "ReferralSource",
    "CreatorPayout",
    "CMOPayout",
    "PayoutStatus",
    "PayoutKind",
    "RawPayment",
    "UserProfile",
    "WithdrawalRequest",
    "WithdrawalStatus",
    "OperationLock",
    "AuditLog",
]
