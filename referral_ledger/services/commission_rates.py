"""
Commission rate resolution.

Pure functions: no database access, no settings import. The schedule is
passed in so callers and tests can inject their own numbers.
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

CENT = Decimal("0.01")


@dataclass(frozen=True)
class CommissionSchedule:
    """Creator tier rates and the CMO override rate."""
    base_rate: Decimal = Decimal("0.08")
    elevated_rate: Decimal = Decimal("0.12")
    tier_threshold: int = 500
    cmo_override_rate: Decimal = Decimal("0.03")


DEFAULT_SCHEDULE = CommissionSchedule()


def quantize_money(amount: Decimal) -> Decimal:
    return Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


def resolve_creator_rate(
    lifetime_paid_users: int,
    custom_commission_rate: Optional[Decimal],
    schedule: CommissionSchedule = DEFAULT_SCHEDULE,
) -> Decimal:
    """
    Rate a creator earns on the next payment.

    A custom rate always wins, including an explicit 0. Otherwise the
    elevated rate applies once lifetime_paid_users reaches the threshold.
    """
    if custom_commission_rate is not None:
        return Decimal(custom_commission_rate)
    if (lifetime_paid_users or 0) >= schedule.tier_threshold:
        return schedule.elevated_rate
    return schedule.base_rate


def compute_commission(final_amount: Decimal, rate: Decimal) -> Decimal:
    """final_amount x rate, rounded half-up to cents."""
    return quantize_money(Decimal(final_amount) * Decimal(rate))


def cmo_override_amount(
    creator_commission: Decimal,
    schedule: CommissionSchedule = DEFAULT_SCHEDULE,
) -> Decimal:
    """CMO share of one creator commission, rounded per attribution."""
    return quantize_money(Decimal(creator_commission) * schedule.cmo_override_rate)
