"""BlinkAdvance engine - fee calculation and status state machine"""

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, FrozenSet, Iterable, Optional

from blink_backend.config import Settings
from blink_backend.domain.exceptions import (
    ActiveAdvanceExistsError,
    InvalidStatusTransitionError,
    RepaymentDateError,
)
from blink_backend.domain.models import AdvanceQuote, AdvanceStatus, TransferSpeed

CENTS = Decimal("0.01")

ACTIVE_STATUSES: FrozenSet[AdvanceStatus] = frozenset(
    {AdvanceStatus.PENDING, AdvanceStatus.APPROVED, AdvanceStatus.DISBURSED}
)

ALLOWED_TRANSITIONS: Dict[AdvanceStatus, FrozenSet[AdvanceStatus]] = {
    AdvanceStatus.PENDING: frozenset({AdvanceStatus.APPROVED, AdvanceStatus.CANCELLED}),
    AdvanceStatus.APPROVED: frozenset({AdvanceStatus.DISBURSED, AdvanceStatus.CANCELLED}),
    AdvanceStatus.DISBURSED: frozenset({AdvanceStatus.REPAID, AdvanceStatus.DEFAULTED}),
    AdvanceStatus.REPAID: frozenset(),
    AdvanceStatus.DEFAULTED: frozenset(),
    AdvanceStatus.CANCELLED: frozenset(),
}

# Column stamped when an advance enters each status
TRANSITION_TIMESTAMPS: Dict[AdvanceStatus, str] = {
    AdvanceStatus.APPROVED: "approved_at",
    AdvanceStatus.DISBURSED: "disbursed_at",
    AdvanceStatus.REPAID: "repaid_at",
    AdvanceStatus.DEFAULTED: "defaulted_at",
    AdvanceStatus.CANCELLED: "cancelled_at",
}

# Column that keeps the caller's correlation id for settlement-related transitions
TRANSITION_REFERENCES: Dict[AdvanceStatus, str] = {
    AdvanceStatus.DISBURSED: "disbursement_reference",
    AdvanceStatus.REPAID: "repayment_reference",
}


@dataclass(frozen=True)
class AdvancePolicy:
    """Canonical rule set for the advance product"""

    amount: Decimal = Decimal("200.00")
    fee_instant: Decimal = Decimal("25.00")
    fee_standard: Decimal = Decimal("20.00")
    discount_percentage: Decimal = Decimal("10.00")
    discount_window_days: int = 7
    max_repayment_days: int = 31

    @classmethod
    def from_settings(cls, settings: Settings) -> "AdvancePolicy":
        return cls(
            amount=settings.advance_amount,
            fee_instant=settings.advance_fee_instant,
            fee_standard=settings.advance_fee_standard,
            discount_percentage=settings.advance_discount_percentage,
            discount_window_days=settings.advance_discount_window_days,
            max_repayment_days=settings.advance_max_repayment_days,
        )

    def base_fee(self, transfer_speed: TransferSpeed) -> Decimal:
        if transfer_speed == TransferSpeed.INSTANT:
            return self.fee_instant
        return self.fee_standard


def round_money(value: Decimal) -> Decimal:
    """Round to cents using standard (half-up) rounding"""
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def resolve_repayment_date(
    issued_on: date,
    repayment_term_days: Optional[int] = None,
    repayment_date: Optional[date] = None,
    max_term_days: Optional[int] = None,
) -> date:
    """
    Determine the repayment date from either request revision.

    Older clients send a term in days, newer ones an explicit date. Exactly
    one must be supplied. A term longer than max_term_days is rejected before
    any date arithmetic.
    """
    if (repayment_term_days is None) == (repayment_date is None):
        raise RepaymentDateError("Provide exactly one of repaymentTermDays or repaymentDate.")

    if repayment_date is not None:
        return repayment_date
    if max_term_days is not None and repayment_term_days > max_term_days:
        raise RepaymentDateError(f"Repayment date must be within {max_term_days} days from today.")
    return issued_on + timedelta(days=repayment_term_days)


def calculate_fee(
    policy: AdvancePolicy,
    transfer_speed: TransferSpeed,
    issued_on: date,
    repayment_date: date,
) -> AdvanceQuote:
    """
    Price an advance.

    Rules:
    - Base fee depends on transfer speed (instant costs more than standard)
    - Repaying within the discount window (7 days) takes the discount off the fee
    - Total repayment = fixed amount + final fee, rounded half-up to cents
    - Repayment date must fall after issuance and within the horizon (31 days)

    Example:
        instant, repaid in 7 days → fee 25.00 * 0.90 = 22.50, total 222.50
    """
    term_days = (repayment_date - issued_on).days
    if term_days < 1:
        raise RepaymentDateError("Repayment date must be after the issuance date.")
    if term_days > policy.max_repayment_days:
        raise RepaymentDateError(
            f"Repayment date must be within {policy.max_repayment_days} days from today."
        )

    base_fee = policy.base_fee(transfer_speed)

    discount_percentage = None
    final_fee = base_fee
    if term_days <= policy.discount_window_days:
        discount_percentage = policy.discount_percentage
        final_fee = base_fee * (Decimal("100") - discount_percentage) / Decimal("100")

    final_fee = round_money(final_fee)
    total = round_money(policy.amount + final_fee)

    return AdvanceQuote(
        amount=policy.amount,
        transfer_speed=transfer_speed,
        base_fee=round_money(base_fee),
        discount_percentage=discount_percentage,
        final_fee=final_fee,
        total_repayment_amount=total,
        repayment_date=repayment_date,
        repayment_term_days=term_days,
    )


def ensure_no_active_advance(existing_statuses: Iterable[str]) -> None:
    """Eligibility gate: one in-flight advance per user"""
    for status in existing_statuses:
        if AdvanceStatus(status) in ACTIVE_STATUSES:
            raise ActiveAdvanceExistsError()


def validate_transition(current: str, target: str) -> AdvanceStatus:
    """
    Check a status change against the allow-list.

    Returns the target status; raises InvalidStatusTransitionError for any
    edge not in ALLOWED_TRANSITIONS (including self-transitions and anything
    leaving a terminal state).
    """
    current_status = AdvanceStatus(current)
    try:
        target_status = AdvanceStatus(target)
    except ValueError:
        raise InvalidStatusTransitionError(current_status.value, target)

    if target_status not in ALLOWED_TRANSITIONS[current_status]:
        raise InvalidStatusTransitionError(current_status.value, target_status.value)

    return target_status


def is_active(status: str) -> bool:
    return AdvanceStatus(status) in ACTIVE_STATUSES
