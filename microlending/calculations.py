"""
Loan Calculation Module

Pure calculations shared by the poster, editor, reverser and reconciler:
loan terms, late-fee (mora) proration, partial-payment detection and the
loan status transitions.
"""

from decimal import Decimal
from dataclasses import dataclass
from typing import Any, Dict, Iterable

from .amounts import HUNDRED, ZERO, positive_amount, quantize, round_up, to_decimal, total
from .exceptions import InvalidAmountError, ValidationError
from .models import LoanStatus, Payment

MORA_DAYS_PER_MONTH = Decimal("30")


@dataclass(frozen=True)
class LoanTermsQuote:
    """Repayment figures implied by principal, flat rate and installment count"""
    total_payable: Decimal
    installment_amount: Decimal

    def to_dict(self) -> Dict[str, str]:
        return {
            'total_payable': f"{self.total_payable:.2f}",
            'installment_amount': f"{self.installment_amount:.2f}",
        }


def calculate_terms(principal: Any, rate_percent: Any, installment_count: int) -> LoanTermsQuote:
    """
    Calculate the total payable and weekly installment for a flat-rate loan.

    ``total_payable = principal * (1 + rate/100)``; the installment is that
    total split evenly and rounded up to the cent, so the installments
    always cover the total.

    Args:
        principal: Amount lent, greater than zero
        rate_percent: Flat interest for the whole loan, e.g. 10 for 10%
        installment_count: Number of weekly installments, at least 1

    Returns:
        LoanTermsQuote

    Raises:
        InvalidAmountError: If principal or rate is invalid
        ValidationError: If installment_count is not a positive integer
    """
    principal = positive_amount(principal)
    rate = to_decimal(rate_percent)
    if rate < 0:
        raise InvalidAmountError(f"Interest rate cannot be negative, got {rate_percent!r}")
    if isinstance(installment_count, bool) or not isinstance(installment_count, int) or installment_count <= 0:
        raise ValidationError(f"Installment count must be a positive integer, got {installment_count!r}")

    total_payable = quantize(principal * (1 + rate / HUNDRED))
    installment_amount = round_up(total_payable / Decimal(installment_count))
    return LoanTermsQuote(total_payable=total_payable, installment_amount=installment_amount)


def calculate_mora(principal: Decimal, mora_rate_percent: Decimal, days_late: int) -> Decimal:
    """
    Late fee for a payment ``days_late`` days past due.

    The monthly mora rate applies to the principal and is prorated linearly
    over a 30-day month. It is never compounded.
    """
    if days_late <= 0:
        return ZERO
    monthly_fee = principal * mora_rate_percent / HUNDRED
    return quantize(monthly_fee * Decimal(days_late) / MORA_DAYS_PER_MONTH)


def is_partial_amount(amount: Decimal, installment_amount: Decimal) -> bool:
    """A payment below the installment does not settle its week"""
    return amount < installment_amount


def remaining_for(amount: Decimal, installment_amount: Decimal) -> Decimal:
    """Amount still owed on the installment after ``amount``"""
    if is_partial_amount(amount, installment_amount):
        return quantize(installment_amount - amount)
    return ZERO


def total_paid(payments: Iterable[Payment]) -> Decimal:
    """Sum of amounts paid across a ledger"""
    return total(payment.amount_paid for payment in payments)


def status_after_post(
    prior: LoanStatus,
    paid_total: Decimal,
    total_payable: Decimal,
    installments_paid_count: int,
    installment_count: int,
    is_partial: bool,
    behind_schedule: bool
) -> LoanStatus:
    """
    Loan status after posting a payment.

    ``behind_schedule`` means the payment date is still past the loan's due
    date after the payment has been applied, i.e. past the advanced due date
    for a full payment and past the unchanged one for a partial payment.
    """
    if paid_total >= total_payable:
        return LoanStatus.PAID
    if installments_paid_count >= installment_count:
        return LoanStatus.PAID
    if not is_partial and prior == LoanStatus.LATE and not behind_schedule:
        return LoanStatus.ACTIVE
    if behind_schedule:
        return LoanStatus.LATE
    return prior


def status_after_ledger_change(current: LoanStatus, paid_total: Decimal,
                               total_payable: Decimal) -> LoanStatus:
    """
    Loan status after an edit or deletion changed the ledger total.

    Only the PAID boundary is re-derived. A loan leaving PAID always lands on
    ACTIVE; lateness is only ever set again by the next posted payment.
    """
    if paid_total >= total_payable:
        return LoanStatus.PAID
    if current == LoanStatus.PAID:
        return LoanStatus.ACTIVE
    return current
