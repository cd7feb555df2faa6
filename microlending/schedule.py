"""
Schedule Projection Module

Turns loan terms, an anchor date and the payment ledger into the list of
weekly installments shown to users. Projection is a pure function of its
inputs; ``ScheduleProjector`` only adds loading and a small LRU cache keyed
by the loan's ledger version.
"""

from collections import OrderedDict
from datetime import date
from decimal import Decimal
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple
import threading

from .amounts import format_amount
from .anchor import resolve_anchor
from .dates import DateLike, add_weeks, format_date, to_optional_date
from .ledger import latest_by_installment
from .loans import LoanManager
from .models import Loan, Payment


class InstallmentStatus(Enum):
    """Display status of one projected installment"""
    PENDING = "pending"
    PAID = "paid"
    PARTIAL = "partial"


@dataclass(frozen=True)
class InstallmentProjection:
    """One row of a projected schedule"""
    number: int
    scheduled_date: date
    scheduled_amount: str
    status: InstallmentStatus
    paid_date: Optional[date] = None
    paid_amount: Optional[Decimal] = None
    mora: Optional[Decimal] = None
    remaining: Optional[Decimal] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'number': self.number,
            'scheduled_date': format_date(self.scheduled_date),
            'scheduled_amount': self.scheduled_amount,
            'status': self.status.value,
            'paid_date': format_date(self.paid_date),
            'paid_amount': format_amount(self.paid_amount) if self.paid_amount is not None else None,
            'mora': format_amount(self.mora) if self.mora is not None else None,
            'remaining': format_amount(self.remaining) if self.remaining is not None else None,
        }


def project_installments(loan: Loan, anchor: date,
                         payments: Iterable[Payment]) -> List[InstallmentProjection]:
    """
    Project the installment list of a loan.

    Installment ``i`` falls ``7 * (i - 1)`` days after ``anchor``. A ledger
    payment for the installment makes it PAID or PARTIAL; without one,
    installments up to the paid count are PAID (counts recorded without
    per-installment payments); the rest are PENDING. A suppressed schedule
    projects as empty.

    Args:
        loan: Loan terms and aggregate
        anchor: Date of installment #1
        payments: The loan's ledger

    Returns:
        Installments in order, ``loan.installment_count`` of them
    """
    if loan.schedule_suppressed or loan.installment_count <= 0:
        return []

    by_installment = latest_by_installment(payments)
    scheduled_amount = format_amount(loan.installment_amount)

    schedule = []
    for number in range(1, loan.installment_count + 1):
        scheduled_date = add_weeks(anchor, number - 1)
        payment = by_installment.get(number)

        if payment is not None:
            schedule.append(InstallmentProjection(
                number=number,
                scheduled_date=scheduled_date,
                scheduled_amount=scheduled_amount,
                status=InstallmentStatus.PARTIAL if payment.is_partial else InstallmentStatus.PAID,
                paid_date=payment.payment_date,
                paid_amount=payment.amount_paid,
                mora=payment.mora_amount,
                remaining=payment.remaining_amount
            ))
        elif number <= loan.installments_paid_count:
            schedule.append(InstallmentProjection(
                number=number,
                scheduled_date=scheduled_date,
                scheduled_amount=scheduled_amount,
                status=InstallmentStatus.PAID
            ))
        else:
            schedule.append(InstallmentProjection(
                number=number,
                scheduled_date=scheduled_date,
                scheduled_amount=scheduled_amount,
                status=InstallmentStatus.PENDING
            ))

    return schedule


class ScheduleProjector:
    """Loads a loan and its ledger and projects the schedule, with caching"""

    def __init__(self, loan_manager: LoanManager, cache_size: int = 256):
        self.loan_manager = loan_manager
        self.cache_size = cache_size
        self._cache: "OrderedDict[Tuple[str, int, date], List[InstallmentProjection]]" = OrderedDict()
        self._lock = threading.Lock()

    def project_schedule(self, loan_id: str,
                         override_anchor: Optional[DateLike] = None) -> List[InstallmentProjection]:
        """
        Projected schedule of a stored loan

        Args:
            loan_id: Loan ID
            override_anchor: Transient first-installment date, not persisted

        Returns:
            List of InstallmentProjection
        """
        return self.anchored_schedule(loan_id, override_anchor)[1]

    def anchored_schedule(self, loan_id: str, override_anchor: Optional[DateLike] = None
                          ) -> Tuple[date, List[InstallmentProjection]]:
        """Anchor date and schedule, both taken from one read of the loan"""
        override = to_optional_date(override_anchor)
        loan = self.loan_manager.require_loan(loan_id)
        anchor = resolve_anchor(loan, override)
        key = (loan.id, loan.ledger_version, anchor)

        with self._lock:
            cached = self._cache.get(key)
            if cached is not None:
                self._cache.move_to_end(key)
                return anchor, list(cached)

        schedule = project_installments(loan, anchor, self.loan_manager.ledger.for_loan(loan.id))

        if self.cache_size > 0:
            with self._lock:
                self._cache[key] = schedule
                self._cache.move_to_end(key)
                while len(self._cache) > self.cache_size:
                    self._cache.popitem(last=False)

        return anchor, list(schedule)
