"""
Anchor Date Module

The single place that decides the calendar date of installment #1. Every
consumer (schedule projection, API, reconciliation) goes through
``resolve_anchor``; nothing stores a running schedule that could drift.
"""

from datetime import date
from typing import Optional

from .audit import AuditTrail, AuditEventType
from .dates import DateLike, add_weeks, next_weekday_on_or_after, to_optional_date
from .exceptions import InvalidDateError
from .locking import LoanLockRegistry
from .logging_config import get_logger, log_action
from .loans import LoanManager
from .models import Loan
from .storage import StorageInterface

logger = get_logger("microlending.anchor")


def resolve_anchor(loan: Loan, override: Optional[date] = None) -> date:
    """
    Date of installment #1, highest priority first:

    1. ``override`` passed by the caller (never persisted)
    2. the loan's persisted custom first-installment date
    3. ``loan_date + 7 days`` while nothing has been paid
    4. ``next_due_date - 7 days * installments_paid_count``
    """
    if override is not None:
        return override
    if loan.custom_first_installment_date is not None:
        return loan.custom_first_installment_date
    if loan.installments_paid_count == 0:
        return add_weeks(loan.loan_date, 1)
    return add_weeks(loan.next_due_date, -loan.installments_paid_count)


def first_installment_on_weekday(loan: Loan, weekday: int) -> date:
    """First date on or after the default first installment that falls on ``weekday``"""
    return next_weekday_on_or_after(add_weeks(loan.loan_date, 1), weekday)


class AnchorDateResolver:
    """
    Resolves anchors and persists the user's anchor choices on a loan
    """

    def __init__(
        self,
        storage: StorageInterface,
        loan_manager: LoanManager,
        audit_trail: AuditTrail,
        locks: LoanLockRegistry
    ):
        self.storage = storage
        self.loan_manager = loan_manager
        self.audit_trail = audit_trail
        self.locks = locks

    def resolve(self, loan_id: str, override: Optional[DateLike] = None) -> date:
        """Anchor date for a stored loan"""
        loan = self.loan_manager.require_loan(loan_id)
        return resolve_anchor(loan, to_optional_date(override))

    def set_custom_anchor(self, loan_id: str, anchor: Optional[DateLike],
                          suppress: bool = False) -> Loan:
        """
        Persist a custom first-installment date and the schedule suppression flag

        Passing ``anchor=None`` falls back to the derived anchor. ``suppress``
        blanks the projected schedule until a new anchor is chosen.

        Args:
            loan_id: Loan ID
            anchor: New first-installment date, or None to clear it
            suppress: Whether the schedule should project as empty

        Returns:
            Updated Loan
        """
        anchor_date = to_optional_date(anchor)

        with self.locks.hold(loan_id), self.storage.atomic():
            loan = self.loan_manager.require_loan(loan_id)
            previous = loan.custom_first_installment_date
            loan.custom_first_installment_date = anchor_date
            loan.schedule_suppressed = bool(suppress)
            loan.ledger_version += 1
            loan.touch()
            self.loan_manager.save_loan(loan)

            self.audit_trail.log_event(
                event_type=AuditEventType.ANCHOR_CHANGED,
                entity_type="loan",
                entity_id=loan.id,
                metadata={
                    "previous_anchor": previous,
                    "anchor": anchor_date,
                    "suppressed": loan.schedule_suppressed
                }
            )

        log_action(logger, "info", "Schedule anchor changed", action="set_custom_anchor",
                   resource=loan_id, extra={"anchor": anchor_date, "suppressed": bool(suppress)})
        return loan

    def set_payment_weekday(self, loan_id: str, weekday: Optional[int]) -> Loan:
        """
        Move the schedule onto a fixed weekday

        The first installment becomes the first matching weekday on or after
        the default first installment date, and the schedule is un-suppressed.
        ``None`` clears both the weekday and the custom anchor.

        Args:
            loan_id: Loan ID
            weekday: 0=Monday ... 6=Sunday, or None

        Returns:
            Updated Loan
        """
        if weekday is not None and (isinstance(weekday, bool) or not isinstance(weekday, int)
                                    or not 0 <= weekday <= 6):
            raise InvalidDateError(f"Weekday must be an integer from 0 (Monday) to 6 (Sunday), got {weekday!r}")

        with self.locks.hold(loan_id), self.storage.atomic():
            loan = self.loan_manager.require_loan(loan_id)
            loan.payment_weekday = weekday
            if weekday is None:
                loan.custom_first_installment_date = None
            else:
                loan.custom_first_installment_date = first_installment_on_weekday(loan, weekday)
                loan.schedule_suppressed = False
            loan.ledger_version += 1
            loan.touch()
            self.loan_manager.save_loan(loan)

            self.audit_trail.log_event(
                event_type=AuditEventType.PAYMENT_WEEKDAY_CHANGED,
                entity_type="loan",
                entity_id=loan.id,
                metadata={
                    "weekday": weekday,
                    "anchor": loan.custom_first_installment_date
                }
            )

        log_action(logger, "info", "Payment weekday changed", action="set_payment_weekday",
                   resource=loan_id, extra={"weekday": weekday})
        return loan
