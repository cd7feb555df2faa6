"""
Payment Processing Module

Posts, amends and reverses loan payments. Each operation validates its input
first, then runs under the loan's lock inside one storage transaction that
writes the ledger change, the updated loan aggregate and the audit events
together. A failure anywhere inside the block leaves nothing behind.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Optional
import uuid

from .amounts import ZERO, positive_amount, quantize
from .audit import AuditTrail, AuditEventType
from .calculations import (
    calculate_mora, is_partial_amount, remaining_for,
    status_after_ledger_change, status_after_post
)
from .dates import DateLike, add_weeks, days_between, to_date, today
from .exceptions import (
    AlreadySettledError, LendingError, PaymentNotFoundError, ValidationError
)
from .ledger import PaymentLedger
from .locking import LoanLockRegistry
from .logging_config import get_logger, log_action
from .loans import LoanManager
from .models import Loan, LoanStatus, Payment, PaymentTimeliness
from .storage import StorageInterface

logger = get_logger("microlending.payments")


class PaymentProcessor:
    """
    Applies payments to loans and keeps each loan aggregate in step with
    its ledger
    """

    def __init__(
        self,
        storage: StorageInterface,
        loan_manager: LoanManager,
        ledger: PaymentLedger,
        audit_trail: AuditTrail,
        locks: LoanLockRegistry
    ):
        self.storage = storage
        self.loan_manager = loan_manager
        self.ledger = ledger
        self.audit_trail = audit_trail
        self.locks = locks

    def post_payment(
        self,
        loan_id: str,
        amount: Any,
        payment_date: Optional[DateLike] = None,
        installment_number: Optional[int] = None
    ) -> Payment:
        """
        Post a new payment against a loan

        A payment at least as large as the installment settles a week: the
        paid count advances by one and the due date by seven days. A smaller
        payment is recorded as partial and moves neither. Payments after the
        due date accrue mora, prorated daily from the monthly mora rate.

        Args:
            loan_id: Loan ID
            amount: Amount paid, greater than zero
            payment_date: Date of payment (defaults to today)
            installment_number: Installment covered (defaults to paid count + 1)

        Returns:
            Created Payment

        Raises:
            LoanNotFoundError: Unknown loan
            AlreadySettledError: Loan is already PAID
            InvalidAmountError: Amount is not a positive number
            InvalidDateError: Date is not a calendar date
        """
        try:
            amount = positive_amount(amount)
            payment_date = to_date(payment_date) if payment_date is not None else today()
            if installment_number is not None:
                self._validate_installment_number(installment_number)

            with self.locks.hold(loan_id), self.storage.atomic():
                loan = self.loan_manager.require_loan(loan_id)
                if loan.status == LoanStatus.PAID:
                    raise AlreadySettledError(loan_id)
                payment = self._apply_new_payment(loan, amount, payment_date, installment_number)
        except LendingError as e:
            log_action(logger, "warning", f"Payment rejected: {e}", action="post_payment",
                       resource=loan_id, extra={"error": e.code})
            raise

        log_action(logger, "info", "Payment posted", action="post_payment", resource=loan_id,
                   extra={"payment_id": payment.id, "amount": str(payment.amount_paid),
                          "partial": payment.is_partial, "timeliness": payment.timeliness.value})
        return payment

    def edit_payment(
        self,
        payment_id: str,
        amount: Optional[Any] = None,
        payment_date: Optional[DateLike] = None
    ) -> Payment:
        """
        Amend the amount and/or date of a posted payment

        The partial flag and remaining amount follow the new amount, and the
        loan's PAID status follows the new ledger total. The paid count, due
        date, lateness and mora of the loan are left as they are.

        Args:
            payment_id: Payment ID
            amount: New amount, greater than zero
            payment_date: New payment date

        Returns:
            Updated Payment
        """
        try:
            if amount is None and payment_date is None:
                raise ValidationError("Nothing to change: give an amount and/or a payment date")
            new_amount = positive_amount(amount) if amount is not None else None
            new_date = to_date(payment_date) if payment_date is not None else None

            loan_id = self._loan_id_of(payment_id)
            with self.locks.hold(loan_id), self.storage.atomic():
                payment = self._require_payment(payment_id)
                loan = self.loan_manager.require_loan(payment.loan_id)
                previous_amount = payment.amount_paid

                if new_amount is not None:
                    payment.amount_paid = new_amount
                    payment.is_partial = is_partial_amount(new_amount, loan.installment_amount)
                    payment.remaining_amount = remaining_for(new_amount, loan.installment_amount)
                if new_date is not None:
                    payment.payment_date = new_date
                payment.touch()
                self.ledger.save(payment)

                prior_status = loan.status
                loan.status = status_after_ledger_change(
                    prior_status, self.ledger.total_paid(loan.id), loan.total_payable
                )
                self._commit_loan(loan)

                self.audit_trail.log_event(
                    event_type=AuditEventType.PAYMENT_EDITED,
                    entity_type="payment",
                    entity_id=payment.id,
                    metadata={
                        "loan_id": loan.id,
                        "previous_amount": previous_amount,
                        "amount": payment.amount_paid,
                        "payment_date": payment.payment_date,
                        "is_partial": payment.is_partial
                    }
                )
                self._log_status_change(loan, prior_status)
        except LendingError as e:
            log_action(logger, "warning", f"Payment edit rejected: {e}", action="edit_payment",
                       resource=payment_id, extra={"error": e.code})
            raise

        log_action(logger, "info", "Payment edited", action="edit_payment", resource=payment_id,
                   extra={"amount": str(payment.amount_paid), "partial": payment.is_partial})
        return payment

    def delete_payment(self, payment_id: str) -> bool:
        """
        Reverse a posted payment

        A full payment gives back its week: the paid count drops by one and
        the due date moves back seven days. Its mora leaves the accrued total.
        A PAID loan whose total falls below the amount payable reopens as
        ACTIVE.

        Args:
            payment_id: Payment ID

        Returns:
            True once the payment is removed
        """
        try:
            loan_id = self._loan_id_of(payment_id)
            with self.locks.hold(loan_id), self.storage.atomic():
                payment = self._require_payment(payment_id)
                loan = self.loan_manager.require_loan(payment.loan_id)

                self.ledger.remove(payment.id)

                if not payment.is_partial and loan.installments_paid_count > 0:
                    loan.installments_paid_count -= 1
                    loan.next_due_date = add_weeks(loan.next_due_date, -1)
                loan.accrued_mora = max(ZERO, quantize(loan.accrued_mora - payment.mora_amount))

                remaining = self.ledger.for_loan(loan.id)
                loan.days_late = remaining[-1].days_late if remaining else 0

                prior_status = loan.status
                paid_total = sum((p.amount_paid for p in remaining), ZERO)
                loan.status = status_after_ledger_change(prior_status, paid_total, loan.total_payable)
                self._commit_loan(loan)

                self.audit_trail.log_event(
                    event_type=AuditEventType.PAYMENT_REVERSED,
                    entity_type="payment",
                    entity_id=payment.id,
                    metadata={
                        "loan_id": loan.id,
                        "amount": payment.amount_paid,
                        "installment_number": payment.installment_number,
                        "mora_amount": payment.mora_amount,
                        "was_partial": payment.is_partial
                    }
                )
                self._log_status_change(loan, prior_status)
        except LendingError as e:
            log_action(logger, "warning", f"Payment reversal rejected: {e}", action="delete_payment",
                       resource=payment_id, extra={"error": e.code})
            raise

        log_action(logger, "info", "Payment reversed", action="delete_payment", resource=payment_id,
                   extra={"loan_id": loan_id})
        return True

    def _apply_new_payment(self, loan: Loan, amount: Decimal, payment_date: date,
                           installment_number: Optional[int]) -> Payment:
        """Record the payment and advance the loan; caller holds the loan lock and transaction"""
        due_date = loan.next_due_date
        is_late = payment_date > due_date
        days_late = max(0, days_between(due_date, payment_date)) if is_late else 0
        mora_amount = calculate_mora(loan.principal, loan.mora_rate_percent, days_late)

        is_partial = is_partial_amount(amount, loan.installment_amount)
        if installment_number is None:
            installment_number = loan.installments_paid_count + 1

        if not is_partial:
            loan.installments_paid_count += 1
            loan.next_due_date = add_weeks(due_date, 1)

        loan.ledger_version += 1
        now = datetime.now(timezone.utc)
        payment = Payment(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            loan_id=loan.id,
            amount_paid=amount,
            payment_date=payment_date,
            installment_number=installment_number,
            timeliness=PaymentTimeliness.LATE if is_late else PaymentTimeliness.ON_TIME,
            mora_amount=mora_amount,
            is_partial=is_partial,
            remaining_amount=remaining_for(amount, loan.installment_amount),
            days_late=days_late,
            sequence=loan.ledger_version
        )
        self.ledger.save(payment)

        prior_status = loan.status
        loan.status = status_after_post(
            prior=prior_status,
            paid_total=self.ledger.total_paid(loan.id),
            total_payable=loan.total_payable,
            installments_paid_count=loan.installments_paid_count,
            installment_count=loan.installment_count,
            is_partial=is_partial,
            behind_schedule=payment_date > loan.next_due_date
        )
        loan.accrued_mora = quantize(loan.accrued_mora + mora_amount)
        loan.days_late = days_late
        loan.touch()
        self.loan_manager.save_loan(loan)

        self.audit_trail.log_event(
            event_type=AuditEventType.PAYMENT_POSTED,
            entity_type="payment",
            entity_id=payment.id,
            metadata={
                "loan_id": loan.id,
                "amount": amount,
                "payment_date": payment_date,
                "installment_number": installment_number,
                "timeliness": payment.timeliness,
                "mora_amount": mora_amount,
                "is_partial": is_partial,
                "installments_paid_count": loan.installments_paid_count,
                "next_due_date": loan.next_due_date
            }
        )
        self._log_status_change(loan, prior_status)
        return payment

    def _commit_loan(self, loan: Loan) -> None:
        loan.ledger_version += 1
        loan.touch()
        self.loan_manager.save_loan(loan)

    def _log_status_change(self, loan: Loan, prior_status: LoanStatus) -> None:
        if loan.status == prior_status:
            return
        if loan.status == LoanStatus.PAID:
            event_type = AuditEventType.LOAN_SETTLED
        elif prior_status == LoanStatus.PAID:
            event_type = AuditEventType.LOAN_REOPENED
        else:
            return
        self.audit_trail.log_event(
            event_type=event_type,
            entity_type="loan",
            entity_id=loan.id,
            metadata={"previous_status": prior_status, "status": loan.status}
        )

    def _loan_id_of(self, payment_id: str) -> str:
        return self._require_payment(payment_id).loan_id

    def _require_payment(self, payment_id: str) -> Payment:
        payment = self.ledger.get(payment_id)
        if payment is None:
            raise PaymentNotFoundError(payment_id)
        return payment

    @staticmethod
    def _validate_installment_number(installment_number: Any) -> None:
        if isinstance(installment_number, bool) or not isinstance(installment_number, int) \
                or installment_number < 1:
            raise ValidationError(
                f"Installment number must be a positive integer, got {installment_number!r}"
            )
