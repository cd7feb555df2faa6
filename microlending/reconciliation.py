"""
Reconciliation Module

Rebuilds a loan's aggregate fields from its terms and payment ledger and
reports where the stored aggregate has drifted. Drift is expected after
payment edits, which deliberately leave the paid count, due date and mora
alone.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List

from .amounts import ZERO, quantize
from .audit import AuditTrail, AuditEventType
from .calculations import status_after_ledger_change, status_after_post
from .dates import add_weeks, format_date
from .locking import LoanLockRegistry
from .logging_config import get_logger, log_action
from .loans import LoanManager
from .models import Loan, LoanStatus, Payment
from .storage import StorageInterface

logger = get_logger("microlending.reconciliation")

AGGREGATE_FIELDS = (
    "installments_paid_count",
    "next_due_date",
    "accrued_mora",
    "days_late",
    "status",
)


@dataclass
class LoanAggregate:
    """The ledger-derived fields of a loan"""
    installments_paid_count: int
    next_due_date: date
    accrued_mora: Decimal
    days_late: int
    status: LoanStatus

    @classmethod
    def of(cls, loan: Loan) -> 'LoanAggregate':
        return cls(
            installments_paid_count=loan.installments_paid_count,
            next_due_date=loan.next_due_date,
            accrued_mora=loan.accrued_mora,
            days_late=loan.days_late,
            status=loan.status
        )


@dataclass
class ReconciliationReport:
    """Outcome of reconciling one loan"""
    loan_id: str
    cached: LoanAggregate
    rebuilt: LoanAggregate
    drift: List[str] = field(default_factory=list)
    applied: bool = False

    @property
    def in_sync(self) -> bool:
        return not self.drift

    def to_dict(self) -> Dict[str, Any]:
        return {
            'loan_id': self.loan_id,
            'in_sync': self.in_sync,
            'applied': self.applied,
            'drift': {
                name: {
                    'cached': _display(getattr(self.cached, name)),
                    'rebuilt': _display(getattr(self.rebuilt, name)),
                }
                for name in self.drift
            },
        }


def _display(value: Any) -> Any:
    if isinstance(value, LoanStatus):
        return value.value
    if isinstance(value, date):
        return format_date(value)
    if isinstance(value, Decimal):
        return f"{value:.2f}"
    return value


def rebuild_aggregate(loan: Loan, payments: List[Payment]) -> LoanAggregate:
    """
    Derive the aggregate a loan should carry for the given ledger.

    Payments are replayed in sequence order through the same status rule the
    poster applies, using each payment's stored partial flag. The PAID rule
    is then enforced against the final ledger total.
    """
    payments = sorted(payments, key=lambda p: p.sequence)

    count = 0
    due_date = add_weeks(loan.loan_date, 1)
    paid_so_far = ZERO
    status = LoanStatus.ACTIVE

    for payment in payments:
        paid_so_far += payment.amount_paid
        if not payment.is_partial:
            count += 1
            due_date = add_weeks(due_date, 1)
        status = status_after_post(
            prior=status,
            paid_total=paid_so_far,
            total_payable=loan.total_payable,
            installments_paid_count=count,
            installment_count=loan.installment_count,
            is_partial=payment.is_partial,
            behind_schedule=payment.payment_date > due_date
        )

    status = status_after_ledger_change(status, quantize(paid_so_far), loan.total_payable)

    return LoanAggregate(
        installments_paid_count=count,
        next_due_date=due_date,
        accrued_mora=quantize(sum((p.mora_amount for p in payments), ZERO)),
        days_late=payments[-1].days_late if payments else 0,
        status=status
    )


class Reconciler:
    """Compares stored loan aggregates with their ledgers and repairs them"""

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

    def reconcile(self, loan_id: str, apply: bool = True) -> ReconciliationReport:
        """
        Rebuild a loan's aggregate from its ledger

        Args:
            loan_id: Loan ID
            apply: Persist the rebuilt aggregate when it differs

        Returns:
            ReconciliationReport listing the drifted fields
        """
        with self.locks.hold(loan_id), self.storage.atomic():
            loan = self.loan_manager.require_loan(loan_id)
            cached = LoanAggregate.of(loan)
            rebuilt = rebuild_aggregate(loan, self.loan_manager.ledger.for_loan(loan_id))

            drift = [name for name in AGGREGATE_FIELDS
                     if getattr(cached, name) != getattr(rebuilt, name)]
            report = ReconciliationReport(loan_id=loan_id, cached=cached,
                                          rebuilt=rebuilt, drift=drift)

            if drift and apply:
                for name in drift:
                    setattr(loan, name, getattr(rebuilt, name))
                loan.ledger_version += 1
                loan.touch()
                self.loan_manager.save_loan(loan)

                self.audit_trail.log_event(
                    event_type=AuditEventType.LOAN_RECONCILED,
                    entity_type="loan",
                    entity_id=loan.id,
                    metadata=report.to_dict()['drift']
                )
                report.applied = True

        if drift:
            log_action(logger, "warning", "Loan aggregate drifted from ledger", action="reconcile",
                       resource=loan_id, extra={"fields": drift, "applied": report.applied})
        else:
            logger.debug(f"Loan {loan_id} aggregate matches its ledger")
        return report

    def reconcile_all(self, apply: bool = True) -> List[ReconciliationReport]:
        """Reconcile every stored loan"""
        return [self.reconcile(loan.id, apply=apply) for loan in self.loan_manager.list_loans()]
