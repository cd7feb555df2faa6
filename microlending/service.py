"""
Lending System

Wires storage, audit trail and managers together and exposes the library
operations of the engine in one place. The HTTP layer and scripts talk to a
``LendingSystem``; tests usually build one over ``InMemoryStorage``.
"""

from datetime import date
from typing import Any, List, Optional, Tuple

from .anchor import AnchorDateResolver
from .audit import AuditTrail
from .calculations import LoanTermsQuote, calculate_terms
from .config import LendingConfig, get_config
from .dates import DateLike
from .ledger import PaymentLedger
from .locking import LoanLockRegistry
from .loans import LoanManager
from .logging_config import get_logger
from .models import Loan, LoanStatus, Payment
from .payments import PaymentProcessor
from .reconciliation import ReconciliationReport, Reconciler
from .schedule import InstallmentProjection, ScheduleProjector
from .storage import StorageInterface, create_storage

logger = get_logger("microlending.service")


class LendingSystem:
    """Microloan engine with all components initialized"""

    def __init__(self, storage: Optional[StorageInterface] = None,
                 config: Optional[LendingConfig] = None):
        self.config = config or get_config()

        if storage is None:
            storage = create_storage(self.config.storage_backend, self.config.sqlite_path)
        self.storage = storage

        self.audit_trail = AuditTrail(self.storage, enabled=self.config.enable_audit_logging)
        self.locks = LoanLockRegistry()
        self.ledger = PaymentLedger(self.storage)
        self.loan_manager = LoanManager(
            self.storage, self.ledger, self.audit_trail,
            default_mora_rate_percent=self.config.default_mora_rate_percent
        )
        self.anchor_resolver = AnchorDateResolver(
            self.storage, self.loan_manager, self.audit_trail, self.locks
        )
        self.schedule_projector = ScheduleProjector(
            self.loan_manager, cache_size=self.config.schedule_cache_size
        )
        self.payment_processor = PaymentProcessor(
            self.storage, self.loan_manager, self.ledger, self.audit_trail, self.locks
        )
        self.reconciler = Reconciler(
            self.storage, self.loan_manager, self.audit_trail, self.locks
        )

        logger.debug(f"Lending system initialized on {type(self.storage).__name__}")

    # Loans

    def create_loan(self, principal: Any, rate_percent: Any, installment_count: Optional[int] = None,
                    loan_date: Optional[DateLike] = None, mora_rate_percent: Optional[Any] = None,
                    client_id: Optional[str] = None) -> Loan:
        if installment_count is None:
            installment_count = self.config.default_installment_count
        if loan_date is None:
            loan_date = date.today()
        return self.loan_manager.create_loan(
            principal, rate_percent, installment_count, loan_date,
            mora_rate_percent=mora_rate_percent, client_id=client_id
        )

    def get_loan(self, loan_id: str) -> Loan:
        return self.loan_manager.require_loan(loan_id)

    def list_loans(self, status: Optional[LoanStatus] = None) -> List[Loan]:
        return self.loan_manager.list_loans(status)

    def get_payments(self, loan_id: str) -> List[Payment]:
        return self.loan_manager.get_payments(loan_id)

    def loans_due_on(self, day: DateLike) -> List[Loan]:
        return self.loan_manager.loans_due_on(day)

    @staticmethod
    def calculate_terms(principal: Any, rate_percent: Any, installment_count: int) -> LoanTermsQuote:
        return calculate_terms(principal, rate_percent, installment_count)

    # Payments

    def post_payment(self, loan_id: str, amount: Any, payment_date: Optional[DateLike] = None,
                     installment_number: Optional[int] = None) -> Payment:
        return self.payment_processor.post_payment(loan_id, amount, payment_date, installment_number)

    def edit_payment(self, payment_id: str, amount: Optional[Any] = None,
                     payment_date: Optional[DateLike] = None) -> Payment:
        return self.payment_processor.edit_payment(payment_id, amount, payment_date)

    def delete_payment(self, payment_id: str) -> bool:
        return self.payment_processor.delete_payment(payment_id)

    # Schedule

    def project_schedule(self, loan_id: str,
                         override_anchor: Optional[DateLike] = None) -> List[InstallmentProjection]:
        return self.schedule_projector.project_schedule(loan_id, override_anchor)

    def anchored_schedule(self, loan_id: str, override_anchor: Optional[DateLike] = None
                          ) -> Tuple[date, List[InstallmentProjection]]:
        return self.schedule_projector.anchored_schedule(loan_id, override_anchor)

    def resolve_anchor(self, loan_id: str, override: Optional[DateLike] = None) -> date:
        return self.anchor_resolver.resolve(loan_id, override)

    def set_custom_anchor(self, loan_id: str, anchor: Optional[DateLike],
                          suppress: bool = False) -> Loan:
        return self.anchor_resolver.set_custom_anchor(loan_id, anchor, suppress)

    def set_payment_weekday(self, loan_id: str, weekday: Optional[int]) -> Loan:
        return self.anchor_resolver.set_payment_weekday(loan_id, weekday)

    # Maintenance

    def reconcile(self, loan_id: str, apply: bool = True) -> ReconciliationReport:
        return self.reconciler.reconcile(loan_id, apply=apply)

    def close(self) -> None:
        self.storage.close()
