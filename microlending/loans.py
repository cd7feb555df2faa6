"""
Loan Module

Handles loan creation and lookup: the store of loan terms and of the
aggregate fields the payment processor maintains.
"""

from decimal import Decimal
from datetime import datetime, timezone
from typing import Any, List, Optional
import uuid

from .amounts import positive_amount, to_decimal
from .audit import AuditTrail, AuditEventType
from .calculations import calculate_terms
from .dates import DateLike, to_date
from .exceptions import InvalidAmountError, LoanNotFoundError
from .ledger import PaymentLedger
from .logging_config import get_logger, log_action
from .models import Loan, LoanStatus, Payment
from .storage import StorageInterface

logger = get_logger("microlending.loans")


class LoanManager:
    """
    Creates loans and reads them back together with their ledgers
    """

    def __init__(
        self,
        storage: StorageInterface,
        ledger: PaymentLedger,
        audit_trail: AuditTrail,
        default_mora_rate_percent: Any = "5"
    ):
        self.storage = storage
        self.ledger = ledger
        self.audit_trail = audit_trail
        self.default_mora_rate_percent = to_decimal(default_mora_rate_percent)

        self.loans_table = "loans"

    def create_loan(
        self,
        principal: Any,
        rate_percent: Any,
        installment_count: int,
        loan_date: DateLike,
        mora_rate_percent: Optional[Any] = None,
        client_id: Optional[str] = None
    ) -> Loan:
        """
        Create a new weekly-installment loan

        Args:
            principal: Amount lent
            rate_percent: Flat interest for the whole loan
            installment_count: Number of weekly installments
            loan_date: Disbursement date; the first installment falls 7 days later
            mora_rate_percent: Monthly late-fee rate (configured default when omitted)
            client_id: Optional reference to the external client record

        Returns:
            Created Loan object
        """
        quote = calculate_terms(principal, rate_percent, installment_count)
        loan_date = to_date(loan_date)
        mora_rate = self.default_mora_rate_percent if mora_rate_percent is None \
            else to_decimal(mora_rate_percent)
        if mora_rate < 0:
            raise InvalidAmountError(f"Mora rate cannot be negative, got {mora_rate_percent!r}")

        now = datetime.now(timezone.utc)
        loan = Loan(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            principal=positive_amount(principal),
            rate_percent=to_decimal(rate_percent),
            mora_rate_percent=mora_rate,
            loan_date=loan_date,
            installment_count=installment_count,
            installment_amount=quote.installment_amount,
            total_payable=quote.total_payable,
            client_id=client_id
        )

        with self.storage.atomic():
            self.save_loan(loan)
            self.audit_trail.log_event(
                event_type=AuditEventType.LOAN_CREATED,
                entity_type="loan",
                entity_id=loan.id,
                metadata={
                    "principal": loan.principal,
                    "rate_percent": loan.rate_percent,
                    "installment_count": loan.installment_count,
                    "installment_amount": loan.installment_amount,
                    "total_payable": loan.total_payable,
                    "loan_date": loan.loan_date
                }
            )

        log_action(logger, "info", "Loan created", action="create_loan", resource=loan.id,
                   extra={"total_payable": str(loan.total_payable)})
        return loan

    def get_loan(self, loan_id: str) -> Optional[Loan]:
        """Get loan by ID"""
        loan_dict = self.storage.load(self.loans_table, loan_id)
        if loan_dict:
            return Loan.from_dict(loan_dict)
        return None

    def require_loan(self, loan_id: str) -> Loan:
        """Get loan by ID or raise LoanNotFoundError"""
        loan = self.get_loan(loan_id)
        if loan is None:
            raise LoanNotFoundError(loan_id)
        return loan

    def list_loans(self, status: Optional[LoanStatus] = None) -> List[Loan]:
        """All loans, optionally restricted to one status, oldest first"""
        filters = {"status": status.value} if status else {}
        loans = [Loan.from_dict(data) for data in self.storage.find(self.loans_table, filters)]
        loans.sort(key=lambda loan: loan.created_at)
        return loans

    def get_payments(self, loan_id: str) -> List[Payment]:
        """Payment history for loan in ledger order"""
        self.require_loan(loan_id)
        return self.ledger.for_loan(loan_id)

    def total_paid(self, loan_id: str) -> Decimal:
        """Sum of all payments posted on a loan"""
        self.require_loan(loan_id)
        return self.ledger.total_paid(loan_id)

    def loans_due_on(self, day: DateLike) -> List[Loan]:
        """
        The day's collection list: unsettled loans whose next installment
        falls due on ``day``
        """
        day = to_date(day)
        return [
            loan for loan in self.list_loans()
            if loan.status != LoanStatus.PAID and loan.next_due_date == day
        ]

    def save_loan(self, loan: Loan) -> None:
        """Save loan to storage"""
        self.storage.save(self.loans_table, loan.id, loan.to_dict())
