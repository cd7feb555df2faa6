"""
Loan and Payment Records

Persistent records for a weekly-installment loan and the payments posted
against it. The loan's aggregate fields (paid count, next due date, lateness,
accrued mora, status) are a cache of what the payment ledger implies; they
are maintained incrementally by the payment processor and can always be
rebuilt by the reconciler.
"""

from decimal import Decimal
from datetime import date, datetime
from dataclasses import dataclass
from typing import Any, Dict, Optional
from enum import Enum

from .amounts import ZERO, format_amount
from .dates import add_weeks, format_date
from .storage import StorageRecord


class LoanStatus(Enum):
    """Loan lifecycle states"""
    ACTIVE = "active"   # Repaying, last posted payment left it current
    LATE = "late"       # Last posted payment arrived after the due date
    PAID = "paid"       # Ledger total reached the total payable


class PaymentTimeliness(Enum):
    """Whether a payment arrived by the due date in force when it was posted"""
    ON_TIME = "on_time"
    LATE = "late"


def _decimal(value: Any) -> Decimal:
    return Decimal(str(value)) if value is not None else ZERO


def _date(value: Optional[str]) -> Optional[date]:
    return date.fromisoformat(value) if value else None


@dataclass
class Loan(StorageRecord):
    """Loan terms plus the aggregate state derived from its payments"""
    principal: Decimal
    rate_percent: Decimal
    mora_rate_percent: Decimal
    loan_date: date
    installment_count: int
    installment_amount: Decimal
    total_payable: Decimal
    status: LoanStatus = LoanStatus.ACTIVE

    # Aggregate cache over the payment ledger
    installments_paid_count: int = 0
    next_due_date: Optional[date] = None
    days_late: int = 0
    accrued_mora: Decimal = ZERO

    # Schedule anchoring
    custom_first_installment_date: Optional[date] = None
    payment_weekday: Optional[int] = None   # 0=Monday ... 6=Sunday
    schedule_suppressed: bool = False

    client_id: Optional[str] = None
    ledger_version: int = 0   # Bumped on every ledger or anchor mutation

    def __post_init__(self):
        if self.next_due_date is None:
            self.next_due_date = add_weeks(self.loan_date, 1)

    @property
    def is_settled(self) -> bool:
        """Check if loan is fully paid"""
        return self.status == LoanStatus.PAID

    def to_dict(self) -> Dict[str, Any]:
        """Convert loan to dictionary"""
        return {
            'id': self.id,
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat(),
            'principal': format_amount(self.principal),
            'rate_percent': str(self.rate_percent),
            'mora_rate_percent': str(self.mora_rate_percent),
            'loan_date': format_date(self.loan_date),
            'installment_count': self.installment_count,
            'installment_amount': format_amount(self.installment_amount),
            'total_payable': format_amount(self.total_payable),
            'status': self.status.value,
            'installments_paid_count': self.installments_paid_count,
            'next_due_date': format_date(self.next_due_date),
            'days_late': self.days_late,
            'accrued_mora': format_amount(self.accrued_mora),
            'custom_first_installment_date': format_date(self.custom_first_installment_date),
            'payment_weekday': self.payment_weekday,
            'schedule_suppressed': self.schedule_suppressed,
            'client_id': self.client_id,
            'ledger_version': self.ledger_version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Loan':
        """Convert dictionary to loan"""
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            principal=_decimal(data['principal']),
            rate_percent=_decimal(data['rate_percent']),
            mora_rate_percent=_decimal(data['mora_rate_percent']),
            loan_date=_date(data['loan_date']),
            installment_count=data['installment_count'],
            installment_amount=_decimal(data['installment_amount']),
            total_payable=_decimal(data['total_payable']),
            status=LoanStatus(data['status']),
            installments_paid_count=data.get('installments_paid_count', 0),
            next_due_date=_date(data.get('next_due_date')),
            days_late=data.get('days_late', 0),
            accrued_mora=_decimal(data.get('accrued_mora')),
            custom_first_installment_date=_date(data.get('custom_first_installment_date')),
            payment_weekday=data.get('payment_weekday'),
            schedule_suppressed=data.get('schedule_suppressed', False),
            client_id=data.get('client_id'),
            ledger_version=data.get('ledger_version', 0),
        )


@dataclass
class Payment(StorageRecord):
    """One posted payment in a loan's ledger"""
    loan_id: str
    amount_paid: Decimal
    payment_date: date
    installment_number: int
    timeliness: PaymentTimeliness
    mora_amount: Decimal
    is_partial: bool
    remaining_amount: Decimal
    days_late: int = 0
    sequence: int = 0   # Loan ledger_version at creation; orders the ledger

    def to_dict(self) -> Dict[str, Any]:
        """Convert payment to dictionary"""
        return {
            'id': self.id,
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat(),
            'loan_id': self.loan_id,
            'amount_paid': format_amount(self.amount_paid),
            'payment_date': format_date(self.payment_date),
            'installment_number': self.installment_number,
            'timeliness': self.timeliness.value,
            'mora_amount': format_amount(self.mora_amount),
            'is_partial': self.is_partial,
            'remaining_amount': format_amount(self.remaining_amount),
            'days_late': self.days_late,
            'sequence': self.sequence,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Payment':
        """Convert dictionary to payment"""
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            loan_id=data['loan_id'],
            amount_paid=_decimal(data['amount_paid']),
            payment_date=_date(data['payment_date']),
            installment_number=data['installment_number'],
            timeliness=PaymentTimeliness(data['timeliness']),
            mora_amount=_decimal(data.get('mora_amount')),
            is_partial=data.get('is_partial', False),
            remaining_amount=_decimal(data.get('remaining_amount')),
            days_late=data.get('days_late', 0),
            sequence=data.get('sequence', 0),
        )
