"""
Payment Ledger Module

Stores the payment records of every loan. The ledger is the source of truth
for how much has been paid; loan aggregates are derived from it.
"""

from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from .calculations import total_paid
from .models import Payment
from .storage import StorageInterface


def latest_by_installment(payments: Iterable[Payment]) -> Dict[int, Payment]:
    """
    Map each installment number to the payment that describes it.

    Partial payments and the payment completing the same week share an
    installment number, so several records per number are normal. The one
    with the highest ledger sequence wins, independent of load order.
    """
    result: Dict[int, Payment] = {}
    for payment in payments:
        current = result.get(payment.installment_number)
        if current is None or payment.sequence > current.sequence:
            result[payment.installment_number] = payment
    return result


class PaymentLedger:
    """Payment records keyed by id, queried per loan"""

    def __init__(self, storage: StorageInterface, table_name: str = "payments"):
        self.storage = storage
        self.table_name = table_name

    def get(self, payment_id: str) -> Optional[Payment]:
        """Get payment by ID"""
        data = self.storage.load(self.table_name, payment_id)
        if data:
            return Payment.from_dict(data)
        return None

    def for_loan(self, loan_id: str) -> List[Payment]:
        """All payments of a loan in ledger order"""
        payments = [Payment.from_dict(data)
                    for data in self.storage.find(self.table_name, {"loan_id": loan_id})]
        payments.sort(key=lambda p: p.sequence)
        return payments

    def total_paid(self, loan_id: str) -> Decimal:
        """Sum of all amounts paid on a loan"""
        return total_paid(self.for_loan(loan_id))

    def save(self, payment: Payment) -> None:
        """Insert or replace a payment record"""
        self.storage.save(self.table_name, payment.id, payment.to_dict())

    def remove(self, payment_id: str) -> bool:
        """Delete a payment record"""
        return self.storage.delete(self.table_name, payment_id)
