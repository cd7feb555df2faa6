"""
Exception hierarchy for the microloan engine.

Every failure the core reports carries a stable ``code`` so callers can tell
"loan already settled" apart from "bad amount" without parsing messages.
"""


class LendingError(Exception):
    """Base exception for all microlending errors."""

    code = "lending_error"


class NotFoundError(LendingError):
    """Raised when a referenced record does not exist."""

    code = "not_found"


class LoanNotFoundError(NotFoundError):
    """Raised when a loan id does not resolve to a loan."""

    code = "loan_not_found"

    def __init__(self, loan_id: str):
        super().__init__(f"Loan {loan_id} not found")
        self.loan_id = loan_id


class PaymentNotFoundError(NotFoundError):
    """Raised when a payment id does not resolve to a payment."""

    code = "payment_not_found"

    def __init__(self, payment_id: str):
        super().__init__(f"Payment {payment_id} not found")
        self.payment_id = payment_id


class AlreadySettledError(LendingError):
    """Raised when posting against a loan that is already PAID."""

    code = "already_settled"

    def __init__(self, loan_id: str):
        super().__init__(f"Loan {loan_id} is already settled")
        self.loan_id = loan_id


class ValidationError(LendingError, ValueError):
    """Raised when an input fails validation before any write happens."""

    code = "validation_error"


class InvalidAmountError(ValidationError):
    """Raised for non-numeric, non-finite or non-positive amounts."""

    code = "invalid_amount"


class InvalidDateError(ValidationError):
    """Raised for anything that is not a plain YYYY-MM-DD calendar date."""

    code = "invalid_date"


class StorageError(LendingError):
    """Raised when the storage backend fails to persist a change."""

    code = "storage_error"
