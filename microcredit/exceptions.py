"""Exception hierarchy for the loan core."""

from decimal import Decimal
from typing import Optional


class LoanCoreError(Exception):
    """Base exception for all loan core errors."""


class LoanNotFound(LoanCoreError):
    """Raised when a referenced loan does not exist."""

    def __init__(self, loan_id: str):
        self.loan_id = loan_id
        super().__init__(f"Loan {loan_id} not found")


class InvalidTransition(LoanCoreError):
    """Raised when a status change is not permitted from the current status."""

    def __init__(self, loan_id: str, current_status, attempted_status, reason: Optional[str] = None):
        self.loan_id = loan_id
        self.current_status = current_status
        self.attempted_status = attempted_status
        current = getattr(current_status, "value", current_status)
        attempted = getattr(attempted_status, "value", attempted_status)
        message = f"Loan {loan_id} cannot move from {current} to {attempted}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class InvalidParameters(LoanCoreError):
    """Raised for malformed numeric input to scheduling or amortization."""


class ScheduleGenerationError(LoanCoreError):
    """Raised when schedule generation fails during activation."""


class InsufficientAmount(LoanCoreError):
    """Raised when a tendered payment is below the amount due."""

    def __init__(self, tendered: Decimal, minimum_required: Decimal, repayment_id: Optional[str] = None):
        self.tendered = tendered
        self.minimum_required = minimum_required
        self.repayment_id = repayment_id
        super().__init__(
            f"Payment of {tendered} is below the minimum required {minimum_required}"
        )


class NoOutstandingInstallments(LoanCoreError):
    """Raised when paying a loan that has nothing left to pay."""

    def __init__(self, loan_id: str):
        self.loan_id = loan_id
        super().__init__(f"Loan {loan_id} has no outstanding installments")


class ConcurrencyConflict(LoanCoreError):
    """Raised when a conditional update finds the record already changed."""


class PersistenceError(LoanCoreError):
    """Raised when the underlying store fails."""
