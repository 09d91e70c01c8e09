"""
Loan Repository Module

Persistence collaborator for loans and their installments. Loan updates are
conditional on the version the caller loaded and installment settlement is
conditional on the installment still being unpaid, so writers sharing the
store from other processes surface as ConcurrencyConflict instead of lost
updates.
"""

from decimal import Decimal
from datetime import datetime, timezone
from typing import List, Optional

from .storage import StorageInterface
from .models import Loan, LoanRepayment, LoanStatus
from .exceptions import LoanNotFound, ConcurrencyConflict, InvalidParameters

# Statuses whose schedule has been derived from amount and interest_rate
SCHEDULED_STATUSES = frozenset({LoanStatus.ACTIVE, LoanStatus.COMPLETED, LoanStatus.DEFAULTED})


def _installment_order(repayment: LoanRepayment):
    return (repayment.due_date, repayment.id)


class LoanRepository:
    """Reads and writes Loan and LoanRepayment records"""

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.loans_table = "loans"
        self.repayments_table = "loan_repayments"

    def create_loan(self, loan: Loan) -> Loan:
        if self.storage.exists(self.loans_table, loan.id):
            raise ConcurrencyConflict(f"Loan {loan.id} already exists")
        self.storage.save(self.loans_table, loan.id, loan.to_dict())
        return loan

    def get_loan(self, loan_id: str) -> Optional[Loan]:
        data = self.storage.load(self.loans_table, loan_id)
        if data:
            return Loan.from_dict(data)
        return None

    def list_loans(self, **filters) -> List[Loan]:
        loans = [Loan.from_dict(data) for data in self.storage.find(self.loans_table, filters)]
        loans.sort(key=lambda x: x.created_at)
        return loans

    def update_loan(self, loan: Loan, expected_version: int) -> Loan:
        """
        Persist a loan if nobody else changed it since it was loaded

        Args:
            loan: Loan carrying the new field values
            expected_version: Version the caller read before mutating

        Returns:
            The loan with its version advanced
        """
        current = self.storage.load(self.loans_table, loan.id)
        if current is None:
            raise LoanNotFound(loan.id)
        if current.get('version', 0) != expected_version:
            raise ConcurrencyConflict(
                f"Loan {loan.id} changed concurrently "
                f"(expected version {expected_version}, found {current.get('version', 0)})"
            )
        if LoanStatus(current['status']) in SCHEDULED_STATUSES and (
            Decimal(current['amount']) != loan.amount
            or Decimal(current['interest_rate']) != loan.interest_rate
        ):
            raise InvalidParameters(f"Loan {loan.id} amount and interest rate are fixed once active")

        loan.version = expected_version + 1
        loan.updated_at = datetime.now(timezone.utc)
        self.storage.save(self.loans_table, loan.id, loan.to_dict())
        return loan

    def insert_repayments(self, loan_id: str, repayments: List[LoanRepayment]) -> List[LoanRepayment]:
        """Insert a loan's whole schedule; a loan can only be scheduled once"""
        if self.storage.find(self.repayments_table, {'loan_id': loan_id}):
            raise ConcurrencyConflict(f"Loan {loan_id} already has a repayment schedule")
        for repayment in repayments:
            if repayment.loan_id != loan_id:
                raise ValueError(f"Repayment {repayment.id} belongs to loan {repayment.loan_id}, not {loan_id}")
            self.storage.save(self.repayments_table, repayment.id, repayment.to_dict())
        return repayments

    def get_repayments(self, loan_id: str) -> List[LoanRepayment]:
        """All installments of a loan, earliest due first (ties by id)"""
        repayments = [
            LoanRepayment.from_dict(data)
            for data in self.storage.find(self.repayments_table, {'loan_id': loan_id})
        ]
        repayments.sort(key=_installment_order)
        return repayments

    def get_unpaid_repayments(self, loan_id: str) -> List[LoanRepayment]:
        return [r for r in self.get_repayments(loan_id) if not r.is_paid]

    def update_repayment(self, repayment: LoanRepayment, require_unpaid: bool = True) -> LoanRepayment:
        """Persist an installment, optionally only if it is still unpaid in storage"""
        current = self.storage.load(self.repayments_table, repayment.id)
        if current is None:
            raise ConcurrencyConflict(f"Repayment {repayment.id} no longer exists")
        if require_unpaid and current.get('is_paid'):
            raise ConcurrencyConflict(f"Repayment {repayment.id} was already settled")

        repayment.updated_at = datetime.now(timezone.utc)
        self.storage.save(self.repayments_table, repayment.id, repayment.to_dict())
        return repayment
