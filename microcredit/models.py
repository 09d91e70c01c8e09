"""
Loan Domain Records

Loan, installment and product records shared by the state machine, schedule
generator, payment processor and reporting. All amounts are Decimal and
persisted as strings.
"""

from decimal import Decimal
from datetime import datetime, date
from dataclasses import dataclass
from typing import Any, Dict, Optional
from enum import Enum

from .storage import StorageRecord


class LoanStatus(Enum):
    """Loan lifecycle states"""
    PENDING = "PENDING"        # Originated, awaiting decision
    APPROVED = "APPROVED"      # Approved, funds not yet released
    ACTIVE = "ACTIVE"          # Disbursed with a live repayment schedule
    COMPLETED = "COMPLETED"    # Every installment paid
    DEFAULTED = "DEFAULTED"    # Written into default by an operator
    REJECTED = "REJECTED"      # Declined at approval

    @classmethod
    def _missing_(cls, value):
        # Older records carry DISBURSED for approved-but-unscheduled loans
        if value == "DISBURSED":
            return cls.APPROVED
        return None

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({LoanStatus.COMPLETED, LoanStatus.DEFAULTED, LoanStatus.REJECTED})

# The only legal edges; everything else is an InvalidTransition
ALLOWED_TRANSITIONS = {
    LoanStatus.PENDING: frozenset({LoanStatus.APPROVED, LoanStatus.REJECTED}),
    LoanStatus.APPROVED: frozenset({LoanStatus.ACTIVE}),
    LoanStatus.ACTIVE: frozenset({LoanStatus.COMPLETED, LoanStatus.DEFAULTED}),
    LoanStatus.COMPLETED: frozenset(),
    LoanStatus.DEFAULTED: frozenset(),
    LoanStatus.REJECTED: frozenset(),
}


class InterestMethod(Enum):
    """Interest models supported for quoting"""
    FLAT = "FLAT"                            # Interest on original principal
    REDUCING_BALANCE = "REDUCING_BALANCE"    # Interest on running balance


class PaymentMethod(Enum):
    """Common tender types; free text is accepted as well"""
    CASH = "Cash"
    MOBILE_MONEY = "Mobile Money"
    BANK_TRANSFER = "Bank Transfer"
    CHEQUE = "Cheque"

    @classmethod
    def normalize(cls, value: str) -> str:
        """Canonical label for known methods, stripped text otherwise"""
        cleaned = (value or "").strip()
        for method in cls:
            if cleaned.lower() == method.value.lower() or cleaned.upper() == method.name:
                return method.value
        return cleaned


def _date(value: Optional[str]) -> Optional[date]:
    return date.fromisoformat(value) if value else None


def _datetime(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class LoanProduct:
    """Product constraint set supplied by the product catalogue"""
    id: str
    name: str
    min_amount: Decimal
    max_amount: Decimal
    min_term: int
    max_term: int
    interest_rate: Decimal
    interest_type: InterestMethod = InterestMethod.FLAT
    is_active: bool = True


@dataclass
class Loan(StorageRecord):
    """Loan record with its lifecycle status"""
    client_id: str
    branch_id: str
    amount: Decimal                  # Principal
    interest_rate: Decimal           # Annual percentage, e.g. 12 for 12%
    term: int                        # Whole months
    purpose: str = ""
    product_id: Optional[str] = None
    status: LoanStatus = LoanStatus.PENDING
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    disbursed_at: Optional[datetime] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    version: int = 0

    @property
    def is_active(self) -> bool:
        return self.status == LoanStatus.ACTIVE

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result['status'] = self.status.value
        for name in ('approved_at', 'disbursed_at', 'start_date', 'end_date'):
            result[name] = _iso(getattr(self, name))
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Loan':
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            client_id=data['client_id'],
            branch_id=data['branch_id'],
            amount=Decimal(data['amount']),
            interest_rate=Decimal(data['interest_rate']),
            term=int(data['term']),
            purpose=data.get('purpose') or "",
            product_id=data.get('product_id'),
            status=LoanStatus(data['status']),
            approved_by=data.get('approved_by'),
            approved_at=_datetime(data.get('approved_at')),
            disbursed_at=_datetime(data.get('disbursed_at')),
            start_date=_date(data.get('start_date')),
            end_date=_date(data.get('end_date')),
            version=data.get('version', 0)
        )


@dataclass
class LoanRepayment(StorageRecord):
    """One scheduled installment of a loan"""
    loan_id: str
    installment_number: int
    amount: Decimal
    due_date: date
    is_paid: bool = False
    paid_date: Optional[date] = None
    payment_method: Optional[str] = None
    transaction_id: Optional[str] = None

    def is_overdue(self, as_of: date) -> bool:
        return not self.is_paid and as_of > self.due_date

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result['due_date'] = self.due_date.isoformat()
        result['paid_date'] = _iso(self.paid_date)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LoanRepayment':
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            loan_id=data['loan_id'],
            installment_number=data['installment_number'],
            amount=Decimal(data['amount']),
            due_date=date.fromisoformat(data['due_date']),
            is_paid=data.get('is_paid', False),
            paid_date=_date(data.get('paid_date')),
            payment_method=data.get('payment_method'),
            transaction_id=data.get('transaction_id')
        )
