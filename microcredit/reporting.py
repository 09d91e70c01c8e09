"""
Repayment Reporting Module

Read-only summaries of a loan's installment book: progress, punctuality and
arrears.
"""

from decimal import Decimal, ROUND_HALF_UP
from datetime import date
from dataclasses import dataclass
from typing import Dict, Any, List, Optional

from .models import LoanRepayment
from .money import ZERO


@dataclass
class RepaymentSummary:
    """Aggregate view over a loan's installments as of a given date"""
    as_of: date
    total_installments: int
    paid_installments: int
    total_due: Decimal
    total_paid: Decimal
    outstanding: Decimal
    progress_percent: Decimal
    paid_on_time: int
    paid_late: int
    overdue_installments: int
    overdue_amount: Decimal
    days_past_due: int                   # Age of the oldest overdue installment
    next_due: Optional[LoanRepayment] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "as_of": self.as_of.isoformat(),
            "total_installments": self.total_installments,
            "paid_installments": self.paid_installments,
            "total_due": str(self.total_due),
            "total_paid": str(self.total_paid),
            "outstanding": str(self.outstanding),
            "progress_percent": str(self.progress_percent),
            "paid_on_time": self.paid_on_time,
            "paid_late": self.paid_late,
            "overdue_installments": self.overdue_installments,
            "overdue_amount": str(self.overdue_amount),
            "days_past_due": self.days_past_due,
            "next_due_date": self.next_due.due_date.isoformat() if self.next_due else None,
            "next_due_amount": str(self.next_due.amount) if self.next_due else None,
        }


def repayment_summary(repayments: List[LoanRepayment], as_of: date) -> RepaymentSummary:
    """
    Summarize installments

    Args:
        repayments: All installments of one loan
        as_of: Date used to decide what is overdue

    Returns:
        RepaymentSummary
    """
    ordered = sorted(repayments, key=lambda r: (r.due_date, r.id))
    paid = [r for r in ordered if r.is_paid]
    unpaid = [r for r in ordered if not r.is_paid]
    overdue = [r for r in unpaid if r.is_overdue(as_of)]

    total_due = sum((r.amount for r in ordered), ZERO)
    total_paid = sum((r.amount for r in paid), ZERO)
    if total_due > ZERO:
        progress = (total_paid / total_due * Decimal('100')).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)
    else:
        progress = Decimal('0.00')

    return RepaymentSummary(
        as_of=as_of,
        total_installments=len(ordered),
        paid_installments=len(paid),
        total_due=total_due,
        total_paid=total_paid,
        outstanding=total_due - total_paid,
        progress_percent=progress,
        paid_on_time=sum(1 for r in paid if r.paid_date and r.paid_date <= r.due_date),
        paid_late=sum(1 for r in paid if r.paid_date and r.paid_date > r.due_date),
        overdue_installments=len(overdue),
        overdue_amount=sum((r.amount for r in overdue), ZERO),
        days_past_due=(as_of - overdue[0].due_date).days if overdue else 0,
        next_due=unpaid[0] if unpaid else None
    )
