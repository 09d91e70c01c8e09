"""
Repayment Schedule Module

Generates the flat-rate, simple-interest installment schedule that is
materialized when a loan is activated.
"""

from decimal import Decimal
from datetime import datetime, timezone, date
from dataclasses import dataclass
from typing import List, Optional, Tuple
import calendar
import uuid

from .config import get_config
from .exceptions import InvalidParameters
from .models import Loan, LoanRepayment
from .money import AmountLike, to_decimal, quantize_amount

MONTHS_PER_YEAR = Decimal('12')
HUNDRED = Decimal('100')


@dataclass(frozen=True)
class ScheduledInstallment:
    """Single due date and amount in a generated schedule"""
    number: int
    due_date: date
    amount: Decimal


def add_months(start_date: date, months: int) -> date:
    """Add months to a date, handling month-end edge cases"""
    month = start_date.month - 1 + months
    year = start_date.year + month // 12
    month = month % 12 + 1
    day = min(start_date.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def validate_loan_parameters(
    principal: AmountLike,
    annual_rate_percent: AmountLike,
    term_months: int,
    max_term_months: Optional[int] = None
) -> Tuple[Decimal, Decimal, int]:
    """
    Normalize and validate principal, annual rate and term

    Returns:
        (principal, annual_rate_percent, term_months) as Decimal, Decimal, int

    Raises:
        InvalidParameters: non-positive principal or term, negative rate,
            non-integral term, or a term beyond the configured ceiling
    """
    try:
        principal = to_decimal(principal)
        annual_rate_percent = to_decimal(annual_rate_percent)
    except ValueError as e:
        raise InvalidParameters(str(e)) from e

    if isinstance(term_months, bool) or not isinstance(term_months, int):
        raise InvalidParameters(f"Term must be a whole number of months, got {term_months!r}")
    if term_months <= 0:
        raise InvalidParameters(f"Term must be positive, got {term_months}")
    if max_term_months is None:
        max_term_months = get_config().max_term_months
    if term_months > max_term_months:
        raise InvalidParameters(f"Term of {term_months} months exceeds the maximum of {max_term_months}")
    if principal <= 0:
        raise InvalidParameters(f"Principal must be positive, got {principal}")
    if annual_rate_percent < 0:
        raise InvalidParameters(f"Interest rate cannot be negative, got {annual_rate_percent}")

    return principal, annual_rate_percent, term_months


def flat_interest(principal: Decimal, annual_rate_percent: Decimal, term_months: int) -> Decimal:
    """Total simple interest on the original principal over the whole term"""
    return principal * (annual_rate_percent / HUNDRED) * (Decimal(term_months) / MONTHS_PER_YEAR)


class RepaymentScheduleGenerator:
    """
    Flat-rate installment schedule generator

    Installments are equal after rounding to the configured precision; the
    final installment absorbs the rounding drift so the schedule sums to
    exactly principal plus total interest.
    """

    def __init__(self, precision: Optional[int] = None, max_term_months: Optional[int] = None):
        config = get_config()
        self.precision = config.amount_precision if precision is None else precision
        self.max_term_months = config.max_term_months if max_term_months is None else max_term_months

    def generate(
        self,
        principal: AmountLike,
        annual_rate_percent: AmountLike,
        term_months: int,
        start_date: date
    ) -> List[ScheduledInstallment]:
        """
        Compute the installment schedule

        Args:
            principal: Loan amount
            annual_rate_percent: Annual rate, e.g. 12 for 12%
            term_months: Number of monthly installments
            start_date: Loan start; the first installment falls one month later

        Returns:
            Exactly term_months installments, earliest first
        """
        principal, annual_rate_percent, term_months = validate_loan_parameters(
            principal, annual_rate_percent, term_months, self.max_term_months
        )

        total_amount = quantize_amount(
            principal + flat_interest(principal, annual_rate_percent, term_months),
            self.precision
        )
        monthly_payment = quantize_amount(total_amount / Decimal(term_months), self.precision)
        final_payment = total_amount - monthly_payment * (term_months - 1)
        if monthly_payment <= 0 or final_payment <= 0:
            raise InvalidParameters(
                f"Amount {total_amount} is too small to spread over {term_months} installments"
            )

        schedule = []
        for number in range(1, term_months + 1):
            schedule.append(ScheduledInstallment(
                number=number,
                due_date=add_months(start_date, number),
                amount=final_payment if number == term_months else monthly_payment
            ))
        return schedule

    def for_loan(self, loan: Loan, start_date: date) -> List[LoanRepayment]:
        """Bind a freshly generated schedule to a loan as unpaid installment records"""
        now = datetime.now(timezone.utc)
        return [
            LoanRepayment(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                loan_id=loan.id,
                installment_number=installment.number,
                amount=installment.amount,
                due_date=installment.due_date
            )
            for installment in self.generate(loan.amount, loan.interest_rate, loan.term, start_date)
        ]
