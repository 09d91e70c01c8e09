"""
Amortization Calculator Module

Quote-only amortization schedules under flat-rate and reducing-balance
interest. Nothing here reads or writes loan records.
"""

from decimal import Decimal
from dataclasses import dataclass
from typing import Dict, List, Optional, Union

from .config import get_config
from .exceptions import InvalidParameters
from .models import InterestMethod
from .money import AmountLike, ZERO, quantize_amount
from .schedule import validate_loan_parameters, flat_interest, MONTHS_PER_YEAR, HUNDRED


@dataclass(frozen=True)
class AmortizationRow:
    """Single period of an amortization schedule"""
    period: int
    payment: Decimal
    principal_portion: Decimal
    interest_portion: Decimal
    closing_balance: Decimal


class AmortizationCalculator:
    """Computes amortization schedules for hypothetical loans"""

    def __init__(self, precision: Optional[int] = None, max_term_months: Optional[int] = None):
        config = get_config()
        self.precision = config.amount_precision if precision is None else precision
        self.max_term_months = config.max_term_months if max_term_months is None else max_term_months

    def compute(
        self,
        principal: AmountLike,
        annual_rate_percent: AmountLike,
        term_months: int,
        method: Union[InterestMethod, str] = InterestMethod.REDUCING_BALANCE
    ) -> List[AmortizationRow]:
        """
        Compute a full amortization schedule

        Args:
            principal: Loan amount
            annual_rate_percent: Annual rate, e.g. 12 for 12%
            term_months: Number of monthly periods
            method: InterestMethod or its name ("FLAT", "REDUCING_BALANCE")

        Returns:
            Exactly term_months rows; the last closes the balance at zero
        """
        if isinstance(method, str):
            try:
                method = InterestMethod(method.strip().upper())
            except ValueError:
                raise InvalidParameters(f"Unsupported interest method: {method}")

        principal, annual_rate_percent, term_months = validate_loan_parameters(
            principal, annual_rate_percent, term_months, self.max_term_months
        )

        if method == InterestMethod.FLAT:
            return self._flat_schedule(principal, annual_rate_percent, term_months)
        return self._reducing_balance_schedule(principal, annual_rate_percent, term_months)

    def _round(self, value: Decimal) -> Decimal:
        return quantize_amount(value, self.precision)

    def _flat_schedule(self, principal: Decimal, annual_rate_percent: Decimal, term_months: int) -> List[AmortizationRow]:
        """Constant principal and interest portions; the final row absorbs rounding"""
        total_interest = self._round(flat_interest(principal, annual_rate_percent, term_months))
        principal = self._round(principal)
        principal_portion = self._round(principal / term_months)
        interest_portion = self._round(total_interest / term_months)
        if interest_portion * (term_months - 1) > total_interest:
            raise InvalidParameters(
                f"Interest {total_interest} is too small to spread over {term_months} periods"
            )

        rows = []
        balance = principal
        interest_charged = ZERO
        for period in range(1, term_months + 1):
            if period == term_months:
                period_principal = balance
                period_interest = total_interest - interest_charged
            else:
                period_principal = min(principal_portion, balance)
                period_interest = interest_portion
            balance -= period_principal
            interest_charged += period_interest

            rows.append(AmortizationRow(
                period=period,
                payment=period_principal + period_interest,
                principal_portion=period_principal,
                interest_portion=period_interest,
                closing_balance=balance
            ))
        return rows

    def _reducing_balance_schedule(self, principal: Decimal, annual_rate_percent: Decimal, term_months: int) -> List[AmortizationRow]:
        """Annuity payment with interest on the running balance"""
        monthly_rate = annual_rate_percent / HUNDRED / MONTHS_PER_YEAR
        principal = self._round(principal)

        if monthly_rate == ZERO:
            payment = self._round(principal / term_months)
        else:
            # Standard loan payment formula: P * [r(1+r)^n] / [(1+r)^n - 1]
            factor = (Decimal('1') + monthly_rate) ** term_months
            payment = self._round(principal * monthly_rate * factor / (factor - Decimal('1')))

        rows = []
        balance = principal
        for period in range(1, term_months + 1):
            interest_portion = self._round(balance * monthly_rate)
            principal_portion = payment - interest_portion

            # Never amortize past zero; the final period pays off exactly what is left
            if principal_portion > balance or period == term_months:
                principal_portion = balance
            balance -= principal_portion

            rows.append(AmortizationRow(
                period=period,
                payment=principal_portion + interest_portion,
                principal_portion=principal_portion,
                interest_portion=interest_portion,
                closing_balance=balance
            ))
        return rows


def summarize(rows: List[AmortizationRow]) -> Dict[str, Decimal]:
    """Totals over a schedule"""
    return {
        "total_payment": sum((row.payment for row in rows), ZERO),
        "total_principal": sum((row.principal_portion for row in rows), ZERO),
        "total_interest": sum((row.interest_portion for row in rows), ZERO),
    }
