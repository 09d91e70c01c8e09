"""
Test suite for the amortization calculator

Quotes under flat and reducing-balance interest. Every schedule must close
at a zero balance and repay exactly the principal.
"""

import pytest
from decimal import Decimal

from microcredit.amortization import AmortizationCalculator, AmortizationRow, summarize
from microcredit.models import InterestMethod
from microcredit.exceptions import InvalidParameters


@pytest.fixture
def calculator():
    return AmortizationCalculator(precision=2, max_term_months=600)


class TestReducingBalance:
    """Annuity schedules with interest on the running balance"""

    def test_standard_annuity(self, calculator):
        rows = calculator.compute(Decimal('10000'), Decimal('12'), 12)

        assert len(rows) == 12
        assert all(isinstance(row, AmortizationRow) for row in rows)
        first = rows[0]
        assert first.period == 1
        assert first.payment == Decimal('888.49')
        assert first.interest_portion == Decimal('100.00')
        assert first.principal_portion == Decimal('788.49')
        assert first.closing_balance == Decimal('9211.51')

    def test_closes_at_zero_and_repays_principal(self, calculator):
        rows = calculator.compute(10000, 12, 12, InterestMethod.REDUCING_BALANCE)

        assert rows[-1].closing_balance == Decimal('0.00')
        totals = summarize(rows)
        assert totals["total_principal"] == Decimal('10000.00')
        assert totals["total_payment"] == totals["total_principal"] + totals["total_interest"]

    def test_interest_declines_over_time(self, calculator):
        rows = calculator.compute(50000, 24, 24)
        interest = [row.interest_portion for row in rows]
        assert interest == sorted(interest, reverse=True)

    def test_balances_never_negative(self, calculator):
        rows = calculator.compute(Decimal('999.99'), Decimal('36'), 7)
        assert all(row.closing_balance >= 0 for row in rows)
        assert rows[-1].closing_balance == Decimal('0.00')

    def test_zero_rate(self, calculator):
        rows = calculator.compute(1200, 0, 12)

        assert all(row.payment == Decimal('100.00') for row in rows)
        assert all(row.interest_portion == Decimal('0.00') for row in rows)
        assert rows[-1].closing_balance == Decimal('0.00')

    def test_single_period(self, calculator):
        rows = calculator.compute(1000, 12, 1)

        assert len(rows) == 1
        assert rows[0].principal_portion == Decimal('1000.00')
        assert rows[0].interest_portion == Decimal('10.00')
        assert rows[0].closing_balance == Decimal('0.00')


class TestFlat:
    """Constant principal and interest per period"""

    def test_even_flat_schedule(self, calculator):
        rows = calculator.compute(12000, 12, 12, InterestMethod.FLAT)

        assert all(row.principal_portion == Decimal('1000.00') for row in rows)
        assert all(row.interest_portion == Decimal('120.00') for row in rows)
        assert all(row.payment == Decimal('1120.00') for row in rows)
        assert summarize(rows)["total_interest"] == Decimal('1440.00')

    def test_final_row_absorbs_rounding(self, calculator):
        rows = calculator.compute(1000, 10, 3, "FLAT")

        assert [row.principal_portion for row in rows] == [
            Decimal('333.33'), Decimal('333.33'), Decimal('333.34')
        ]
        assert [row.interest_portion for row in rows] == [
            Decimal('8.33'), Decimal('8.33'), Decimal('8.34')
        ]
        totals = summarize(rows)
        assert totals["total_principal"] == Decimal('1000.00')
        assert totals["total_interest"] == Decimal('25.00')
        assert rows[-1].closing_balance == Decimal('0.00')

    def test_method_name_is_case_insensitive(self, calculator):
        assert calculator.compute(1000, 10, 3, " flat ") == calculator.compute(1000, 10, 3, InterestMethod.FLAT)


class TestInvalidInput:
    """Malformed quotes raise InvalidParameters"""

    def test_unknown_method(self, calculator):
        with pytest.raises(InvalidParameters, match="Unsupported interest method"):
            calculator.compute(1000, 10, 12, "BALLOON")

    @pytest.mark.parametrize("principal,rate,term", [
        (0, 10, 12),
        (-500, 10, 12),
        (1000, -5, 12),
        (1000, 10, 0),
        (1000, 10, 601),
        (1000, 10, 2.5),
    ])
    def test_invalid_parameters(self, calculator, principal, rate, term):
        with pytest.raises(InvalidParameters):
            calculator.compute(principal, rate, term)
