"""
Microcredit Loan Core

Loan lifecycle state machine, repayment schedule generation, payment
settlement with overpayment cascading, and amortization quoting.
All monetary values use Decimal.
"""

__version__ = "1.0.0"
