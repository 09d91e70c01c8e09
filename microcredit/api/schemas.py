"""
Pydantic schemas for API requests and responses
"""

from decimal import Decimal
from typing import Any, Dict, List

from pydantic import BaseModel, Field

from ..config import get_config
from ..models import Loan, LoanRepayment
from ..amortization import AmortizationRow
from ..payments import PaymentResult


class CreateLoanRequest(BaseModel):
    client_id: str
    branch_id: str
    amount: Decimal = Field(..., description="Principal")
    interest_rate: Decimal = Field(..., description="Annual percentage, e.g. 12 for 12%")
    term: int = Field(..., description="Term in whole months")
    purpose: str = ""


class RecordPaymentRequest(BaseModel):
    amount: Decimal = Field(..., description="Amount tendered")
    payment_method: str = Field("Cash", description="Cash, Mobile Money, Bank Transfer, Cheque, ...")


class AmortizationRequest(BaseModel):
    principal: Decimal
    annual_rate: Decimal = Field(..., description="Annual percentage")
    term_months: int
    method: str = Field("REDUCING_BALANCE", description="FLAT or REDUCING_BALANCE")


def _iso(value):
    return value.isoformat() if value else None


def loan_to_dict(loan: Loan) -> Dict[str, Any]:
    return {
        "id": loan.id,
        "client_id": loan.client_id,
        "branch_id": loan.branch_id,
        "product_id": loan.product_id,
        "amount": str(loan.amount),
        "currency": get_config().currency_code,
        "interest_rate": str(loan.interest_rate),
        "term": loan.term,
        "purpose": loan.purpose,
        "status": loan.status.value,
        "approved_by": loan.approved_by,
        "approved_at": _iso(loan.approved_at),
        "disbursed_at": _iso(loan.disbursed_at),
        "start_date": _iso(loan.start_date),
        "end_date": _iso(loan.end_date),
        "created_at": loan.created_at.isoformat(),
        "updated_at": loan.updated_at.isoformat(),
    }


def repayment_to_dict(repayment: LoanRepayment) -> Dict[str, Any]:
    return {
        "id": repayment.id,
        "loan_id": repayment.loan_id,
        "installment_number": repayment.installment_number,
        "amount": str(repayment.amount),
        "due_date": repayment.due_date.isoformat(),
        "is_paid": repayment.is_paid,
        "paid_date": _iso(repayment.paid_date),
        "payment_method": repayment.payment_method,
        "transaction_id": repayment.transaction_id,
    }


def payment_result_to_dict(result: PaymentResult) -> Dict[str, Any]:
    return {
        "loan_id": result.loan_id,
        "tendered_amount": str(result.tendered_amount),
        "applied_amount": str(result.applied_amount),
        "uncredited_remainder": str(result.uncredited_remainder),
        "payment_method": result.payment_method,
        "settled": [repayment_to_dict(r) for r in result.settled],
        "remaining_installments": result.remaining_installments,
        "loan_status": result.loan_status.value,
        "loan_completed": result.loan_completed,
    }


def rows_to_list(rows: List[AmortizationRow]) -> List[Dict[str, Any]]:
    return [
        {
            "period": row.period,
            "payment": str(row.payment),
            "principal": str(row.principal_portion),
            "interest": str(row.interest_portion),
            "balance": str(row.closing_balance),
        }
        for row in rows
    ]
