"""
Loan lifecycle and payment endpoints
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, status

from .dependencies import get_loan_service, get_current_user
from .schemas import (
    CreateLoanRequest, RecordPaymentRequest,
    loan_to_dict, repayment_to_dict, payment_result_to_dict
)
from ..service import LoanService


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
def create_loan(
    request: CreateLoanRequest,
    service: LoanService = Depends(get_loan_service),
    user_id: str = Depends(get_current_user)
):
    """Originate a new loan in PENDING status"""
    loan = service.create_loan(
        client_id=request.client_id,
        branch_id=request.branch_id,
        amount=request.amount,
        term=request.term,
        interest_rate=request.interest_rate,
        purpose=request.purpose,
        created_by=user_id
    )
    return loan_to_dict(loan)


@router.get("/{loan_id}")
def get_loan(loan_id: str, service: LoanService = Depends(get_loan_service)):
    """Get loan details"""
    return loan_to_dict(service.get_loan(loan_id))


@router.get("/{loan_id}/repayments")
def get_repayments(loan_id: str, service: LoanService = Depends(get_loan_service)):
    """Get the installment schedule, ordered by due date"""
    repayments = service.get_repayments(loan_id)
    return {
        "loan_id": loan_id,
        "repayments": [repayment_to_dict(r) for r in repayments]
    }


@router.get("/{loan_id}/summary")
def get_repayment_summary(
    loan_id: str,
    as_of: Optional[date] = None,
    service: LoanService = Depends(get_loan_service)
):
    """Repayment progress and arrears"""
    summary = service.repayment_summary(loan_id, as_of)
    return {"loan_id": loan_id, **summary.to_dict()}


@router.post("/{loan_id}/approve")
def approve_loan(
    loan_id: str,
    service: LoanService = Depends(get_loan_service),
    user_id: str = Depends(get_current_user)
):
    """Approve a pending loan; the caller is recorded as approver"""
    return loan_to_dict(service.approve_loan(loan_id, user_id))


@router.post("/{loan_id}/reject")
def reject_loan(
    loan_id: str,
    service: LoanService = Depends(get_loan_service),
    user_id: str = Depends(get_current_user)
):
    return loan_to_dict(service.reject_loan(loan_id, user_id))


@router.post("/{loan_id}/activate")
def activate_loan(
    loan_id: str,
    service: LoanService = Depends(get_loan_service),
    user_id: str = Depends(get_current_user)
):
    """Disburse an approved loan and generate its repayment schedule"""
    result = service.activate_loan(loan_id, user_id)
    return {
        "loan": loan_to_dict(result.loan),
        "repayments": [repayment_to_dict(r) for r in result.repayments]
    }


@router.post("/{loan_id}/default")
def mark_defaulted(
    loan_id: str,
    service: LoanService = Depends(get_loan_service),
    user_id: str = Depends(get_current_user)
):
    return loan_to_dict(service.mark_defaulted(loan_id, user_id))


@router.post("/{loan_id}/payments")
def record_payment(
    loan_id: str,
    request: RecordPaymentRequest,
    service: LoanService = Depends(get_loan_service),
    user_id: str = Depends(get_current_user)
):
    """Apply a payment to the oldest unpaid installments"""
    result = service.record_payment(loan_id, request.amount, request.payment_method, user_id)
    return payment_result_to_dict(result)
