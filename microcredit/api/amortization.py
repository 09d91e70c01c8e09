"""
Amortization quote endpoint
"""

from fastapi import APIRouter, Depends

from .dependencies import get_loan_service
from .schemas import AmortizationRequest, rows_to_list
from ..amortization import summarize
from ..service import LoanService


router = APIRouter()


@router.post("")
def compute_amortization(
    request: AmortizationRequest,
    service: LoanService = Depends(get_loan_service)
):
    """Quote a full amortization table without persisting anything"""
    rows = service.compute_amortization(
        request.principal, request.annual_rate, request.term_months, request.method
    )
    totals = summarize(rows)
    return {
        "method": request.method.strip().upper(),
        "rows": rows_to_list(rows),
        "total_payment": str(totals["total_payment"]),
        "total_principal": str(totals["total_principal"]),
        "total_interest": str(totals["total_interest"]),
    }
