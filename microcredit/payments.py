"""
Payment Processing Module

Applies tendered payments to a loan's installments in due-date order,
cascades overpayments onto later installments, and closes the loan when
nothing is left unpaid.
"""

from decimal import Decimal
from datetime import datetime, timezone, date
from dataclasses import dataclass, field
from typing import Callable, List, Optional
import uuid

from .storage import StorageInterface
from .audit import AuditTrail, AuditEventType
from .config import get_config
from .models import Loan, LoanRepayment, LoanStatus, PaymentMethod
from .repository import LoanRepository
from .loans import LoanStateMachine
from .locking import LoanLockRegistry
from .money import AmountLike, ZERO, to_decimal
from .exceptions import (
    LoanNotFound, InvalidTransition, InvalidParameters,
    InsufficientAmount, NoOutstandingInstallments
)
from .logging_config import get_logger, log_action


def generate_transaction_reference() -> str:
    """Unique reference stamped on each settled installment"""
    prefix = get_config().transaction_reference_prefix
    return f"{prefix}-{uuid.uuid4().hex[:16].upper()}"


@dataclass
class PaymentResult:
    """Outcome of a recorded payment"""
    loan_id: str
    tendered_amount: Decimal
    payment_method: str
    settled: List[LoanRepayment] = field(default_factory=list)
    applied_amount: Decimal = ZERO
    uncredited_remainder: Decimal = ZERO    # Reported only, never stored as credit
    remaining_installments: int = 0
    loan_status: LoanStatus = LoanStatus.ACTIVE

    @property
    def loan_completed(self) -> bool:
        return self.loan_status == LoanStatus.COMPLETED

    @property
    def transaction_ids(self) -> List[str]:
        return [r.transaction_id for r in self.settled]


class PaymentProcessor:
    """
    Settles loan installments from incoming payments
    """

    def __init__(
        self,
        storage: StorageInterface,
        repository: LoanRepository,
        state_machine: LoanStateMachine,
        audit_trail: AuditTrail,
        locks: Optional[LoanLockRegistry] = None,
        reference_factory: Callable[[], str] = generate_transaction_reference
    ):
        self.storage = storage
        self.repository = repository
        self.state_machine = state_machine
        self.audit_trail = audit_trail
        self.locks = locks or state_machine.locks
        self.reference_factory = reference_factory
        self.logger = get_logger("microcredit.payments")

    def record_payment(
        self,
        loan_id: str,
        tendered_amount: AmountLike,
        payment_method: str,
        recorded_by: Optional[str] = None
    ) -> PaymentResult:
        """
        Apply a payment to the earliest unpaid installments of a loan

        The earliest unpaid installment (by due date, then id) must be covered
        in full. Any excess settles following installments for as long as it
        covers each one completely; what is left after that is reported as
        uncredited.

        Args:
            loan_id: Loan being repaid
            tendered_amount: Amount handed over
            payment_method: Tender type, e.g. "Cash"
            recorded_by: Actor recording the payment, for the audit trail

        Returns:
            PaymentResult describing what was settled
        """
        try:
            amount = to_decimal(tendered_amount)
        except ValueError as e:
            raise InvalidParameters(str(e)) from e
        if amount <= ZERO:
            raise InvalidParameters(f"Payment amount must be positive, got {amount}")

        method = PaymentMethod.normalize(payment_method)
        if not method:
            raise InvalidParameters("payment_method is required")

        with self.locks.hold(loan_id), self.storage.atomic():
            loan = self._load_active(loan_id)

            unpaid = self.repository.get_unpaid_repayments(loan_id)
            if not unpaid:
                raise NoOutstandingInstallments(loan_id)

            target = unpaid[0]
            if amount < target.amount:
                raise InsufficientAmount(amount, target.amount, target.id)

            today = datetime.now(timezone.utc).date()
            result = PaymentResult(loan_id=loan_id, tendered_amount=amount, payment_method=method)
            remaining = amount
            for installment in unpaid:
                if remaining < installment.amount:
                    break
                self._settle(installment, method, today)
                remaining -= installment.amount
                result.settled.append(installment)

            result.applied_amount = amount - remaining
            result.uncredited_remainder = remaining

            result.remaining_installments = len(self.repository.get_unpaid_repayments(loan_id))
            if result.remaining_installments == 0:
                loan = self.state_machine.mark_completed(loan_id, announce=False)
            result.loan_status = loan.status

            self.audit_trail.log_event(
                event_type=AuditEventType.PAYMENT_RECORDED,
                entity_type="loan",
                entity_id=loan_id,
                user_id=recorded_by,
                metadata={
                    "tendered_amount": amount,
                    "applied_amount": result.applied_amount,
                    "uncredited_remainder": result.uncredited_remainder,
                    "payment_method": method,
                    "settled_installments": [r.id for r in result.settled],
                    "transaction_ids": result.transaction_ids,
                    "remaining_installments": result.remaining_installments
                }
            )

        if result.loan_completed:
            self.state_machine.log_transition(loan_id, LoanStatus.ACTIVE, LoanStatus.COMPLETED, recorded_by)
        log_action(
            self.logger, "info", "Loan payment recorded",
            user_id=recorded_by, action="record_payment", resource=f"loan:{loan_id}",
            extra={
                "tendered_amount": str(amount),
                "settled": len(result.settled),
                "uncredited_remainder": str(result.uncredited_remainder),
                "loan_status": result.loan_status.value
            }
        )
        if result.uncredited_remainder > ZERO:
            log_action(
                self.logger, "warning",
                "Overpayment remainder does not cover the next installment and was not credited",
                user_id=recorded_by, action="record_payment", resource=f"loan:{loan_id}",
                extra={"uncredited_remainder": str(result.uncredited_remainder)}
            )
        return result

    def _load_active(self, loan_id: str) -> Loan:
        loan = self.repository.get_loan(loan_id)
        if loan is None:
            raise LoanNotFound(loan_id)
        if not loan.is_active:
            raise InvalidTransition(
                loan_id, loan.status, "record_payment",
                reason=f"payments require an {LoanStatus.ACTIVE.value} loan"
            )
        return loan

    def _settle(self, installment: LoanRepayment, method: str, paid_on: date) -> None:
        installment.is_paid = True
        installment.paid_date = paid_on
        installment.payment_method = method
        installment.transaction_id = self.reference_factory()
        self.repository.update_repayment(installment, require_unpaid=True)
