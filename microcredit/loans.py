"""
Loan Module

Owns the loan lifecycle: approval, rejection, activation with repayment
schedule generation, completion and default. Every transition is validated
against the allowed edges, serialized per loan and applied atomically.
"""

from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from .storage import StorageInterface
from .audit import AuditTrail, AuditEventType
from .models import Loan, LoanRepayment, LoanStatus, ALLOWED_TRANSITIONS
from .repository import LoanRepository
from .schedule import RepaymentScheduleGenerator, add_months
from .locking import LoanLockRegistry
from .exceptions import (
    LoanNotFound, InvalidTransition, InvalidParameters, ScheduleGenerationError
)
from .logging_config import get_logger, log_action


@dataclass
class ActivationResult:
    """Loan after activation together with its new schedule"""
    loan: Loan
    repayments: List[LoanRepayment]


class LoanStateMachine:
    """
    Manages loan status transitions and their side effects
    """

    def __init__(
        self,
        storage: StorageInterface,
        repository: LoanRepository,
        schedule_generator: RepaymentScheduleGenerator,
        audit_trail: AuditTrail,
        locks: Optional[LoanLockRegistry] = None
    ):
        self.storage = storage
        self.repository = repository
        self.schedule_generator = schedule_generator
        self.audit_trail = audit_trail
        self.locks = locks or LoanLockRegistry()
        self.logger = get_logger("microcredit.loans")

    def approve(self, loan_id: str, approver_id: str) -> Loan:
        """
        Approve a pending loan

        Args:
            loan_id: Loan to approve
            approver_id: Authenticated actor approving the loan

        Returns:
            Updated Loan in APPROVED status
        """
        if not approver_id or not str(approver_id).strip():
            raise InvalidParameters("approver_id is required to approve a loan")

        def apply(loan: Loan, now: datetime) -> Dict[str, Any]:
            loan.approved_by = approver_id
            loan.approved_at = now
            return {"approved_by": approver_id}

        return self._transition(
            loan_id, LoanStatus.APPROVED, AuditEventType.LOAN_APPROVED, apply, user_id=approver_id
        )

    def reject(self, loan_id: str, actor_id: Optional[str] = None) -> Loan:
        """Reject a pending loan (terminal)"""
        return self._transition(
            loan_id, LoanStatus.REJECTED, AuditEventType.LOAN_REJECTED, user_id=actor_id
        )

    def activate(self, loan_id: str, actor_id: Optional[str] = None) -> ActivationResult:
        """
        Disburse an approved loan and materialize its repayment schedule

        The status change and the installment insert commit together; if the
        schedule cannot be generated neither is persisted.

        Args:
            loan_id: Loan to activate
            actor_id: Actor releasing the funds, for the audit trail

        Returns:
            ActivationResult with the ACTIVE loan and its installments
        """
        with self.locks.hold(loan_id), self.storage.atomic():
            loan = self._load(loan_id)
            self._check_transition(loan, LoanStatus.ACTIVE)

            now = datetime.now(timezone.utc)
            start_date = now.date()
            expected_version = loan.version

            loan.status = LoanStatus.ACTIVE
            loan.disbursed_at = now
            loan.start_date = start_date
            loan.end_date = add_months(start_date, loan.term)
            self.repository.update_loan(loan, expected_version)

            try:
                repayments = self.schedule_generator.for_loan(loan, start_date)
            except InvalidParameters as e:
                raise ScheduleGenerationError(
                    f"Cannot generate repayment schedule for loan {loan_id}: {e}"
                ) from e

            self.repository.insert_repayments(loan.id, repayments)

            self.audit_trail.log_event(
                event_type=AuditEventType.LOAN_ACTIVATED,
                entity_type="loan",
                entity_id=loan.id,
                user_id=actor_id,
                metadata={
                    "from_status": LoanStatus.APPROVED.value,
                    "to_status": LoanStatus.ACTIVE.value,
                    "disbursed_at": now,
                    "start_date": loan.start_date,
                    "end_date": loan.end_date
                }
            )
            self.audit_trail.log_event(
                event_type=AuditEventType.SCHEDULE_GENERATED,
                entity_type="loan",
                entity_id=loan.id,
                user_id=actor_id,
                metadata={
                    "installments": len(repayments),
                    "principal": loan.amount,
                    "interest_rate": loan.interest_rate,
                    "total_repayable": sum(r.amount for r in repayments),
                    "first_due_date": repayments[0].due_date,
                    "last_due_date": repayments[-1].due_date
                }
            )

        log_action(
            self.logger, "info", "Loan activated",
            user_id=actor_id, action="activate_loan", resource=f"loan:{loan.id}",
            extra={"installments": len(repayments), "start_date": loan.start_date.isoformat()}
        )
        return ActivationResult(loan=loan, repayments=repayments)

    def mark_completed(self, loan_id: str, announce: bool = True) -> Loan:
        """
        Close an active loan whose installments are all paid (terminal)

        Callers running this inside their own transaction pass announce=False
        and call log_transition once that transaction has committed.
        """
        def apply(loan: Loan, now: datetime) -> Dict[str, Any]:
            repayments = self.repository.get_repayments(loan.id)
            unpaid = [r for r in repayments if not r.is_paid]
            if not repayments:
                raise InvalidTransition(
                    loan.id, loan.status, LoanStatus.COMPLETED, reason="no installments scheduled"
                )
            if unpaid:
                raise InvalidTransition(
                    loan.id, loan.status, LoanStatus.COMPLETED,
                    reason=f"{len(unpaid)} installment(s) still unpaid"
                )
            return {"installments_paid": len(repayments)}

        return self._transition(
            loan_id, LoanStatus.COMPLETED, AuditEventType.LOAN_COMPLETED, apply, announce=announce
        )

    def mark_defaulted(self, loan_id: str, actor_id: Optional[str] = None) -> Loan:
        """Operator override moving an active loan into default (terminal)"""
        def apply(loan: Loan, now: datetime) -> Dict[str, Any]:
            unpaid = self.repository.get_unpaid_repayments(loan.id)
            return {
                "unpaid_installments": len(unpaid),
                "unpaid_amount": sum(r.amount for r in unpaid)
            }

        return self._transition(
            loan_id, LoanStatus.DEFAULTED, AuditEventType.LOAN_DEFAULTED, apply, user_id=actor_id
        )

    def _transition(
        self,
        loan_id: str,
        target: LoanStatus,
        event_type: AuditEventType,
        apply: Optional[Callable[[Loan, datetime], Dict[str, Any]]] = None,
        user_id: Optional[str] = None,
        announce: bool = True
    ) -> Loan:
        """Check, mutate, persist and audit a single status change"""
        with self.locks.hold(loan_id), self.storage.atomic():
            loan = self._load(loan_id)
            previous = loan.status
            self._check_transition(loan, target)

            now = datetime.now(timezone.utc)
            expected_version = loan.version
            metadata = apply(loan, now) if apply else {}
            loan.status = target
            self.repository.update_loan(loan, expected_version)

            metadata.update({"from_status": previous.value, "to_status": target.value})
            self.audit_trail.log_event(
                event_type=event_type,
                entity_type="loan",
                entity_id=loan.id,
                user_id=user_id,
                metadata=metadata
            )

        if announce:
            self.log_transition(loan.id, previous, target, user_id)
        return loan

    def log_transition(
        self, loan_id: str, previous: LoanStatus, target: LoanStatus, user_id: Optional[str] = None
    ) -> None:
        log_action(
            self.logger, "info", f"Loan {previous.value} -> {target.value}",
            user_id=user_id, action=f"loan_{target.value.lower()}", resource=f"loan:{loan_id}"
        )

    def _load(self, loan_id: str) -> Loan:
        loan = self.repository.get_loan(loan_id)
        if loan is None:
            raise LoanNotFound(loan_id)
        return loan

    @staticmethod
    def _check_transition(loan: Loan, target: LoanStatus) -> None:
        if target not in ALLOWED_TRANSITIONS[loan.status]:
            raise InvalidTransition(loan.id, loan.status, target)
