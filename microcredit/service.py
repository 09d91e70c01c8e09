"""
Loan Service Module

Single entry point for the UI layer: wires storage, audit trail, repository,
state machine, payment processor and calculator together and exposes the
public loan operations.
"""

from decimal import Decimal
from datetime import datetime, timezone, date
from typing import List, Optional, Union
import uuid

from .config import MicrocreditConfig, get_config
from .storage import StorageInterface, create_storage
from .audit import AuditTrail, AuditEventType
from .models import Loan, LoanRepayment, LoanProduct, LoanStatus, InterestMethod
from .repository import LoanRepository
from .schedule import RepaymentScheduleGenerator, validate_loan_parameters
from .amortization import AmortizationCalculator, AmortizationRow
from .loans import LoanStateMachine, ActivationResult
from .payments import PaymentProcessor, PaymentResult
from .reporting import RepaymentSummary, repayment_summary
from .locking import LoanLockRegistry
from .money import AmountLike
from .exceptions import LoanNotFound, InvalidParameters
from .logging_config import get_logger, log_action


class LoanService:
    """Loan core with all components initialized"""

    def __init__(
        self,
        storage: Optional[StorageInterface] = None,
        config: Optional[MicrocreditConfig] = None
    ):
        self.config = config or get_config()
        if storage is None:
            storage = create_storage(self.config.use_sqlite, self.config.database_path)
        self.storage = storage

        self.audit_trail = AuditTrail(self.storage, enabled=self.config.enable_audit_logging)
        self.repository = LoanRepository(self.storage)
        self.locks = LoanLockRegistry()
        self.schedule_generator = RepaymentScheduleGenerator(
            precision=self.config.amount_precision,
            max_term_months=self.config.max_term_months
        )
        self.calculator = AmortizationCalculator(
            precision=self.config.amount_precision,
            max_term_months=self.config.max_term_months
        )
        self.state_machine = LoanStateMachine(
            self.storage, self.repository, self.schedule_generator, self.audit_trail, self.locks
        )
        self.payment_processor = PaymentProcessor(
            self.storage, self.repository, self.state_machine, self.audit_trail, self.locks
        )
        self.logger = get_logger("microcredit.service")

    def create_loan(
        self,
        client_id: str,
        branch_id: str,
        amount: AmountLike,
        term: int,
        interest_rate: Optional[AmountLike] = None,
        purpose: str = "",
        product: Optional[LoanProduct] = None,
        created_by: Optional[str] = None
    ) -> Loan:
        """
        Originate a new loan in PENDING status

        Args:
            client_id: Borrower
            branch_id: Originating branch
            amount: Principal
            term: Term in whole months
            interest_rate: Annual percentage; defaults to the product's rate
            purpose: Free-text loan purpose
            product: Optional product whose bounds the loan must respect
            created_by: Actor originating the loan

        Returns:
            Created Loan
        """
        if not client_id or not branch_id:
            raise InvalidParameters("client_id and branch_id are required")

        if interest_rate is None:
            if product is None:
                raise InvalidParameters("interest_rate is required when no product is given")
            interest_rate = product.interest_rate

        amount, interest_rate, term = validate_loan_parameters(
            amount, interest_rate, term, self.config.max_term_months
        )
        if product is not None:
            self._check_product_bounds(product, amount, term)

        now = datetime.now(timezone.utc)
        loan = Loan(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            client_id=client_id,
            branch_id=branch_id,
            amount=amount,
            interest_rate=interest_rate,
            term=term,
            purpose=purpose,
            product_id=product.id if product else None,
            status=LoanStatus.PENDING
        )

        with self.locks.hold(loan.id), self.storage.atomic():
            self.repository.create_loan(loan)
            self.audit_trail.log_event(
                event_type=AuditEventType.LOAN_CREATED,
                entity_type="loan",
                entity_id=loan.id,
                user_id=created_by,
                metadata={
                    "client_id": client_id,
                    "branch_id": branch_id,
                    "product_id": loan.product_id,
                    "amount": amount,
                    "interest_rate": interest_rate,
                    "term": term
                }
            )

        log_action(
            self.logger, "info", "Loan created",
            user_id=created_by, action="create_loan", resource=f"loan:{loan.id}",
            extra={"amount": str(amount), "term": term}
        )
        return loan

    @staticmethod
    def _check_product_bounds(product: LoanProduct, amount: Decimal, term: int) -> None:
        if not product.is_active:
            raise InvalidParameters(f"Loan product {product.name} is not active")
        if not product.min_amount <= amount <= product.max_amount:
            raise InvalidParameters(
                f"Amount {amount} outside {product.name} limits "
                f"{product.min_amount}-{product.max_amount}"
            )
        if not product.min_term <= term <= product.max_term:
            raise InvalidParameters(
                f"Term {term} outside {product.name} limits "
                f"{product.min_term}-{product.max_term} months"
            )

    def get_loan(self, loan_id: str) -> Loan:
        loan = self.repository.get_loan(loan_id)
        if loan is None:
            raise LoanNotFound(loan_id)
        return loan

    def get_repayments(self, loan_id: str) -> List[LoanRepayment]:
        self.get_loan(loan_id)
        return self.repository.get_repayments(loan_id)

    def approve_loan(self, loan_id: str, approver_id: str) -> Loan:
        return self.state_machine.approve(loan_id, approver_id)

    def reject_loan(self, loan_id: str, actor_id: Optional[str] = None) -> Loan:
        return self.state_machine.reject(loan_id, actor_id)

    def activate_loan(self, loan_id: str, actor_id: Optional[str] = None) -> ActivationResult:
        return self.state_machine.activate(loan_id, actor_id)

    def mark_defaulted(self, loan_id: str, actor_id: Optional[str] = None) -> Loan:
        return self.state_machine.mark_defaulted(loan_id, actor_id)

    def record_payment(
        self,
        loan_id: str,
        amount: AmountLike,
        method: str,
        recorded_by: Optional[str] = None
    ) -> PaymentResult:
        return self.payment_processor.record_payment(loan_id, amount, method, recorded_by)

    def compute_amortization(
        self,
        principal: AmountLike,
        rate: AmountLike,
        term: int,
        method: Union[InterestMethod, str] = InterestMethod.REDUCING_BALANCE
    ) -> List[AmortizationRow]:
        return self.calculator.compute(principal, rate, term, method)

    def repayment_summary(self, loan_id: str, as_of: Optional[date] = None) -> RepaymentSummary:
        if as_of is None:
            as_of = datetime.now(timezone.utc).date()
        return repayment_summary(self.get_repayments(loan_id), as_of)
