"""
Test suite for payment settlement

Payments settle the earliest unpaid installment in full, cascade onto later
installments, report any uncovered remainder and close the loan when the
last installment is paid. A failed payment leaves nothing behind.
"""

import pytest
import logging
import threading
from decimal import Decimal
from datetime import datetime, timezone

from microcredit.models import LoanStatus, PaymentMethod
from microcredit.audit import AuditEventType
from microcredit.payments import generate_transaction_reference
from microcredit.exceptions import (
    LoanNotFound, InvalidTransition, InvalidParameters,
    InsufficientAmount, NoOutstandingInstallments
)


class _ListHandler(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)


@pytest.fixture
def loan_log_records():
    """Records emitted on the loan state machine logger"""
    logger = logging.getLogger("microcredit.loans")
    handler = _ListHandler()
    previous_level = logger.level
    logger.setLevel(logging.INFO)
    logger.addHandler(handler)
    yield handler.records
    logger.removeHandler(handler)
    logger.setLevel(previous_level)


class TestTransactionReference:

    def test_reference_format(self):
        reference = generate_transaction_reference()
        prefix, token = reference.split("-")
        assert prefix == "TRANS"
        assert len(token) == 16
        assert token == token.upper()

    def test_references_are_unique(self):
        assert len({generate_transaction_reference() for _ in range(500)}) == 500


class TestPaymentMethod:

    @pytest.mark.parametrize("raw,expected", [
        ("cash", "Cash"),
        ("  Mobile Money ", "Mobile Money"),
        ("BANK_TRANSFER", "Bank Transfer"),
        ("cheque", "Cheque"),
        ("Airtime voucher", "Airtime voucher"),
        ("   ", ""),
    ])
    def test_normalize(self, raw, expected):
        assert PaymentMethod.normalize(raw) == expected


class TestRecordPayment:
    """Single-installment and cascading settlement"""

    def test_exact_payment_settles_one_installment(self, service, make_active_loan):
        loan_id = make_active_loan().loan.id

        result = service.record_payment(loan_id, Decimal('500.00'), "Cash", "teller-1")

        assert len(result.settled) == 1
        assert result.applied_amount == Decimal('500.00')
        assert result.uncredited_remainder == Decimal('0')
        assert result.remaining_installments == 2
        assert result.loan_status == LoanStatus.ACTIVE
        assert not result.loan_completed

        repayments = service.get_repayments(loan_id)
        first = repayments[0]
        assert first.is_paid
        assert first.paid_date == datetime.now(timezone.utc).date()
        assert first.payment_method == "Cash"
        assert first.transaction_id == result.transaction_ids[0]
        assert not repayments[1].is_paid

    def test_overpayment_cascades_and_reports_remainder(self, service, make_active_loan):
        """1,200 against three 500 installments settles two and leaves 200"""
        loan_id = make_active_loan().loan.id

        result = service.record_payment(loan_id, "1200", "Mobile Money")

        assert [r.installment_number for r in result.settled] == [1, 2]
        assert result.applied_amount == Decimal('1000.00')
        assert result.uncredited_remainder == Decimal('200.00')
        assert result.remaining_installments == 1
        assert result.loan_status == LoanStatus.ACTIVE

        unpaid = service.repository.get_unpaid_repayments(loan_id)
        assert len(unpaid) == 1
        assert unpaid[0].amount == Decimal('500.00')

    def test_each_settled_installment_gets_own_reference(self, service, make_active_loan):
        loan_id = make_active_loan().loan.id
        result = service.record_payment(loan_id, 1500, "Cash")
        assert len(set(result.transaction_ids)) == 3

    def test_final_payment_completes_loan(self, service, make_active_loan):
        loan_id = make_active_loan().loan.id
        service.record_payment(loan_id, 1000, "Cash")

        result = service.record_payment(loan_id, 500, "Cash")

        assert result.loan_completed
        assert result.remaining_installments == 0
        assert service.get_loan(loan_id).status == LoanStatus.COMPLETED
        events = service.audit_trail.get_events_for_entity("loan", loan_id)
        assert [e.event_type for e in events][-2:] == [
            AuditEventType.LOAN_COMPLETED, AuditEventType.PAYMENT_RECORDED
        ]

    def test_full_payoff_in_one_payment(self, service, make_active_loan):
        loan_id = make_active_loan(amount="12000", rate="12", term=12).loan.id

        result = service.record_payment(loan_id, Decimal('13440.00'), "Bank Transfer")

        assert len(result.settled) == 12
        assert result.uncredited_remainder == Decimal('0.00')
        assert result.loan_status == LoanStatus.COMPLETED

    def test_payment_settles_earliest_due_first(self, service, make_active_loan):
        loan_id = make_active_loan(amount="1000", rate="10", term=3).loan.id

        service.record_payment(loan_id, Decimal('341.67'), "Cash")
        service.record_payment(loan_id, Decimal('341.67'), "Cash")
        result = service.record_payment(loan_id, Decimal('341.66'), "Cash")

        assert result.settled[0].installment_number == 3
        assert result.loan_completed

    def test_payment_is_audited(self, service, make_active_loan):
        loan_id = make_active_loan().loan.id
        result = service.record_payment(loan_id, 1200, "cash", recorded_by="teller-1")

        event = service.audit_trail.get_events_for_entity("loan", loan_id)[-1]
        assert event.event_type == AuditEventType.PAYMENT_RECORDED
        assert event.user_id == "teller-1"
        assert event.metadata["tendered_amount"] == "1200"
        assert event.metadata["uncredited_remainder"] == "200.00"
        assert event.metadata["payment_method"] == "Cash"
        assert event.metadata["transaction_ids"] == result.transaction_ids


class TestRejectedPayments:
    """Payments that must change nothing"""

    def test_insufficient_amount(self, service, make_active_loan):
        loan_id = make_active_loan().loan.id
        events_before = len(service.audit_trail.get_events_for_entity("loan", loan_id))

        with pytest.raises(InsufficientAmount) as exc_info:
            service.record_payment(loan_id, 400, "Cash")

        assert exc_info.value.minimum_required == Decimal('500.00')
        assert exc_info.value.tendered == Decimal('400')
        assert all(not r.is_paid for r in service.get_repayments(loan_id))
        assert len(service.audit_trail.get_events_for_entity("loan", loan_id)) == events_before

    @pytest.mark.parametrize("amount", [0, -10, "abc", "NaN"])
    def test_invalid_amount(self, service, make_active_loan, amount):
        loan_id = make_active_loan().loan.id
        with pytest.raises(InvalidParameters):
            service.record_payment(loan_id, amount, "Cash")

    def test_blank_method(self, service, make_active_loan):
        loan_id = make_active_loan().loan.id
        with pytest.raises(InvalidParameters):
            service.record_payment(loan_id, 500, "   ")

    def test_unknown_loan(self, service):
        with pytest.raises(LoanNotFound):
            service.record_payment("missing", 500, "Cash")

    def test_pending_loan_cannot_be_paid(self, service, pending_loan):
        with pytest.raises(InvalidTransition, match="ACTIVE"):
            service.record_payment(pending_loan.id, 1120, "Cash")

    def test_completed_loan_cannot_be_paid(self, service, make_active_loan):
        loan_id = make_active_loan().loan.id
        service.record_payment(loan_id, 1500, "Cash")
        with pytest.raises(InvalidTransition):
            service.record_payment(loan_id, 500, "Cash")

    def test_active_loan_without_installments(self, service, make_active_loan):
        loan_id = make_active_loan().loan.id
        for repayment in service.get_repayments(loan_id):
            repayment.is_paid = True
            service.repository.update_repayment(repayment)

        with pytest.raises(NoOutstandingInstallments):
            service.record_payment(loan_id, 500, "Cash")

    def test_failure_mid_cascade_rolls_back(self, service, make_active_loan):
        """An error while settling the second installment undoes the first"""
        loan_id = make_active_loan().loan.id
        calls = []

        def failing_reference():
            calls.append(1)
            if len(calls) == 2:
                raise RuntimeError("reference service unavailable")
            return f"REF-{len(calls)}"

        service.payment_processor.reference_factory = failing_reference

        with pytest.raises(RuntimeError):
            service.record_payment(loan_id, 1000, "Cash")

        assert all(not r.is_paid for r in service.get_repayments(loan_id))
        assert service.get_loan(loan_id).status == LoanStatus.ACTIVE

    def test_rolled_back_completion_is_not_logged(self, service, make_active_loan, loan_log_records, monkeypatch):
        """Completion is only announced once the payment has committed"""
        loan_id = make_active_loan().loan.id
        original = service.audit_trail.log_event

        def failing_log_event(event_type, *args, **kwargs):
            if event_type == AuditEventType.PAYMENT_RECORDED:
                raise RuntimeError("audit store unavailable")
            return original(event_type, *args, **kwargs)

        monkeypatch.setattr(service.audit_trail, "log_event", failing_log_event)

        with pytest.raises(RuntimeError):
            service.record_payment(loan_id, 1500, "Cash")

        assert service.get_loan(loan_id).status == LoanStatus.ACTIVE
        assert all(not r.is_paid for r in service.get_repayments(loan_id))
        assert not [r for r in loan_log_records if r.getMessage() == "Loan ACTIVE -> COMPLETED"]

    def test_committed_completion_is_logged(self, service, make_active_loan, loan_log_records):
        loan_id = make_active_loan().loan.id

        service.record_payment(loan_id, 1500, "Cash", recorded_by="teller-1")

        completed = [r for r in loan_log_records if r.getMessage() == "Loan ACTIVE -> COMPLETED"]
        assert len(completed) == 1
        assert completed[0].user_id == "teller-1"
        assert completed[0].resource == f"loan:{loan_id}"


class TestConcurrentPayments:
    """Payments on the same loan never double-settle an installment"""

    def test_parallel_payments_settle_distinct_installments(self, service, make_active_loan):
        loan_id = make_active_loan().loan.id
        results = []
        errors = []
        barrier = threading.Barrier(3)

        def pay():
            barrier.wait()
            try:
                results.append(service.record_payment(loan_id, 500, "Cash"))
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=pay) for _ in range(3)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        settled_ids = [r.settled[0].id for r in results]
        assert len(set(settled_ids)) == 3
        assert sum(1 for r in results if r.loan_completed) == 1
        assert service.get_loan(loan_id).status == LoanStatus.COMPLETED

    def test_extra_parallel_payment_is_rejected(self, service, make_active_loan):
        loan_id = make_active_loan(amount="1000", rate="0", term=2).loan.id
        outcomes = []
        barrier = threading.Barrier(3)

        def pay():
            barrier.wait()
            try:
                service.record_payment(loan_id, 500, "Cash")
                outcomes.append("paid")
            except InvalidTransition:
                outcomes.append("rejected")

        threads = [threading.Thread(target=pay) for _ in range(3)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert outcomes.count("paid") == 2
        assert outcomes.count("rejected") == 1
        assert all(r.is_paid for r in service.get_repayments(loan_id))
