"""
Integration tests for the loan service

End-to-end lifecycles over both storage backends plus loan origination rules.
"""

import pytest
from decimal import Decimal

from microcredit.config import MicrocreditConfig
from microcredit.storage import SQLiteStorage
from microcredit.service import LoanService
from microcredit.models import LoanProduct, LoanStatus, InterestMethod
from microcredit.audit import AuditEventType
from microcredit.exceptions import InvalidParameters, LoanNotFound, ScheduleGenerationError


@pytest.fixture
def product():
    return LoanProduct(
        id="PROD-GROUP",
        name="Group Loan",
        min_amount=Decimal('1000'),
        max_amount=Decimal('50000'),
        min_term=3,
        max_term=24,
        interest_rate=Decimal('18'),
        interest_type=InterestMethod.FLAT
    )


class TestCreateLoan:
    """Loan origination"""

    def test_creates_pending_loan(self, service, pending_loan):
        loan = service.get_loan(pending_loan.id)

        assert loan.status == LoanStatus.PENDING
        assert loan.amount == Decimal('12000')
        assert loan.interest_rate == Decimal('12')
        assert loan.term == 12
        assert loan.purpose == "Stock for retail shop"
        assert loan.version == 0

        event = service.audit_trail.get_events_for_entity("loan", loan.id)[0]
        assert event.event_type == AuditEventType.LOAN_CREATED
        assert event.user_id == "officer-1"

    def test_uses_product_rate_by_default(self, service, product):
        loan = service.create_loan("CLIENT001", "BR01", 5000, 6, product=product)

        assert loan.interest_rate == Decimal('18')
        assert loan.product_id == "PROD-GROUP"

    @pytest.mark.parametrize("amount,term", [
        (999, 6),
        (50001, 6),
        (5000, 2),
        (5000, 25),
    ])
    def test_enforces_product_bounds(self, service, product, amount, term):
        with pytest.raises(InvalidParameters):
            service.create_loan("CLIENT001", "BR01", amount, term, product=product)

    def test_inactive_product(self, service, product):
        product.is_active = False
        with pytest.raises(InvalidParameters, match="not active"):
            service.create_loan("CLIENT001", "BR01", 5000, 6, product=product)

    def test_rate_required_without_product(self, service):
        with pytest.raises(InvalidParameters):
            service.create_loan("CLIENT001", "BR01", 5000, 6)

    @pytest.mark.parametrize("amount,rate,term", [
        (0, 12, 12),
        (1000, -1, 12),
        (1000, 12, 0),
    ])
    def test_rejects_invalid_terms(self, service, amount, rate, term):
        with pytest.raises(InvalidParameters):
            service.create_loan("CLIENT001", "BR01", amount, term, rate)

    def test_requires_client_and_branch(self, service):
        with pytest.raises(InvalidParameters):
            service.create_loan("", "BR01", 5000, 6, 12)

    def test_get_missing_loan(self, service):
        with pytest.raises(LoanNotFound):
            service.get_loan("missing")
        with pytest.raises(LoanNotFound):
            service.get_repayments("missing")

    def test_string_amounts_keep_their_value(self, service):
        assert service.create_loan("C1", "BR01", "5e3", 12, "12").amount == Decimal('5000')
        assert service.create_loan("C1", "BR01", "KES 1,500", 12, "12").amount == Decimal('1500')
        with pytest.raises(InvalidParameters):
            service.create_loan("C1", "BR01", "12abc3", 12, "12")


class TestAmortizationQuote:

    def test_quote_does_not_persist(self, service):
        rows = service.compute_amortization(10000, 12, 12, "REDUCING_BALANCE")

        assert len(rows) == 12
        assert service.storage.count("loans") == 0

    def test_exponent_principal(self, service):
        rows = service.compute_amortization("1e3", 0, 1)
        assert rows[0].principal_portion == Decimal('1000.00')


class TestSQLiteLifecycle:
    """Full lifecycle against the SQLite backend"""

    def test_lifecycle_persists(self, tmp_path):
        db_path = tmp_path / "microcredit.db"
        config = MicrocreditConfig(use_sqlite=True, database_path=str(db_path))
        service = LoanService(storage=SQLiteStorage(db_path), config=config)

        loan = service.create_loan("CLIENT001", "BR01", 1500, 3, 0)
        service.approve_loan(loan.id, "manager-1")
        service.activate_loan(loan.id, "teller-1")
        service.record_payment(loan.id, 1200, "Cash")
        service.storage.close()

        reopened = LoanService(storage=SQLiteStorage(db_path), config=config)
        stored = reopened.get_loan(loan.id)
        repayments = reopened.get_repayments(loan.id)

        assert stored.status == LoanStatus.ACTIVE
        assert stored.approved_by == "manager-1"
        assert [r.is_paid for r in repayments] == [True, True, False]
        assert reopened.audit_trail.verify_integrity()["valid"]

        result = reopened.record_payment(loan.id, 500, "Cash")
        assert result.loan_completed
        reopened.storage.close()

    def test_failed_activation_rolls_back(self, tmp_path):
        db_path = tmp_path / "microcredit.db"
        config = MicrocreditConfig(use_sqlite=True, database_path=str(db_path))
        service = LoanService(storage=SQLiteStorage(db_path), config=config)

        loan = service.create_loan("CLIENT001", "BR01", 1500, 3, 0)
        service.approve_loan(loan.id, "manager-1")
        data = service.storage.load("loans", loan.id)
        data["term"] = 0
        service.storage.save("loans", loan.id, data)

        with pytest.raises(ScheduleGenerationError):
            service.activate_loan(loan.id)

        assert service.get_loan(loan.id).status == LoanStatus.APPROVED
        assert service.get_repayments(loan.id) == []
        service.storage.close()
