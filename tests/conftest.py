"""
Shared fixtures for the loan core test suite
"""

import pytest
from decimal import Decimal

from microcredit.config import MicrocreditConfig
from microcredit.storage import InMemoryStorage
from microcredit.service import LoanService


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def test_config():
    return MicrocreditConfig(use_sqlite=False, amount_precision=2, max_term_months=600)


@pytest.fixture
def service(storage, test_config):
    return LoanService(storage=storage, config=test_config)


@pytest.fixture
def pending_loan(service):
    """12,000 at 12% flat over 12 months"""
    return service.create_loan(
        client_id="CLIENT001",
        branch_id="BR01",
        amount=Decimal('12000'),
        interest_rate=Decimal('12'),
        term=12,
        purpose="Stock for retail shop",
        created_by="officer-1"
    )


@pytest.fixture
def make_active_loan(service):
    """Factory for loans already approved and activated"""
    def _make(amount="1500", rate="0", term=3):
        loan = service.create_loan("CLIENT001", "BR01", Decimal(amount), term, Decimal(rate))
        service.approve_loan(loan.id, "manager-1")
        return service.activate_loan(loan.id, "teller-1")
    return _make
