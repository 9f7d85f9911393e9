from decimal import Decimal
from itertools import count

import pytest

from wallet_ledger.config import LedgerSettings
from wallet_ledger.models import CreateIncomeRequest, RegisterRequest
from wallet_ledger.security import Session
from wallet_ledger.service import LedgerService

_user_numbers = count(1)


@pytest.fixture
def settings():
    return LedgerSettings(jwt_secret="test-secret", store_timeout_seconds=5.0, log_json=False)


@pytest.fixture
def service(settings):
    return LedgerService(settings=settings)


@pytest.fixture
def make_user(service):
    """Register a user and optionally fund their wallet with a salary income."""

    def _make(name=None, balance=None):
        number = next(_user_numbers)
        name = name or f"user{number}"
        auth = service.register(RegisterRequest(
            username=name, email=f"{name}.{number}@example.com", password="secret-pass"
        ))
        session = Session(user_id=auth.user.id)
        if balance:
            service.create_income(session, CreateIncomeRequest(
                amount=Decimal(str(balance)), source="Opening balance", category="salary"
            ))
        return session

    return _make
