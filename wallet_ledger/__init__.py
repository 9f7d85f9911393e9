"""
Wallet ledger

This package provides:
- A per-user wallet balance moved only inside ledger transactions
- Append-only income and expense ledgers
- Shared budgets pooled from participant contributions
- Idempotent, serialized contributions (no lost updates, no double debits)
- A FastAPI surface matching the mobile client's contract
"""

from .errors import (
    ConflictError,
    ForbiddenError,
    InsufficientFundsError,
    InvalidInputError,
    LedgerServiceError,
    NotFoundError,
    StoreTimeoutError,
    UnauthorizedError,
)
from .models import (
    ContributionRecord,
    ExpenseRecord,
    IncomeRecord,
    SharedBudget,
    User,
)
from .service import LedgerService

__all__ = [
    "ConflictError",
    "ForbiddenError",
    "InsufficientFundsError",
    "InvalidInputError",
    "LedgerServiceError",
    "NotFoundError",
    "StoreTimeoutError",
    "UnauthorizedError",
    "ContributionRecord",
    "ExpenseRecord",
    "IncomeRecord",
    "SharedBudget",
    "User",
    "LedgerService",
]
