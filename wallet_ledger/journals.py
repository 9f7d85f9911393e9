"""
Income and expense ledgers.

Both are append-only: a record is written once, in the same commit that
moves the owner's wallet balance, and never changed afterwards.
"""

from datetime import datetime, timezone
from itertools import islice
from typing import Iterator, Optional
from uuid import UUID, uuid4

from .accounts import AccountStore
from .config import LedgerSettings
from .errors import InsufficientFundsError, InvalidInputError, UserNotFoundError
from .log import get_logger
from .models import (
    CreateExpenseRequest,
    CreateIncomeRequest,
    DateRange,
    ExpenseCategory,
    ExpenseRecord,
    IncomeCategory,
    IncomeRecord,
)
from .storage import InMemoryStorage, user_key
from .validation import as_utc, parse_category, validate_amount, validate_label

logger = get_logger(__name__)


class _Journal:
    table: str
    index: str
    record_model: type

    def __init__(self, storage: InMemoryStorage, accounts: AccountStore, settings: LedgerSettings):
        self.storage = storage
        self.accounts = accounts
        self.settings = settings

    def iter_records(self, user_id: UUID, date_range: Optional[DateRange] = None) -> Iterator:
        """Newest first. Each call reads a fresh snapshot, so iteration can be restarted freely."""
        if self.storage.get_row("users", user_id) is None:
            raise UserNotFoundError()
        start, end = (as_utc(date_range.start), as_utc(date_range.end)) if date_range else (None, None)
        if start and end and start > end:
            raise InvalidInputError("Start date must not be after end date")
        bounds = DateRange(start=start, end=end)

        rows = self.storage.rows_for(self.table, self.index, user_id)
        # Stable sort over reversed insertion order: equal timestamps list latest write first.
        rows = sorted(reversed(rows), key=lambda r: r["occurred_at"], reverse=True)
        return (self.record_model(**row) for row in rows if bounds.contains(row["occurred_at"]))

    def list(
        self,
        user_id: UUID,
        date_range: Optional[DateRange] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list:
        if offset < 0 or (limit is not None and limit < 0):
            raise InvalidInputError("Pagination values must not be negative")
        stop = offset + limit if limit is not None else None
        return list(islice(self.iter_records(user_id, date_range), offset, stop))

    def _occurred_at(self, value: Optional[datetime]) -> datetime:
        return as_utc(value) or datetime.now(timezone.utc)


class IncomeLedger(_Journal):
    table = "incomes"
    index = "incomes_by_user"
    record_model = IncomeRecord

    def record(self, user_id: UUID, request: CreateIncomeRequest) -> IncomeRecord:
        amount = validate_amount(request.amount)
        source = validate_label(request.source, "Source", self.settings.max_label_length)
        category = parse_category(
            request.category, IncomeCategory, self.settings.strict_categories, self.settings.max_category_length
        )

        with self.storage.transaction(user_key(user_id), timeout=self.settings.store_timeout_seconds) as uow:
            account = self.accounts.credit(uow, user_id, amount)
            row = uow.insert(self.table, {
                "id": uuid4(),
                "user_id": user_id,
                "amount": amount,
                "source": source,
                "category": category,
                "occurred_at": self._occurred_at(request.occurred_at),
            })

        logger.info(
            "income_recorded",
            user_id=str(user_id), record_id=str(row["id"]),
            amount=str(amount), balance_after=str(account["balance"]),
        )
        return IncomeRecord(**row)


class ExpenseLedger(_Journal):
    table = "expenses"
    index = "expenses_by_user"
    record_model = ExpenseRecord

    def record(self, user_id: UUID, request: CreateExpenseRequest) -> ExpenseRecord:
        amount = validate_amount(request.amount)
        description = validate_label(request.description, "Description", self.settings.max_label_length)
        category = parse_category(
            request.category, ExpenseCategory, self.settings.strict_categories, self.settings.max_category_length
        )

        try:
            with self.storage.transaction(user_key(user_id), timeout=self.settings.store_timeout_seconds) as uow:
                account = self.accounts.debit(
                    uow, user_id, amount, allow_overdraft=self.settings.allow_expense_overdraft
                )
                row = uow.insert(self.table, {
                    "id": uuid4(),
                    "user_id": user_id,
                    "amount": amount,
                    "description": description,
                    "category": category,
                    "occurred_at": self._occurred_at(request.occurred_at),
                })
        except InsufficientFundsError:
            logger.info("expense_rejected", user_id=str(user_id), amount=str(amount), reason="insufficient_funds")
            raise

        logger.info(
            "expense_recorded",
            user_id=str(user_id), record_id=str(row["id"]),
            amount=str(amount), balance_after=str(account["balance"]),
        )
        return ExpenseRecord(**row)
