"""
Contribution engine: the only path from a personal wallet into a shared pool.

A contribution debits the contributor, credits the budget's pooled amount
and writes an immutable ContributionRecord in one commit, holding both the
contributor's and the budget's lock. Requests carry an idempotency token;
a retried request with a token already on file for the same user returns
the stored outcome instead of moving money again.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

from .accounts import AccountStore
from .config import LedgerSettings
from .errors import (
    BudgetNotFoundError,
    ForbiddenError,
    IdempotencyConflictError,
    InsufficientFundsError,
    InvalidInputError,
)
from .log import get_logger
from .models import ContributeRequest, ContributionRecord, ContributionResult, SharedBudget
from .storage import InMemoryStorage, UnitOfWork, budget_key, user_key
from .validation import validate_amount

logger = get_logger(__name__)

MAX_TOKEN_LENGTH = 128


class ContributionEngine:
    def __init__(self, storage: InMemoryStorage, accounts: AccountStore, settings: LedgerSettings):
        self.storage = storage
        self.accounts = accounts
        self.settings = settings

    def contribute(self, user_id: UUID, request: ContributeRequest) -> ContributionResult:
        amount = validate_amount(request.amount)
        token = self._token(request.idempotency_token)
        budget_id = request.budget_id

        try:
            with self.storage.transaction(
                user_key(user_id), budget_key(budget_id), timeout=self.settings.store_timeout_seconds
            ) as uow:
                existing = self.storage.contribution_for_token(user_id, token)
                if existing is not None:
                    return self._replay(existing, budget_id, amount)

                budget_row = uow.for_update("budgets", budget_id)
                if budget_row is None:
                    raise BudgetNotFoundError()
                if not SharedBudget(**budget_row).is_member(user_id):
                    raise ForbiddenError("Only participants can contribute to this budget")

                row = self.post(uow, user_id, budget_row, amount, token)
        except InsufficientFundsError:
            logger.info(
                "contribution_rejected",
                user_id=str(user_id), budget_id=str(budget_id), amount=str(amount), reason="insufficient_funds",
            )
            raise

        logger.info(
            "contribution_applied",
            user_id=str(user_id), budget_id=str(budget_id), contribution_id=str(row["id"]),
            amount=str(amount), pooled_amount=str(row["pooled_amount_after"]),
        )
        return ContributionResult(
            contribution=ContributionRecord(**row),
            budget=SharedBudget(**budget_row),
            balance=row["balance_after"],
            message="Contribution added",
        )

    def post(self, uow: UnitOfWork, user_id: UUID, budget_row: dict, amount: Decimal, token: str) -> dict:
        """Stage debit, pool increment and audit row. Caller holds the user and budget locks."""
        account = self.accounts.debit(uow, user_id, amount)
        budget_row["pooled_amount"] = budget_row["pooled_amount"] + amount
        return uow.insert("contributions", {
            "id": uuid4(),
            "user_id": user_id,
            "budget_id": budget_row["id"],
            "amount": amount,
            "idempotency_token": token,
            "balance_after": account["balance"],
            "pooled_amount_after": budget_row["pooled_amount"],
            "created_at": datetime.now(timezone.utc),
        })

    def list_for_budget(self, user_id: UUID, budget_id: UUID) -> list[ContributionRecord]:
        budget_row = self.storage.get_row("budgets", budget_id)
        if budget_row is None:
            raise BudgetNotFoundError()
        if not SharedBudget(**budget_row).is_member(user_id):
            raise ForbiddenError("Only participants can view this budget")
        rows = self.storage.rows_for("contributions", "contributions_by_budget", budget_id)
        return [ContributionRecord(**row) for row in reversed(rows)]

    def list_for_user(self, user_id: UUID) -> list[ContributionRecord]:
        rows = self.storage.rows_for("contributions", "contributions_by_user", user_id)
        return [ContributionRecord(**row) for row in reversed(rows)]

    def _replay(self, existing: dict, budget_id: UUID, amount: Decimal) -> ContributionResult:
        record = ContributionRecord(**existing)
        if record.budget_id != budget_id or record.amount != amount:
            raise IdempotencyConflictError()

        budget = SharedBudget(**self.storage.get_row("budgets", budget_id))
        logger.info(
            "contribution_replayed",
            user_id=str(record.user_id), budget_id=str(budget_id), contribution_id=str(record.id),
        )
        return ContributionResult(
            contribution=record,
            budget=budget.model_copy(update={"pooled_amount": record.pooled_amount_after}),
            balance=record.balance_after,
            replayed=True,
            message="Contribution already applied",
        )

    @staticmethod
    def _token(value: Optional[str]) -> str:
        token = (value or "").strip()
        if not token:
            return uuid4().hex
        if len(token) > MAX_TOKEN_LENGTH:
            raise InvalidInputError(f"Idempotency token must be at most {MAX_TOKEN_LENGTH} characters")
        return token
