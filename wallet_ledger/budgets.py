from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, Iterator
from uuid import UUID, uuid4

from .accounts import AccountStore
from .config import LedgerSettings
from .contributions import ContributionEngine
from .errors import BudgetNotFoundError, ForbiddenError, InvalidInputError
from .log import get_logger
from .models import CreateSharedBudgetRequest, SharedBudget
from .storage import InMemoryStorage, budget_key, user_key
from .validation import validate_amount, validate_label

logger = get_logger(__name__)


def seed_token(budget_id: UUID) -> str:
    return f"budget-seed:{budget_id}"


class SharedBudgetRegistry:
    """Shared budgets and their membership.

    Participants are resolved against existing accounts when the budget is
    created or extended; the owner is always stored as the first participant.
    A positive opening amount is funded by the owner through the contribution
    engine, inside the same commit that creates the budget.
    """

    def __init__(
        self,
        storage: InMemoryStorage,
        accounts: AccountStore,
        contributions: ContributionEngine,
        settings: LedgerSettings,
    ):
        self.storage = storage
        self.accounts = accounts
        self.contributions = contributions
        self.settings = settings

    def create(self, owner_id: UUID, request: CreateSharedBudgetRequest) -> SharedBudget:
        name = validate_label(request.name, "Budget name", self.settings.max_label_length)
        opening = request.initial_amount if request.initial_amount is not None else Decimal("0")
        initial_amount = validate_amount(opening, allow_zero=True)
        self.accounts.get(owner_id)
        participants = [owner_id] + [
            user_id for user_id in self.accounts.resolve_emails(request.participant_emails) if user_id != owner_id
        ]

        budget_id = uuid4()
        with self.storage.transaction(
            user_key(owner_id), budget_key(budget_id), timeout=self.settings.store_timeout_seconds
        ) as uow:
            row = uow.insert("budgets", {
                "id": budget_id,
                "name": name,
                "owner_id": owner_id,
                "participant_ids": participants,
                "initial_amount": initial_amount,
                "pooled_amount": Decimal("0.00"),
                "created_at": datetime.now(timezone.utc),
            })
            if initial_amount > 0:
                self.contributions.post(uow, owner_id, row, initial_amount, seed_token(budget_id))

        logger.info(
            "budget_created",
            budget_id=str(budget_id), owner_id=str(owner_id),
            participants=len(participants), initial_amount=str(initial_amount),
        )
        return SharedBudget(**row)

    def get(self, budget_id: UUID) -> SharedBudget:
        row = self.storage.get_row("budgets", budget_id)
        if row is None:
            raise BudgetNotFoundError()
        return SharedBudget(**row)

    def get_for(self, user_id: UUID, budget_id: UUID) -> SharedBudget:
        budget = self.get(budget_id)
        if not budget.is_member(user_id):
            raise ForbiddenError("Only participants can view this budget")
        return budget

    def iter_for_user(self, user_id: UUID) -> Iterator[SharedBudget]:
        """Budgets the user owns or participates in, newest first."""
        rows = self.storage.rows_for("budgets", "budgets_by_member", user_id)
        rows = sorted(reversed(rows), key=lambda r: r["created_at"], reverse=True)
        return (SharedBudget(**row) for row in rows)

    def list_for_user(self, user_id: UUID) -> list[SharedBudget]:
        return list(self.iter_for_user(user_id))

    def add_participants(self, user_id: UUID, budget_id: UUID, emails: Iterable[str]) -> SharedBudget:
        emails = list(emails)
        if not emails:
            raise InvalidInputError("At least one participant email is required")
        new_members = self.accounts.resolve_emails(emails)

        with self.storage.transaction(budget_key(budget_id), timeout=self.settings.store_timeout_seconds) as uow:
            row = uow.for_update("budgets", budget_id)
            if row is None:
                raise BudgetNotFoundError()
            if row["owner_id"] != user_id:
                raise ForbiddenError("Only the budget owner can change participants")
            added = [member for member in new_members if member not in row["participant_ids"]]
            row["participant_ids"] = row["participant_ids"] + added

        logger.info("participants_added", budget_id=str(budget_id), added=len(added))
        return SharedBudget(**row)
