from decimal import Decimal
from uuid import UUID

from .errors import UserNotFoundError
from .models import BalanceSnapshot, Reconciliation
from .storage import InMemoryStorage


class BalanceProjector:
    """Read-only view of a wallet: balance, totals and activity counts from one consistent snapshot."""

    def __init__(self, storage: InMemoryStorage):
        self.storage = storage

    def snapshot(self, user_id: UUID) -> BalanceSnapshot:
        with self.storage.snapshot() as store:
            user = store.get_row("users", user_id)
            if user is None:
                raise UserNotFoundError()
            incomes = store.rows_for("incomes", "incomes_by_user", user_id)
            expenses = store.rows_for("expenses", "expenses_by_user", user_id)
            contributions = store.rows_for("contributions", "contributions_by_user", user_id)
            budget_count = len(store.budgets_by_member.get(user_id, ()))

        activity = [r["occurred_at"] for r in incomes + expenses] + [r["created_at"] for r in contributions]
        return BalanceSnapshot(
            user_id=user_id,
            balance=user["balance"],
            total_income=_total(incomes),
            total_expenses=_total(expenses),
            total_contributed=_total(contributions),
            income_count=len(incomes),
            expense_count=len(expenses),
            contribution_count=len(contributions),
            budget_count=budget_count,
            last_activity_at=max(activity) if activity else None,
        )

    def reconcile(self, user_id: UUID) -> Reconciliation:
        """Recompute the balance from the ledgers and compare it with the stored one."""
        snap = self.snapshot(user_id)
        return Reconciliation(
            user_id=user_id,
            stored_balance=snap.balance,
            derived_balance=snap.total_income - snap.total_expenses - snap.total_contributed,
        )


def _total(rows: list[dict]) -> Decimal:
    return sum((row["amount"] for row in rows), Decimal("0.00"))
