"""
Unit Tests for the Shared Budget Registry

Tests cover:
1. Budget creation and participant resolution
2. Opening amounts funded by the owner
3. Listing budgets per member
4. Owner-only participant management
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from wallet_ledger.budgets import seed_token
from wallet_ledger.errors import (
    BudgetNotFoundError,
    ForbiddenError,
    InsufficientFundsError,
    InvalidInputError,
    UnknownParticipantError,
)
from wallet_ledger.models import AddParticipantsRequest, CreateSharedBudgetRequest


class TestCreateBudget:
    """Tests for creating shared budgets."""

    def test_create_with_participants(self, service, make_user):
        """Test that participants are resolved and the owner is listed first."""
        owner = make_user()
        friend = make_user()

        budget = service.create_shared_budget(owner, CreateSharedBudgetRequest(
            name="Road trip", participant_emails=[service.me(friend).email]
        ))

        assert budget.name == "Road trip"
        assert budget.owner_id == owner.user_id
        assert budget.participant_ids == [owner.user_id, friend.user_id]
        assert budget.pooled_amount == Decimal("0")

    def test_participant_emails_are_normalised_and_deduplicated(self, service, make_user):
        """Test that participant emails are normalised and duplicates dropped."""
        owner = make_user()
        friend = make_user()
        email = service.me(friend).email

        budget = service.create_shared_budget(owner, CreateSharedBudgetRequest(
            name="Dinner", participant_emails=[email.upper(), f" {email} ", service.me(owner).email]
        ))

        assert budget.participant_ids == [owner.user_id, friend.user_id]

    def test_unknown_participant_rejected(self, service, make_user):
        """Test that an unknown participant email creates no budget."""
        owner = make_user()

        with pytest.raises(UnknownParticipantError):
            service.create_shared_budget(owner, CreateSharedBudgetRequest(
                name="Dinner", participant_emails=["nobody@example.com"]
            ))

        assert service.list_shared_budgets(owner) == []

    def test_empty_name_rejected(self, service, make_user):
        """Test that a blank budget name is rejected."""
        owner = make_user()

        with pytest.raises(InvalidInputError):
            service.create_shared_budget(owner, CreateSharedBudgetRequest(name="   "))

    def test_initial_amount_is_owner_contribution(self, service, make_user):
        """Test that an opening amount is debited from the owner in the same commit."""
        owner = make_user(balance=100)

        budget = service.create_shared_budget(owner, CreateSharedBudgetRequest(
            name="Groceries", initial_amount=Decimal("40")
        ))

        assert budget.initial_amount == Decimal("40.00")
        assert budget.pooled_amount == Decimal("40.00")
        assert service.me(owner).balance == Decimal("60.00")
        records = service.list_contributions(owner, budget.id)
        assert [(r.amount, r.idempotency_token) for r in records] == [(Decimal("40.00"), seed_token(budget.id))]
        assert service.reconcile(owner).consistent

    def test_unfunded_initial_amount_creates_nothing(self, service, make_user):
        """Test that an opening amount the owner cannot fund creates no budget."""
        owner = make_user(balance=10)

        with pytest.raises(InsufficientFundsError):
            service.create_shared_budget(owner, CreateSharedBudgetRequest(
                name="Groceries", initial_amount=Decimal("40")
            ))

        assert service.list_shared_budgets(owner) == []
        assert service.me(owner).balance == Decimal("10.00")

    def test_negative_initial_amount_rejected(self, service, make_user):
        """Test that a negative opening amount is rejected."""
        owner = make_user(balance=10)

        with pytest.raises(InvalidInputError):
            service.create_shared_budget(owner, CreateSharedBudgetRequest(
                name="Groceries", initial_amount=Decimal("-1")
            ))

    def test_missing_initial_amount_means_zero(self, service, make_user):
        """Test that an absent opening amount creates an empty pool without a debit."""
        owner = make_user(balance=10)

        budget = service.create_shared_budget(owner, CreateSharedBudgetRequest(
            name="Groceries", initial_amount=None
        ))

        assert budget.initial_amount == Decimal("0")
        assert budget.pooled_amount == Decimal("0")
        assert service.me(owner).balance == Decimal("10.00")
        assert service.list_contributions(owner, budget.id) == []


class TestReadBudgets:
    """Tests for reading shared budgets."""

    def test_list_for_owner_and_participant(self, service, make_user):
        """Test that budgets are listed newest first for each member only."""
        owner = make_user()
        friend = make_user()
        outsider = make_user()
        first = service.create_shared_budget(owner, CreateSharedBudgetRequest(name="First"))
        second = service.create_shared_budget(owner, CreateSharedBudgetRequest(
            name="Second", participant_emails=[service.me(friend).email]
        ))

        assert [b.id for b in service.list_shared_budgets(owner)] == [second.id, first.id]
        assert [b.id for b in service.list_shared_budgets(friend)] == [second.id]
        assert service.list_shared_budgets(outsider) == []

    def test_get_unknown_budget(self, service, make_user):
        """Test that reading an unknown budget fails."""
        owner = make_user()

        with pytest.raises(BudgetNotFoundError):
            service.get_shared_budget(owner, uuid4())

    def test_outsider_cannot_view(self, service, make_user):
        """Test that a non-member cannot read a budget or its contributions."""
        owner = make_user()
        outsider = make_user()
        budget = service.create_shared_budget(owner, CreateSharedBudgetRequest(name="Private"))

        with pytest.raises(ForbiddenError):
            service.get_shared_budget(outsider, budget.id)
        with pytest.raises(ForbiddenError):
            service.list_contributions(outsider, budget.id)


class TestParticipants:
    """Tests for changing budget membership."""

    def test_owner_adds_participant(self, service, make_user):
        """Test that the owner can add a participant who then sees the budget."""
        owner = make_user()
        friend = make_user()
        budget = service.create_shared_budget(owner, CreateSharedBudgetRequest(name="Trip"))

        updated = service.add_participants(owner, budget.id, AddParticipantsRequest(
            participant_emails=[service.me(friend).email]
        ))

        assert updated.participant_ids == [owner.user_id, friend.user_id]
        assert [b.id for b in service.list_shared_budgets(friend)] == [budget.id]

    def test_existing_participant_ignored(self, service, make_user):
        """Test that adding an existing participant changes nothing."""
        owner = make_user()
        friend = make_user()
        budget = service.create_shared_budget(owner, CreateSharedBudgetRequest(
            name="Trip", participant_emails=[service.me(friend).email]
        ))

        updated = service.add_participants(owner, budget.id, AddParticipantsRequest(
            participant_emails=[service.me(friend).email]
        ))

        assert updated.participant_ids == [owner.user_id, friend.user_id]

    def test_participant_cannot_change_membership(self, service, make_user):
        """Test that a participant who is not the owner cannot add members."""
        owner = make_user()
        friend = make_user()
        other = make_user()
        budget = service.create_shared_budget(owner, CreateSharedBudgetRequest(
            name="Trip", participant_emails=[service.me(friend).email]
        ))

        with pytest.raises(ForbiddenError):
            service.add_participants(friend, budget.id, AddParticipantsRequest(
                participant_emails=[service.me(other).email]
            ))

        assert service.get_shared_budget(owner, budget.id).participant_ids == [owner.user_id, friend.user_id]

    def test_unknown_email_rejected(self, service, make_user):
        """Test that adding an unknown email fails."""
        owner = make_user()
        budget = service.create_shared_budget(owner, CreateSharedBudgetRequest(name="Trip"))

        with pytest.raises(UnknownParticipantError):
            service.add_participants(owner, budget.id, AddParticipantsRequest(
                participant_emails=["ghost@example.com"]
            ))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
