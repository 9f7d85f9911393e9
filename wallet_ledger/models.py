from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Optional
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, PlainSerializer

# Decimal internally, a plain JSON number on the wire.
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class IncomeCategory(str, Enum):
    SALARY = "salary"
    FREELANCE = "freelance"
    INVESTMENT = "investment"
    BUSINESS = "business"
    GIFT = "gift"
    BONUS = "bonus"
    OTHER = "other"


class ExpenseCategory(str, Enum):
    FOOD = "food"
    TRANSPORT = "transport"
    ENTERTAINMENT = "entertainment"
    SHOPPING = "shopping"
    BILLS = "bills"
    SHARED_BUDGET = "shared budget"
    OTHER = "other"


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class RegisterRequest(BaseModel):
    username: str
    email: str
    password: str


class LoginRequest(BaseModel):
    email: str
    password: str


class GoogleLoginRequest(BaseModel):
    id_token: str = Field(..., alias="idToken")

    model_config = ConfigDict(populate_by_name=True)


class CreateIncomeRequest(BaseModel):
    amount: Decimal
    source: str = ""
    category: str = ""
    occurred_at: Optional[datetime] = Field(
        default=None,
        validation_alias=AliasChoices("occurred_at", "date", "createdAt"),
    )

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "amount": 50.00,
            "source": "Freelance",
            "category": "freelance",
            "date": "2024-05-20T10:00:00Z",
        }
    })


class CreateExpenseRequest(BaseModel):
    amount: Decimal
    description: str = ""
    category: str = ""
    occurred_at: Optional[datetime] = Field(
        default=None,
        validation_alias=AliasChoices("occurred_at", "date", "createdAt"),
    )


class CreateSharedBudgetRequest(BaseModel):
    name: str = Field(default="", alias="budgetname")
    initial_amount: Optional[Decimal] = Field(default=None, alias="amount")
    participant_emails: list[str] = Field(default_factory=list, alias="participants")

    model_config = ConfigDict(populate_by_name=True, json_schema_extra={
        "example": {
            "budgetname": "Flat groceries",
            "amount": 20.00,
            "participants": ["roommate@example.com"],
        }
    })


class AddParticipantsRequest(BaseModel):
    participant_emails: list[str] = Field(..., alias="participants")

    model_config = ConfigDict(populate_by_name=True)


class ContributeRequest(BaseModel):
    amount: Decimal
    budget_id: UUID = Field(..., alias="budgetId")
    idempotency_token: Optional[str] = Field(default=None, alias="idempotencyToken")

    model_config = ConfigDict(populate_by_name=True)


class DateRange(BaseModel):
    """Inclusive bounds on ``occurred_at``; either side may be open."""
    start: Optional[datetime] = None
    end: Optional[datetime] = None

    def contains(self, moment: datetime) -> bool:
        if self.start is not None and moment < self.start:
            return False
        if self.end is not None and moment > self.end:
            return False
        return True


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

class User(BaseModel):
    id: UUID = Field(..., alias="_id")
    username: str
    email: str
    balance: Money = Field(..., alias="totalIncome")
    created_at: datetime = Field(..., alias="createdAt")

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


class IncomeRecord(BaseModel):
    id: UUID = Field(..., alias="_id")
    user_id: UUID = Field(..., alias="user")
    amount: Money
    source: str
    category: IncomeCategory
    occurred_at: datetime = Field(..., alias="createdAt")

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


class ExpenseRecord(BaseModel):
    id: UUID = Field(..., alias="_id")
    user_id: UUID = Field(..., alias="user")
    amount: Money
    description: str
    category: ExpenseCategory
    occurred_at: datetime = Field(..., alias="createdAt")

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


class SharedBudget(BaseModel):
    id: UUID = Field(..., alias="_id")
    name: str = Field(..., alias="budgetname")
    owner_id: UUID = Field(..., alias="user")
    participant_ids: list[UUID] = Field(default_factory=list, alias="participants")
    initial_amount: Money = Field(default=Decimal("0"), alias="initialAmount")
    pooled_amount: Money = Field(..., alias="amount")
    created_at: datetime = Field(..., alias="createdAt")

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    def is_member(self, user_id: UUID) -> bool:
        return user_id == self.owner_id or user_id in self.participant_ids


class ContributionRecord(BaseModel):
    id: UUID = Field(..., alias="_id")
    user_id: UUID = Field(..., alias="user")
    budget_id: UUID = Field(..., alias="budgetId")
    amount: Money
    idempotency_token: str = Field(..., alias="idempotencyToken")
    balance_after: Money = Field(..., alias="balanceAfter")
    pooled_amount_after: Money = Field(..., alias="pooledAmountAfter")
    created_at: datetime = Field(..., alias="createdAt")

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class AuthResponse(BaseModel):
    token: str
    user: User
    message: str


class ContributionResult(BaseModel):
    contribution: ContributionRecord
    budget: SharedBudget
    balance: Money
    replayed: bool = False
    message: str


class BalanceSnapshot(BaseModel):
    user_id: UUID
    balance: Money
    total_income: Money
    total_expenses: Money
    total_contributed: Money
    income_count: int
    expense_count: int
    contribution_count: int
    budget_count: int
    last_activity_at: Optional[datetime] = None


class Reconciliation(BaseModel):
    user_id: UUID
    stored_balance: Money
    derived_balance: Money

    @property
    def consistent(self) -> bool:
        return self.stored_balance == self.derived_balance
