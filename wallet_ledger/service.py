from typing import Optional
from uuid import UUID

from .accounts import AccountStore
from .budgets import SharedBudgetRegistry
from .config import LedgerSettings, get_settings
from .contributions import ContributionEngine
from .errors import UnauthorizedError, UserNotFoundError
from .journals import ExpenseLedger, IncomeLedger
from .log import get_logger
from .models import (
    AddParticipantsRequest,
    AuthResponse,
    BalanceSnapshot,
    ContributeRequest,
    ContributionRecord,
    ContributionResult,
    CreateExpenseRequest,
    CreateIncomeRequest,
    CreateSharedBudgetRequest,
    DateRange,
    ExpenseRecord,
    GoogleLoginRequest,
    IncomeRecord,
    LoginRequest,
    Reconciliation,
    RegisterRequest,
    SharedBudget,
    User,
)
from .projector import BalanceProjector
from .security import GoogleTokenVerifier, Session, TokenIssuer
from .storage import InMemoryStorage


class LedgerService:
    """Entry point used by the HTTP layer: one storage, one set of components, explicit sessions."""

    def __init__(
        self,
        storage: Optional[InMemoryStorage] = None,
        settings: Optional[LedgerSettings] = None,
        google_verifier: Optional[GoogleTokenVerifier] = None,
    ):
        self.settings = settings or get_settings()
        if self.settings.uses_default_secret:
            get_logger(__name__).warning("default_jwt_secret_in_use", setting="WALLET_JWT_SECRET")
        self.storage = storage or InMemoryStorage()
        self.tokens = TokenIssuer(self.settings)
        self.google = google_verifier or GoogleTokenVerifier(
            self.settings.google_client_id, self.settings.google_jwks
        )

        self.accounts = AccountStore(self.storage, self.settings)
        self.incomes = IncomeLedger(self.storage, self.accounts, self.settings)
        self.expenses = ExpenseLedger(self.storage, self.accounts, self.settings)
        self.contributions = ContributionEngine(self.storage, self.accounts, self.settings)
        self.budgets = SharedBudgetRegistry(self.storage, self.accounts, self.contributions, self.settings)
        self.projector = BalanceProjector(self.storage)

    # -- identity ---------------------------------------------------------

    def register(self, request: RegisterRequest) -> AuthResponse:
        user = self.accounts.register(request.username, request.email, request.password)
        return AuthResponse(token=self.tokens.issue(user.id), user=user, message="Registered successfully")

    def login(self, request: LoginRequest) -> AuthResponse:
        user = self.accounts.authenticate(request.email, request.password)
        return AuthResponse(token=self.tokens.issue(user.id), user=user, message="Logged in successfully")

    def google_login(self, request: GoogleLoginRequest) -> AuthResponse:
        identity = self.google.verify(request.id_token)
        user = self.accounts.find_or_register_external(identity.email, identity.name)
        return AuthResponse(token=self.tokens.issue(user.id), user=user, message="Logged in successfully")

    def resolve_session(self, token: str) -> Session:
        session = self.tokens.resolve(token)
        try:
            self.accounts.get(session.user_id)
        except UserNotFoundError:
            raise UnauthorizedError()
        return session

    def me(self, session: Session) -> User:
        return self.accounts.get(session.user_id)

    # -- wallet -----------------------------------------------------------

    def create_income(self, session: Session, request: CreateIncomeRequest) -> IncomeRecord:
        return self.incomes.record(session.user_id, request)

    def list_incomes(
        self,
        session: Session,
        date_range: Optional[DateRange] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[IncomeRecord]:
        return self.incomes.list(session.user_id, date_range, limit, offset)

    def create_expense(self, session: Session, request: CreateExpenseRequest) -> ExpenseRecord:
        return self.expenses.record(session.user_id, request)

    def list_expenses(
        self,
        session: Session,
        date_range: Optional[DateRange] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[ExpenseRecord]:
        return self.expenses.list(session.user_id, date_range, limit, offset)

    def balance(self, session: Session) -> BalanceSnapshot:
        return self.projector.snapshot(session.user_id)

    def reconcile(self, session: Session) -> Reconciliation:
        return self.projector.reconcile(session.user_id)

    # -- shared budgets ---------------------------------------------------

    def create_shared_budget(self, session: Session, request: CreateSharedBudgetRequest) -> SharedBudget:
        return self.budgets.create(session.user_id, request)

    def list_shared_budgets(self, session: Session) -> list[SharedBudget]:
        return self.budgets.list_for_user(session.user_id)

    def get_shared_budget(self, session: Session, budget_id: UUID) -> SharedBudget:
        return self.budgets.get_for(session.user_id, budget_id)

    def add_participants(
        self, session: Session, budget_id: UUID, request: AddParticipantsRequest
    ) -> SharedBudget:
        return self.budgets.add_participants(session.user_id, budget_id, request.participant_emails)

    def contribute(self, session: Session, request: ContributeRequest) -> ContributionResult:
        return self.contributions.contribute(session.user_id, request)

    def list_contributions(self, session: Session, budget_id: UUID) -> list[ContributionRecord]:
        return self.contributions.list_for_budget(session.user_id, budget_id)

    def list_my_contributions(self, session: Session) -> list[ContributionRecord]:
        return self.contributions.list_for_user(session.user_id)
