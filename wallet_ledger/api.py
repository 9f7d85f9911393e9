from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import Depends, FastAPI, Header, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .config import get_settings
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
from .log import configure_logging, get_logger
from .models import (
    AddParticipantsRequest,
    AuthResponse,
    BalanceSnapshot,
    ContributeRequest,
    ContributionRecord,
    CreateExpenseRequest,
    CreateIncomeRequest,
    CreateSharedBudgetRequest,
    DateRange,
    ExpenseRecord,
    GoogleLoginRequest,
    IncomeRecord,
    LoginRequest,
    RegisterRequest,
    SharedBudget,
    User,
)
from .security import Session
from .service import LedgerService

settings = get_settings()
configure_logging(settings.log_level, settings.log_json)
logger = get_logger(__name__)

app = FastAPI(
    title="Wallet Ledger API",
    description="Wallet balances, income and expense history, and shared budgets fed by contributions",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

ledger_service = LedgerService(settings=settings)
bearer_scheme = HTTPBearer(auto_error=False)

# Checked in order; subclasses before their parents.
ERROR_STATUS = (
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ForbiddenError, status.HTTP_403_FORBIDDEN),
    (InsufficientFundsError, status.HTTP_400_BAD_REQUEST),
    (InvalidInputError, status.HTTP_400_BAD_REQUEST),
    (ConflictError, status.HTTP_409_CONFLICT),
    (StoreTimeoutError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (UnauthorizedError, status.HTTP_401_UNAUTHORIZED),
)


def status_for(exc: LedgerServiceError) -> int:
    for error_type, code in ERROR_STATUS:
        if isinstance(exc, error_type):
            return code
    return status.HTTP_400_BAD_REQUEST


@app.exception_handler(LedgerServiceError)
async def handle_ledger_error(request: Request, exc: LedgerServiceError) -> JSONResponse:
    code = status_for(exc)
    logger.info("request_failed", path=request.url.path, kind=exc.kind, status=code)
    headers = {"WWW-Authenticate": "Bearer"} if code == status.HTTP_401_UNAUTHORIZED else None
    return JSONResponse(status_code=code, content={"error": exc.message, "kind": exc.kind}, headers=headers)


@app.exception_handler(RequestValidationError)
async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    detail = "Invalid request"
    if errors:
        field = ".".join(str(part) for part in errors[0].get("loc", ())[1:])
        detail = f"Invalid value for {field}" if field else "Invalid request body"
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": detail, "kind": InvalidInputError.kind},
    )


def get_ledger_service() -> LedgerService:
    return ledger_service


def get_session(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    service: LedgerService = Depends(get_ledger_service),
) -> Session:
    if credentials is None:
        raise UnauthorizedError()
    return service.resolve_session(credentials.credentials)


@app.get("/health", tags=["System"])
def health_check():
    return {"status": "healthy", "service": "wallet-ledger"}


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------

@app.post("/login/jwt", response_model=AuthResponse, tags=["Auth"])
def login(request: LoginRequest, service: LedgerService = Depends(get_ledger_service)) -> AuthResponse:
    return service.login(request)


@app.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED, tags=["Auth"])
def register(request: RegisterRequest, service: LedgerService = Depends(get_ledger_service)) -> AuthResponse:
    return service.register(request)


@app.post("/login/google/mobile", response_model=AuthResponse, tags=["Auth"])
def google_login(request: GoogleLoginRequest, service: LedgerService = Depends(get_ledger_service)) -> AuthResponse:
    return service.google_login(request)


@app.get("/me", response_model=User, tags=["Auth"])
def me(session: Session = Depends(get_session), service: LedgerService = Depends(get_ledger_service)) -> User:
    return service.me(session)


# ---------------------------------------------------------------------------
# Wallet
# ---------------------------------------------------------------------------

@app.get("/balance", response_model=BalanceSnapshot, tags=["Wallet"])
def balance(
    session: Session = Depends(get_session), service: LedgerService = Depends(get_ledger_service)
) -> BalanceSnapshot:
    return service.balance(session)


@app.get("/all-incomes", response_model=list[IncomeRecord], tags=["Wallet"])
def list_incomes(
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: Optional[int] = Query(default=None, ge=0),
    offset: int = Query(default=0, ge=0),
    session: Session = Depends(get_session),
    service: LedgerService = Depends(get_ledger_service),
) -> list[IncomeRecord]:
    return service.list_incomes(session, DateRange(start=start, end=end), limit, offset)


@app.post("/create-income", response_model=IncomeRecord, status_code=status.HTTP_201_CREATED, tags=["Wallet"])
def create_income(
    request: CreateIncomeRequest,
    session: Session = Depends(get_session),
    service: LedgerService = Depends(get_ledger_service),
) -> IncomeRecord:
    return service.create_income(session, request)


@app.get("/all-expenses", response_model=list[ExpenseRecord], tags=["Wallet"])
def list_expenses(
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: Optional[int] = Query(default=None, ge=0),
    offset: int = Query(default=0, ge=0),
    session: Session = Depends(get_session),
    service: LedgerService = Depends(get_ledger_service),
) -> list[ExpenseRecord]:
    return service.list_expenses(session, DateRange(start=start, end=end), limit, offset)


@app.post("/create-expense", response_model=ExpenseRecord, status_code=status.HTTP_201_CREATED, tags=["Wallet"])
def create_expense(
    request: CreateExpenseRequest,
    session: Session = Depends(get_session),
    service: LedgerService = Depends(get_ledger_service),
) -> ExpenseRecord:
    return service.create_expense(session, request)


@app.get("/contributions", response_model=list[ContributionRecord], tags=["Wallet"])
def list_my_contributions(
    session: Session = Depends(get_session), service: LedgerService = Depends(get_ledger_service)
) -> list[ContributionRecord]:
    return service.list_my_contributions(session)


# ---------------------------------------------------------------------------
# Shared budgets
# ---------------------------------------------------------------------------

@app.get("/shared-budgets", response_model=list[SharedBudget], tags=["Shared budgets"])
def list_shared_budgets(
    session: Session = Depends(get_session), service: LedgerService = Depends(get_ledger_service)
) -> list[SharedBudget]:
    return service.list_shared_budgets(session)


@app.post(
    "/create-sharedBudget",
    response_model=SharedBudget,
    status_code=status.HTTP_201_CREATED,
    tags=["Shared budgets"],
)
def create_shared_budget(
    request: CreateSharedBudgetRequest,
    session: Session = Depends(get_session),
    service: LedgerService = Depends(get_ledger_service),
) -> SharedBudget:
    return service.create_shared_budget(session, request)


@app.post("/adding-budget", response_model=SharedBudget, tags=["Shared budgets"])
def contribute(
    request: ContributeRequest,
    idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key"),
    session: Session = Depends(get_session),
    service: LedgerService = Depends(get_ledger_service),
) -> SharedBudget:
    if idempotency_key and not request.idempotency_token:
        request = request.model_copy(update={"idempotency_token": idempotency_key})
    return service.contribute(session, request).budget


@app.get("/shared-budgets/{budget_id}", response_model=SharedBudget, tags=["Shared budgets"])
def get_shared_budget(
    budget_id: UUID,
    session: Session = Depends(get_session),
    service: LedgerService = Depends(get_ledger_service),
) -> SharedBudget:
    return service.get_shared_budget(session, budget_id)


@app.post("/shared-budgets/{budget_id}/participants", response_model=SharedBudget, tags=["Shared budgets"])
def add_participants(
    budget_id: UUID,
    request: AddParticipantsRequest,
    session: Session = Depends(get_session),
    service: LedgerService = Depends(get_ledger_service),
) -> SharedBudget:
    return service.add_participants(session, budget_id, request)


@app.get(
    "/shared-budgets/{budget_id}/contributions",
    response_model=list[ContributionRecord],
    tags=["Shared budgets"],
)
def list_contributions(
    budget_id: UUID,
    session: Session = Depends(get_session),
    service: LedgerService = Depends(get_ledger_service),
) -> list[ContributionRecord]:
    return service.list_contributions(session, budget_id)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
