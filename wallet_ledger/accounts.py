from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, Optional
from uuid import UUID, uuid4

from .config import LedgerSettings
from .errors import (
    DuplicateEmailError,
    InsufficientFundsError,
    InvalidInputError,
    UnauthorizedError,
    UnknownParticipantError,
    UserNotFoundError,
)
from .log import get_logger
from .models import User
from .security import hash_password, verify_password
from .storage import InMemoryStorage, UnitOfWork, email_key
from .validation import normalize_email, validate_amount, validate_label

logger = get_logger(__name__)

MIN_PASSWORD_LENGTH = 6


class AccountStore:
    """Users and their wallet balances.

    The balance is changed only through ``credit``/``debit``, which require the
    caller's open ``UnitOfWork`` so the matching ledger row lands in the same commit.
    """

    def __init__(self, storage: InMemoryStorage, settings: LedgerSettings):
        self.storage = storage
        self.settings = settings

    def register(self, username: str, email: str, password: Optional[str]) -> User:
        username = validate_label(username, "Username", self.settings.max_label_length)
        email = normalize_email(email)
        if password is not None and len(password) < MIN_PASSWORD_LENGTH:
            raise InvalidInputError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

        with self.storage.transaction(email_key(email), timeout=self.settings.store_timeout_seconds) as uow:
            if self.storage.user_id_for_email(email) is not None:
                raise DuplicateEmailError()
            row = uow.insert("users", {
                "id": uuid4(),
                "username": username,
                "email": email,
                "password_hash": hash_password(password) if password is not None else None,
                "balance": Decimal("0.00"),
                "created_at": datetime.now(timezone.utc),
            })

        logger.info("user_registered", user_id=str(row["id"]))
        return User(**row)

    def authenticate(self, email: str, password: str) -> User:
        try:
            email = normalize_email(email)
        except InvalidInputError:
            raise UnauthorizedError("Invalid email or password")
        row = self._row_for_email(email)
        if row is None or not row["password_hash"] or not verify_password(password, row["password_hash"]):
            logger.info("login_rejected")
            raise UnauthorizedError("Invalid email or password")
        return User(**row)

    def find_or_register_external(self, email: str, name: Optional[str]) -> User:
        """Sign-in through an external identity provider; such accounts have no password."""
        email = normalize_email(email)
        row = self._row_for_email(email)
        if row is not None:
            return User(**row)
        try:
            return self.register(name or email.split("@")[0], email, None)
        except DuplicateEmailError:
            # Lost a race with a concurrent first sign-in for the same email.
            return User(**self._row_for_email(email))

    def get(self, user_id: UUID) -> User:
        row = self.storage.get_row("users", user_id)
        if row is None:
            raise UserNotFoundError()
        return User(**row)

    def get_balance(self, user_id: UUID) -> Decimal:
        return self.get(user_id).balance

    def resolve_emails(self, emails: Iterable[str]) -> list[UUID]:
        """Map participant emails to existing accounts, keeping first-seen order."""
        resolved: list[UUID] = []
        unknown: list[str] = []
        for raw in emails:
            try:
                email = normalize_email(raw)
            except InvalidInputError:
                unknown.append(str(raw))
                continue
            user_id = self.storage.user_id_for_email(email)
            if user_id is None:
                unknown.append(email)
            elif user_id not in resolved:
                resolved.append(user_id)
        if unknown:
            logger.info("participants_unresolved", count=len(unknown))
            raise UnknownParticipantError()
        return resolved

    def credit(self, uow: UnitOfWork, user_id: UUID, amount: Decimal) -> dict:
        amount = validate_amount(amount)
        row = self._for_update(uow, user_id)
        row["balance"] = row["balance"] + amount
        return row

    def debit(self, uow: UnitOfWork, user_id: UUID, amount: Decimal, allow_overdraft: bool = False) -> dict:
        amount = validate_amount(amount)
        row = self._for_update(uow, user_id)
        if row["balance"] - amount < 0 and not allow_overdraft:
            raise InsufficientFundsError()
        row["balance"] = row["balance"] - amount
        return row

    def _for_update(self, uow: UnitOfWork, user_id: UUID) -> dict:
        row = uow.for_update("users", user_id)
        if row is None:
            raise UserNotFoundError()
        return row

    def _row_for_email(self, email: str) -> Optional[dict]:
        user_id = self.storage.user_id_for_email(email)
        return self.storage.get_row("users", user_id) if user_id is not None else None
