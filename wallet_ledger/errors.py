from typing import Optional


class LedgerServiceError(Exception):
    kind = "ledger_error"
    default_message = "Request could not be completed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFoundError(LedgerServiceError):
    kind = "not_found"
    default_message = "Not found"


class UserNotFoundError(NotFoundError):
    default_message = "User not found"


class BudgetNotFoundError(NotFoundError):
    default_message = "Shared budget not found"


class ForbiddenError(LedgerServiceError):
    kind = "forbidden"
    default_message = "You are not allowed to do that"


class InsufficientFundsError(LedgerServiceError):
    kind = "insufficient_funds"
    default_message = "Insufficient funds"


class InvalidInputError(LedgerServiceError):
    kind = "invalid_input"
    default_message = "Invalid input"


class UnknownParticipantError(InvalidInputError):
    kind = "unknown_participant"
    default_message = "No account exists for one or more participant emails"


class ConflictError(LedgerServiceError):
    kind = "conflict"
    default_message = "Request conflicts with an earlier one"


class IdempotencyConflictError(ConflictError):
    default_message = "Idempotency token was already used for a different contribution"


class DuplicateEmailError(ConflictError):
    default_message = "An account with this email already exists"


class StoreTimeoutError(LedgerServiceError):
    kind = "timeout"
    default_message = "The ledger is busy, please try again"


class UnauthorizedError(LedgerServiceError):
    kind = "unauthorized"
    default_message = "Could not validate credentials"
