"""Input checks shared by the ledgers, the registry and the contribution engine. Failures raise ``InvalidInputError``."""

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Optional, TypeVar

from .errors import InvalidInputError

CENT = Decimal("0.01")
MAX_AMOUNT = Decimal("1000000000")

E = TypeVar("E", bound=Enum)


def validate_amount(amount, allow_zero: bool = False) -> Decimal:
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidInputError("Amount must be a number")
    if not value.is_finite():
        raise InvalidInputError("Amount must be a number")
    if value < 0 or (value == 0 and not allow_zero):
        raise InvalidInputError("Amount must be greater than zero")
    if value > MAX_AMOUNT:
        raise InvalidInputError("Amount is too large")
    if value != value.quantize(CENT):
        raise InvalidInputError("Amount can have at most two decimal places")
    return value.quantize(CENT)


def validate_label(value: Optional[str], field: str, max_length: int) -> str:
    text = (value or "").strip()
    if not text:
        raise InvalidInputError(f"{field} is required")
    if len(text) > max_length:
        raise InvalidInputError(f"{field} must be at most {max_length} characters")
    return text


def parse_category(value: Optional[str], categories: type[E], strict: bool, max_length: int) -> E:
    """Match a free-text category against ``categories``; unknown values become OTHER unless strict."""
    text = validate_label(value, "Category", max_length).casefold()
    try:
        return categories(text)
    except ValueError:
        if strict:
            raise InvalidInputError(f"Unknown category '{text}'")
        return categories("other")


def normalize_email(email: Optional[str]) -> str:
    text = (email or "").strip().lower()
    local, _, domain = text.partition("@")
    if not local or "." not in domain or " " in text:
        raise InvalidInputError("A valid email address is required")
    return text


def as_utc(moment: Optional[datetime]) -> Optional[datetime]:
    """Treat naive timestamps as UTC so they compare with stored ones."""
    if moment is None:
        return None
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)
