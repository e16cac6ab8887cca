from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable


# Maximum single movement: 9,999,999,999.99 (999,999,999,999 cents)
# This prevents database overflow issues and nonsensical amounts
MAX_AMOUNT_CENTS = 999_999_999_999

CENT = Decimal("0.01")


class ValidationError(ValueError):
    """400-level input problem."""


class ForbiddenError(Exception):
    """403-level: the principal's role may not perform this operation."""


class NotFoundError(LookupError):
    """404-level: resource missing or outside the principal's scope."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., illegal status transition)."""


def require_fields(payload: dict, fields: Iterable[str]) -> None:
    """Raise ValidationError naming every required field that is absent or blank."""
    missing = [f for f in fields if payload.get(f) in (None, "")]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")


def parse_int_id(value: Any, field: str, *, required: bool = False) -> int | None:
    """
    Coerce an identifier to int.

    Blank values become None (or raise when required). Booleans, floats
    with a fractional part and non-numeric strings are rejected.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValidationError(f"{field} is required")
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        parsed = value
    elif isinstance(value, float):
        if not value.is_integer():
            raise ValidationError(f"{field} must be an integer")
        parsed = int(value)
    elif isinstance(value, str):
        try:
            parsed = int(value.strip())
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    else:
        raise ValidationError(f"{field} must be an integer")
    if parsed <= 0:
        raise ValidationError(f"{field} must be a positive integer")
    return parsed


def optional_text(value: Any, field: str) -> str | None:
    """Stripped string, or None when absent or blank. Non-strings are rejected."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    return value.strip() or None


def parse_choice(value: Any, field: str, choices: Iterable[str]) -> str:
    allowed = tuple(choices)
    normalized = str(value or "").strip().upper()
    if normalized not in allowed:
        raise ValidationError(f"{field} must be one of: {', '.join(allowed)}")
    return normalized


def to_decimal(value: Any, field: str = "amount") -> Decimal:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    if isinstance(value, Decimal):
        d = value
    elif isinstance(value, (int, str)):
        try:
            d = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValidationError(f"{field} must be a number")
    elif isinstance(value, float):
        # via str() so 0.1 stays 0.1
        d = Decimal(str(value))
    else:
        raise ValidationError(f"{field} must be a number")
    if not d.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    return d


def amount_to_cents(value: Any, field: str = "amount") -> int:
    """
    Convert a currency amount (Decimal, int, float or numeric string) to
    integer cents, rounding half-up to two decimal places. Sign is kept.
    """
    cents = int((to_decimal(value, field) / CENT).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    if abs(cents) > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} exceeds the maximum allowed amount")
    return cents


def optional_amount_cents(value: Any, field: str = "amount") -> int | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return amount_to_cents(value, field)


def cents_to_decimal(cents: int | None) -> Decimal:
    return (Decimal(cents or 0) * CENT).quantize(CENT)


def format_cents(cents: int | None) -> str | None:
    """JSON representation of a cents value: a two-decimal string."""
    if cents is None:
        return None
    return str(cents_to_decimal(cents))
