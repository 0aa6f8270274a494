# Overview: Decimal helpers for currency amounts.

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from .errors import ValidationError

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def quantize(value: Decimal) -> Decimal:
    """Round half-up to whole cents."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def to_decimal(value, field: str = "amount") -> Decimal:
    """
    Coerce request input to Decimal.

    Floats go through str() so 0.1 stays 0.1 rather than its binary expansion.
    """
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a number", errors=[f"{field} must be a number"])
    if isinstance(value, Decimal):
        return value
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number", errors=[f"{field} must be a number"])
    if not result.is_finite():
        raise ValidationError(f"{field} must be a finite number", errors=[f"{field} must be a finite number"])
    return result


def money_str(value) -> str | None:
    if value is None:
        return None
    return str(quantize(value))
