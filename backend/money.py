from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Optional

CENT = Decimal("0.01")
HALF_CENT = Decimal("0.005")
ZERO = Decimal("0.00")


def to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError("Cannot convert value to Decimal")
    if isinstance(value, (int, float, str)):
        return Decimal(str(value))
    raise ValueError("Cannot convert value to Decimal")


def round_money(value: Any) -> Decimal:
    """Round to cents, halves away from zero. NaN and infinities pass through."""
    value = to_decimal(value)
    if not value.is_finite():
        return value
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def is_zero(value: Any) -> bool:
    """True when the magnitude is under half a cent. NaN is never zero."""
    value = to_decimal(value)
    if value.is_nan():
        return False
    return abs(value) < HALF_CENT


def normalize_currency(code: Optional[str], default: Optional[str] = None) -> Optional[str]:
    if code is None or not str(code).strip():
        return normalize_currency(default) if default else None
    return str(code).strip().upper()


def is_currency_code(code: Optional[str]) -> bool:
    return bool(code) and len(code) == 3 and code.isascii() and code.isalpha()


def to_float(value: Decimal) -> float:
    return float(round_money(value))
