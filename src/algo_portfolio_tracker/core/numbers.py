"""Numeric helpers that keep monetary totals finite."""

import math
from decimal import Decimal, InvalidOperation
from typing import Any

ZERO = Decimal("0")


def to_decimal(value: Any) -> Decimal | None:
    """
    Convert a JSON number or numeric string into a Decimal.

    Parameters
    ----------
    value : Any
        Raw value (int, float, str or Decimal)

    Returns
    -------
    Decimal | None
        Converted value, or None if the input is not numeric

    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return None


def is_finite(value: Any) -> bool:
    """Return True for finite numbers, False for None, NaN, infinities and non-numbers."""
    if isinstance(value, Decimal):
        return value.is_finite()
    if isinstance(value, int | float) and not isinstance(value, bool):
        return math.isfinite(value)
    return False


def finite_or(value: Any, fallback: Decimal = ZERO) -> Decimal:
    """
    Return `value` as a Decimal when it is finite, otherwise `fallback`.

    Parameters
    ----------
    value : Any
        Candidate value
    fallback : Decimal
        Value used for None, NaN and infinities

    Returns
    -------
    Decimal
        Finite decimal

    """
    if not is_finite(value):
        return fallback
    converted = to_decimal(value)
    return converted if converted is not None else fallback


def is_price(value: Any) -> bool:
    """Return True when `value` is a usable (finite, non-negative) price."""
    return is_finite(value) and value >= 0
