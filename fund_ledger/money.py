"""
Money Arithmetic Module

Decimal helpers for every monetary value in the ledger. NEVER uses float for
monetary values: floats coming in from JSON are converted through their string
representation and rounded to two places with ROUND_HALF_UP.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, getcontext
from typing import Union
import re

getcontext().prec = 28

TWO_PLACES = Decimal('0.01')
ZERO = Decimal('0.00')

Numeric = Union[Decimal, int, float, str]


def to_decimal(value: Numeric) -> Decimal:
    """
    Strictly convert a boundary value to Decimal

    Args:
        value: Decimal, int, float or numeric string

    Returns:
        Decimal value (not rounded)

    Raises:
        ValueError: If the value is None, a bool, or not numeric
    """
    if value is None or isinstance(value, bool):
        raise ValueError(f"Not a monetary value: {value!r}")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation:
            raise ValueError(f"Cannot convert '{value}' to Decimal")
    else:
        raise ValueError(f"Not a monetary value: {value!r}")

    if not result.is_finite():
        raise ValueError(f"Not a monetary value: {value!r}")
    return result


def round2(value: Numeric) -> Decimal:
    """Round to two decimal places using ROUND_HALF_UP"""
    return to_decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def decimal_from_string(value: str) -> Decimal:
    """
    Leniently parse a user-entered amount such as "₹1,250.50" or "Rs. 900"

    Args:
        value: String representation of an amount

    Returns:
        Decimal value rounded to two places

    Raises:
        ValueError: If the string holds no usable number
    """
    if not value or not isinstance(value, str):
        raise ValueError("Value must be a non-empty string")

    # Strip a leading "Rs." style prefix before the character filter so its
    # dot is not taken for a decimal point
    clean_value = re.sub(r'^\s*rs\.?\s*', '', value, flags=re.IGNORECASE)
    clean_value = re.sub(r'[^\d.,\-]', '', clean_value)
    # Indian and Western grouping both use comma as the thousands separator
    clean_value = clean_value.replace(',', '')

    if not clean_value or clean_value in ('-', '.'):
        raise ValueError(f"Cannot convert '{value}' to Decimal")

    return round2(clean_value)
