"""
Token Amount Module

Fixed-width unsigned amounts and conversion between integer base units and
human-readable decimal amounts. NEVER uses float for token values.
"""

from decimal import Decimal, ROUND_DOWN, InvalidOperation, localcontext
from typing import Any, Optional, Union

from .errors import AmountOutOfRange

AMOUNT_BITS = 256
UINT256_MAX = 2 ** AMOUNT_BITS - 1
MAX_DECIMALS = 255  # decimals is a uint8

# Enough digits for any uint256 value scaled by any decimals
_PRECISION = 2 * MAX_DECIMALS + 80


def is_valid_amount(value: Any) -> bool:
    """Check if value is an int that fits the unsigned amount width"""
    # bool is an int subclass but never a token amount
    if isinstance(value, bool) or not isinstance(value, int):
        return False
    return 0 <= value <= UINT256_MAX


def validate_amount(value: Any, field_name: str = "amount") -> int:
    """
    Validate an unsigned token amount

    Args:
        value: Candidate amount in base units
        field_name: Name used in the error message

    Returns:
        The amount unchanged

    Raises:
        AmountOutOfRange: If value is not an int in [0, UINT256_MAX]
    """
    if not is_valid_amount(value):
        raise AmountOutOfRange(value, field_name)
    return value


def validate_decimals(value: Any) -> int:
    """Validate a token's decimals (an unsigned 8-bit value)"""
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= MAX_DECIMALS:
        raise AmountOutOfRange(value, "decimals",
                               f"decimals must be an integer in [0, {MAX_DECIMALS}], got {value!r}")
    return value


def to_base_units(amount: Union[str, Decimal, int], decimals: int) -> int:
    """
    Convert a human-readable amount (e.g. "1.5") to integer base units.
    Digits beyond the token's decimals are truncated.

    Raises:
        AmountOutOfRange: If the amount is malformed, negative or too large
    """
    try:
        value = Decimal(amount)
    except (InvalidOperation, TypeError, ValueError):
        raise AmountOutOfRange(amount, "amount", f"Cannot convert {amount!r} to a token amount")
    if not value.is_finite() or (value and value.adjusted() + decimals > 80):
        raise AmountOutOfRange(amount)

    with localcontext() as ctx:
        ctx.prec = _PRECISION
        units = int(value.scaleb(decimals).quantize(Decimal("1"), rounding=ROUND_DOWN))
    return validate_amount(units)


def from_base_units(units: int, decimals: int) -> Decimal:
    """Convert integer base units back to an exact Decimal amount"""
    validate_amount(units)
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        return Decimal(units).scaleb(-decimals)


def format_amount(units: int, decimals: int, symbol: Optional[str] = None) -> str:
    """
    Format base units for display, dropping insignificant trailing zeros.

    >>> format_amount(1500000000000000000, 18, "BPT")
    '1.5 BPT'
    """
    value = from_base_units(units, decimals)
    text = f"{value:,.{decimals}f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return f"{text} {symbol}" if symbol else text
