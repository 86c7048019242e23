"""
Money column type and the one rounding rule for settlement amounts.

Every derived amount (rakeback, results, fees, balances) goes through
``round_money``: 2 places, half-up, applied as soon as the value is computed.
Storage keeps 9 decimal places so raw imported figures survive untouched.
Floats are converted through ``str()`` and never enter arithmetic directly.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated

from sqlalchemy import Numeric

Money = Annotated[Decimal, Numeric(38, 9)]

MONEY_DECIMAL_PLACES = 2

ZERO = Decimal("0.00")

# |balance| <= this counts as settled
SETTLED_EPSILON = Decimal("0.01")


def to_decimal(value) -> Decimal:
    """Coerce int/float/str/Decimal/None into a Decimal (None -> 0)."""
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def round_money(
    value,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = ROUND_HALF_UP,
) -> Decimal:
    """
    Round a monetary value to the given number of places (half-up).

    Preconditions: value is numeric (Decimal, int, str or float).
    Postconditions: Returns a Decimal quantized to ``decimal_places``.
        Negative zero is normalised to zero.
    """
    quantize_str = "0." + "0" * decimal_places if decimal_places > 0 else "0"
    result = to_decimal(value).quantize(Decimal(quantize_str), rounding=rounding)
    if result.is_zero():
        return abs(result)
    return result


def sum_money(values) -> Decimal:
    """Exact sum of the values, rounded once at the end."""
    total = Decimal("0")
    for value in values:
        total += to_decimal(value)
    return round_money(total)
