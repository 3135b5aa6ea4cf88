"""
Decimal helpers for monetary columns (Numeric(12, 2))
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation

TWO_PLACES = Decimal('0.01')


def to_decimal(value) -> Decimal:
    """Coerce ints, floats, strings and None to a Decimal"""
    if value is None or value == '':
        return Decimal('0')
    if isinstance(value, Decimal):
        return value
    try:
        # str() first so floats like 0.1 do not carry binary noise
        return Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"Not a valid amount: {value!r}")


def quantize_money(value) -> Decimal:
    return to_decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def money_to_float(value) -> float:
    return float(quantize_money(value))
