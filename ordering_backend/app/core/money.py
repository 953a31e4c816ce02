"""
Money helpers.

Amounts are Decimal with two places everywhere below the HTTP layer.
"""

from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value) -> Decimal:
    """Quantize an int, float, str or Decimal to cents."""
    if isinstance(value, Decimal):
        parsed = value
    else:
        parsed = Decimal(str(value))
    return parsed.quantize(CENT, rounding=ROUND_HALF_UP)


def money_json(value) -> str:
    """Exact string form for JSON columns and error details."""
    return str(to_money(value))
