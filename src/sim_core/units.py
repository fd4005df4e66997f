"""
Money units. Everything inside the engine is integer cents.

Dollars only appear at the edges (CLI input, terminal output, dollar views).
"""

from decimal import ROUND_HALF_UP, Decimal

CENTS_PER_DOLLAR = 100


def dollars_to_cents(value: float | int | str | Decimal) -> int:
    """Convert a dollar amount to integer cents, rounding half-up."""
    cents = Decimal(str(value)) * CENTS_PER_DOLLAR
    return int(cents.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def cents_to_dollars(cents: int | float) -> float:
    return float(Decimal(str(cents)) / CENTS_PER_DOLLAR)


def fee_for(notional: int, fee_rate: float) -> int:
    """Fee on a notional amount, half-up rounded to whole cents.

    fee_for(34_000, 0.01) -> 340
    """
    if notional < 0:
        raise ValueError(f"notional must be >= 0, got {notional}")
    fee = Decimal(notional) * Decimal(str(fee_rate))
    return int(fee.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def format_cents(cents: int | float) -> str:
    """Presentation string: 123456 -> '$1,234.56', -500 -> '-$5.00'."""
    dollars = cents_to_dollars(cents)
    sign = "-" if dollars < 0 else ""
    return f"{sign}${abs(dollars):,.2f}"
