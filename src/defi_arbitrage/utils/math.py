"""
Mathematical utilities for arbitrage calculations.

Provides precision-safe operations for price ratios and token amount
formatting, where on-chain amounts are expressed as fixed-point strings.
"""

import string
from decimal import ROUND_DOWN, Context, Decimal
from typing import Final


# Epsilon for floating point comparisons
EPSILON: Final[float] = 1e-10

_BASE36_ALPHABET: Final[str] = string.digits + string.ascii_lowercase

# Enough precision to quantize large amounts to 18 places
_WIDE_CONTEXT: Final[Context] = Context(prec=80)


def safe_divide(numerator: float, denominator: float, default: float = 0.0) -> float:
    """
    Safely divide two numbers, returning default on division by zero.

    Args:
        numerator: The dividend.
        denominator: The divisor.
        default: Value to return if denominator is zero.

    Returns:
        Result of division or default value.
    """
    if abs(denominator) < EPSILON:
        return default
    return numerator / denominator


def relative_difference(buy_price: float, sell_price: float) -> float:
    """
    Signed relative gain of selling at ``sell_price`` after buying at ``buy_price``.

    Example:
        >>> relative_difference(100.0, 150.0)
        0.5
    """
    return safe_divide(sell_price - buy_price, buy_price)


def to_decimal(value: float | int | str | Decimal) -> Decimal:
    """Convert to Decimal via str so binary float noise is not carried over."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def to_fixed(value: Decimal | float, places: int) -> str:
    """
    Render a value with exactly ``places`` fractional digits.

    Rounds toward zero so a minimum-output bound is never overstated.

    Example:
        >>> to_fixed(Decimal("0.5"), 4)
        '0.5000'
    """
    quantum = Decimal(1).scaleb(-places)
    quantized = to_decimal(value).quantize(quantum, rounding=ROUND_DOWN, context=_WIDE_CONTEXT)
    return format(quantized, "f")


def to_base36(value: int) -> str:
    """
    Encode a non-negative integer in base 36 (lowercase).

    Example:
        >>> to_base36(1295)
        'zz'
    """
    if value < 0:
        raise ValueError("value must be non-negative")
    if value == 0:
        return "0"

    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36_ALPHABET[remainder])
    return "".join(reversed(digits))


def format_usd(amount: float) -> str:
    """Format a dollar amount with two decimals, e.g. ``$53.50``."""
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount):,.2f}"
