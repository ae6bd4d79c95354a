"""Utility functions for the arbitrage engine."""

from defi_arbitrage.utils.math import (
    format_usd,
    relative_difference,
    safe_divide,
    to_base36,
    to_decimal,
    to_fixed,
)
from defi_arbitrage.utils.time import (
    LatencyTimer,
    get_timestamp_ms,
    get_timestamp_s,
    get_timestamp_us,
)


__all__ = [
    "LatencyTimer",
    "format_usd",
    "get_timestamp_ms",
    "get_timestamp_s",
    "get_timestamp_us",
    "relative_difference",
    "safe_divide",
    "to_base36",
    "to_decimal",
    "to_fixed",
]
