"""
Time utilities.

Millisecond timestamps for opportunities and activity records, second
timestamps for trade deadlines, and a latency timer for executions.
"""

import time


def get_timestamp_us() -> int:
    """
    Get current timestamp in microseconds.

    Returns:
        Current Unix timestamp in microseconds.
    """
    return time.time_ns() // 1000


def get_timestamp_ms() -> int:
    """
    Get current timestamp in milliseconds.

    Used for opportunity, activity and execution timestamps.

    Returns:
        Current Unix timestamp in milliseconds.
    """
    return time.time_ns() // 1_000_000


def get_timestamp_s() -> int:
    """Get current Unix timestamp in whole seconds."""
    return time.time_ns() // 1_000_000_000


class LatencyTimer:
    """
    Context manager for measuring operation latency.

    Example:
        >>> with LatencyTimer() as timer:
        ...     do_something()
        >>> print(f"Latency: {timer.latency_ms}ms")
    """

    __slots__ = ("start_us", "end_us", "latency_us")

    def __init__(self) -> None:
        self.start_us: int = 0
        self.end_us: int = 0
        self.latency_us: int = 0

    def __enter__(self) -> "LatencyTimer":
        self.start_us = get_timestamp_us()
        return self

    def __exit__(self, *args: object) -> None:
        self.end_us = get_timestamp_us()
        self.latency_us = self.end_us - self.start_us

    @property
    def latency_ms(self) -> float:
        return self.latency_us / 1000


def format_duration_us(duration_us: int) -> str:
    """
    Format a duration in microseconds for human-readable display.

    Examples:
        >>> format_duration_us(500)
        '500μs'
        >>> format_duration_us(1500)
        '1.50ms'
        >>> format_duration_us(1500000)
        '1.50s'
    """
    if duration_us < 1000:
        return f"{duration_us}μs"
    elif duration_us < 1_000_000:
        return f"{duration_us / 1000:.2f}ms"
    else:
        return f"{duration_us / 1_000_000:.2f}s"
