"""Telemetry module for logging and metrics."""

from defi_arbitrage.telemetry.logger import AsyncLogger, setup_logging
from defi_arbitrage.telemetry.metrics import LatencyStats, MetricsCollector


__all__ = [
    "AsyncLogger",
    "LatencyStats",
    "MetricsCollector",
    "setup_logging",
]
