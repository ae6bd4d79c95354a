"""
Operational metrics for the opportunity pipeline.

Business statistics (scans, approvals, profit) live in ``SystemStats``.
This module tracks how long each pipeline stage takes and counts the
incidents that never become opportunities, such as failed price fetches.
"""

import time
from collections import deque
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

from defi_arbitrage.utils.time import LatencyTimer


@dataclass(slots=True)
class LatencyStats:
    """Aggregated latency statistics for one stage."""

    min_us: int = 0
    max_us: int = 0
    avg_us: float = 0.0
    p50_us: int = 0
    p95_us: int = 0
    p99_us: int = 0
    count: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Millisecond view for the metrics endpoint."""
        return {
            "count": self.count,
            "minMs": self.min_us / 1000,
            "avgMs": round(self.avg_us / 1000, 3),
            "p50Ms": self.p50_us / 1000,
            "p95Ms": self.p95_us / 1000,
            "p99Ms": self.p99_us / 1000,
            "maxMs": self.max_us / 1000,
        }


def _percentile(ordered: list[int], fraction: float) -> int:
    """Nearest-rank percentile of an already sorted list."""
    index = min(int(len(ordered) * fraction), len(ordered) - 1)
    return ordered[index]


class MetricsCollector:
    """
    Stage latencies and incident counters.

    Stages used by the controller: ``scan`` (one full cycle over all
    pairs) and ``execution`` (parameter build through executor result).
    Counters: ``pairs_fetched``, ``price_fetch_errors``, ``price_fetch_misses``.
    """

    def __init__(self, latency_window_size: int = 1000) -> None:
        """
        Initialize the collector.

        Args:
            latency_window_size: Samples kept per stage; older ones are dropped.
        """
        self._window_size = latency_window_size
        self._latencies: dict[str, deque[int]] = {}
        self._counters: dict[str, int] = {}
        self._started = time.monotonic()

    # =========================================================================
    # Recording
    # =========================================================================

    def record_latency(self, stage: str, latency_us: int) -> None:
        """Add one latency sample (microseconds) for ``stage``."""
        samples = self._latencies.get(stage)
        if samples is None:
            samples = self._latencies[stage] = deque(maxlen=self._window_size)
        samples.append(latency_us)

    @contextmanager
    def time_stage(self, stage: str) -> Iterator[LatencyTimer]:
        """
        Time the enclosed block and record it under ``stage``.

        The sample is recorded even when the block raises.

        Example:
            >>> with metrics.time_stage("scan"):
            ...     await controller.run_scan()
        """
        timer = LatencyTimer()
        try:
            with timer:
                yield timer
        finally:
            self.record_latency(stage, timer.latency_us)

    def increment_counter(self, name: str, value: int = 1) -> None:
        self._counters[name] = self._counters.get(name, 0) + value

    # =========================================================================
    # Reading
    # =========================================================================

    def get_counter(self, name: str) -> int:
        """Counter value, 0 if never incremented."""
        return self._counters.get(name, 0)

    def get_latency_stats(self, stage: str) -> LatencyStats:
        """Aggregate the current window for ``stage``."""
        samples = self._latencies.get(stage)
        if not samples:
            return LatencyStats()

        ordered = sorted(samples)
        return LatencyStats(
            min_us=ordered[0],
            max_us=ordered[-1],
            avg_us=sum(ordered) / len(ordered),
            p50_us=_percentile(ordered, 0.50),
            p95_us=_percentile(ordered, 0.95),
            p99_us=_percentile(ordered, 0.99),
            count=len(ordered),
        )

    @property
    def uptime_seconds(self) -> float:
        return time.monotonic() - self._started

    def counter_rates(self) -> dict[str, float]:
        """Per-minute rate of every counter since start or reset."""
        minutes = self.uptime_seconds / 60
        if minutes <= 0:
            return {}
        return {name: count / minutes for name, count in self._counters.items()}

    def to_dict(self) -> dict[str, Any]:
        """Snapshot for the metrics endpoint."""
        return {
            "uptimeSeconds": round(self.uptime_seconds, 3),
            "counters": dict(self._counters),
            "ratesPerMinute": self.counter_rates(),
            "stages": {stage: self.get_latency_stats(stage).to_dict() for stage in self._latencies},
        }

    def reset(self) -> None:
        """Drop all samples and counters and restart the clock."""
        self._latencies.clear()
        self._counters.clear()
        self._started = time.monotonic()
