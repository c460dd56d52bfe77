"""Running latency statistics and summary records.

All durations are integer nanoseconds.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone

_U64_MAX = (1 << 64) - 1


class LatencyMetrics:
    """Count, sum, extremes and sum of squares of recorded latencies."""

    __slots__ = ("_count", "_sum_ns", "_min_ns", "_max_ns", "_sum_squared_ns")

    def __init__(self) -> None:
        self._count = 0
        self._sum_ns = 0
        self._min_ns = _U64_MAX
        self._max_ns = 0
        self._sum_squared_ns = 0

    def record(self, latency_ns: int) -> None:
        """Add one latency sample, in nanoseconds."""
        if latency_ns < 0:
            raise ValueError("latency must not be negative")
        ns = int(latency_ns)
        self._count += 1
        self._sum_ns += ns
        self._min_ns = min(self._min_ns, ns)
        self._max_ns = max(self._max_ns, ns)
        self._sum_squared_ns += ns * ns

    def count(self) -> int:
        return self._count

    def sum(self) -> int:
        return self._sum_ns

    def min(self) -> int:
        """Smallest sample, or 0 when nothing has been recorded."""
        return 0 if self._count == 0 else self._min_ns

    def max(self) -> int:
        return self._max_ns

    def mean(self) -> int:
        """Integer mean in nanoseconds, or 0 when empty."""
        return 0 if self._count == 0 else self._sum_ns // self._count

    def variance(self) -> float:
        """Population variance in ns², 0.0 for fewer than two samples."""
        if self._count <= 1:
            return 0.0
        count = float(self._count)
        mean = self._sum_ns / count
        return max(float(self._sum_squared_ns) / count - mean * mean, 0.0)

    def std_dev(self) -> int:
        """Standard deviation truncated to whole nanoseconds."""
        return int(math.sqrt(self.variance()))

    def merge(self, other: LatencyMetrics) -> None:
        """Fold another set of statistics into this one."""
        if other._count == 0:
            return
        if self._count == 0:
            self._assign(other)
            return
        self._count += other._count
        self._sum_ns += other._sum_ns
        self._min_ns = min(self._min_ns, other._min_ns)
        self._max_ns = max(self._max_ns, other._max_ns)
        self._sum_squared_ns += other._sum_squared_ns

    def reset(self) -> None:
        self._assign(LatencyMetrics())

    def copy(self) -> LatencyMetrics:
        clone = LatencyMetrics()
        clone._assign(self)
        return clone

    def _assign(self, other: LatencyMetrics) -> None:
        self._count = other._count
        self._sum_ns = other._sum_ns
        self._min_ns = other._min_ns
        self._max_ns = other._max_ns
        self._sum_squared_ns = other._sum_squared_ns

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LatencyMetrics):
            return NotImplemented
        return all(getattr(self, name) == getattr(other, name) for name in self.__slots__)

    def __repr__(self) -> str:
        return (
            f"LatencyMetrics(count={self._count}, sum_ns={self._sum_ns}, "
            f"min_ns={self.min()}, max_ns={self._max_ns})"
        )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class PerformanceStats:
    """Aggregate figures across all measurement points."""

    total_measurements: int = 0
    avg_latency_ns: int = 0
    max_latency_ns: int = 0
    min_latency_ns: int = 0
    active_measurements: int = 0
    timestamp: datetime = field(default_factory=_utcnow)

    def avg_latency_us(self) -> float:
        return self.avg_latency_ns / 1000.0

    def max_latency_us(self) -> float:
        return self.max_latency_ns / 1000.0

    def min_latency_us(self) -> float:
        return self.min_latency_ns / 1000.0

    def throughput_per_second(self, window_ns: int) -> float:
        """Measurements per second over a window given in nanoseconds."""
        if window_ns == 0:
            return 0.0
        return self.total_measurements / (window_ns / 1_000_000_000)


@dataclass
class Percentile:
    """A fixed set of latency percentiles, in nanoseconds."""

    p50: int = 0
    p90: int = 0
    p95: int = 0
    p99: int = 0
    p99_9: int = 0

    @classmethod
    def from_nanos(cls, p50: int, p90: int, p95: int, p99: int, p99_9: int) -> Percentile:
        return cls(p50=p50, p90=p90, p95=p95, p99=p99, p99_9=p99_9)