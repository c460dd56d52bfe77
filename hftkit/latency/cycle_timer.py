"""Low-overhead latency timing against a calibrated high-resolution counter.

Timestamps are raw counter ticks ("cycles"). A ``CycleTimer`` converts ticks
to nanoseconds using a frequency that is either given or measured against the
wall clock.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from types import TracebackType
from typing import Optional

_U64_MAX = (1 << 64) - 1
_BUCKETS = 32
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_CSV_HEADER = "measurement_point,count,min_ns,max_ns,mean_ns,total_ns"


def _read_counter() -> int:
    return time.perf_counter_ns()


@dataclass(frozen=True, order=True)
class CycleTimestamp:
    """A reading of the high-resolution counter."""

    cycles: int

    @classmethod
    def from_cycles(cls, cycles: int) -> CycleTimestamp:
        return cls(cycles)

    @classmethod
    def now(cls) -> CycleTimestamp:
        return cls(_read_counter())

    def elapsed_cycles(self) -> int:
        """Ticks since this timestamp, never negative."""
        return max(_read_counter() - self.cycles, 0)


def _calibrate(rounds: int, interval_ns: int) -> tuple[float, int, int]:
    if rounds < 1:
        raise ValueError("calibration needs at least one round")
    if interval_ns <= 0:
        raise ValueError("calibration interval must be positive")
    frequencies = []
    for _ in range(rounds):
        start_time = time.time_ns()
        start_cycles = _read_counter()
        target = start_time + interval_ns
        while time.time_ns() < target:
            pass
        end_time = time.time_ns()
        end_cycles = _read_counter()
        elapsed_s = (end_time - start_time) / 1_000_000_000
        frequencies.append((end_cycles - start_cycles) / elapsed_s)
    frequencies.sort()
    median = frequencies[len(frequencies) // 2]
    return median, _read_counter(), time.time_ns()


class CycleTimer:
    """Converts counter ticks into nanoseconds and wall-clock times."""

    def __init__(
        self,
        *,
        calibration_rounds: int = 5,
        calibration_interval_ns: int = 100_000_000,
    ) -> None:
        self._calibration_rounds = calibration_rounds
        self._calibration_interval_ns = calibration_interval_ns
        self._frequency, self._baseline_cycles, self._baseline_time_ns = _calibrate(
            calibration_rounds, calibration_interval_ns
        )

    @classmethod
    def with_frequency(cls, frequency_hz: float) -> CycleTimer:
        """A timer with a known tick frequency, skipping calibration."""
        if frequency_hz <= 0:
            raise ValueError("frequency must be positive")
        timer = cls.__new__(cls)
        timer._calibration_rounds = 5
        timer._calibration_interval_ns = 100_000_000
        timer._frequency = float(frequency_hz)
        timer._baseline_cycles = _read_counter()
        timer._baseline_time_ns = time.time_ns()
        return timer

    def now_cycles(self) -> int:
        return _read_counter()

    def now(self) -> CycleTimestamp:
        return CycleTimestamp(_read_counter())

    def cycles_to_nanos(self, cycles: int) -> int:
        return int(cycles / self._frequency * 1_000_000_000.0)

    def nanos_to_cycles(self, nanos: int) -> int:
        return int(nanos / 1_000_000_000.0 * self._frequency)

    def duration_nanos(self, start: CycleTimestamp, end: CycleTimestamp) -> int:
        """Nanoseconds from ``start`` to ``end``, allowing for a 64-bit counter wrap."""
        if end.cycles >= start.cycles:
            return self.cycles_to_nanos(end.cycles - start.cycles)
        return self.cycles_to_nanos(_U64_MAX - start.cycles + end.cycles + 1)

    def to_system_time(self, timestamp: CycleTimestamp) -> datetime:
        """Approximate UTC wall-clock time of a timestamp."""
        elapsed_cycles = max(timestamp.cycles - self._baseline_cycles, 0)
        total_ns = self._baseline_time_ns + self.cycles_to_nanos(elapsed_cycles)
        return _EPOCH + timedelta(microseconds=total_ns // 1000)

    def frequency(self) -> float:
        return self._frequency

    def recalibrate(self) -> None:
        self._frequency, self._baseline_cycles, self._baseline_time_ns = _calibrate(
            self._calibration_rounds, self._calibration_interval_ns
        )

    def __repr__(self) -> str:
        return f"CycleTimer(frequency={self._frequency:.0f})"


@dataclass(frozen=True)
class LatencySnapshot:
    """Point-in-time copy of accumulated latency figures."""

    count: int
    total_nanos: int
    min_nanos: int
    max_nanos: int
    histogram: tuple[int, ...]

    def mean_nanos(self) -> int:
        return 0 if self.count == 0 else self.total_nanos // self.count

    def percentile(self, percentile: float) -> int:
        """Approximate percentile: the power of two starting the matching bucket."""
        if self.count == 0:
            return 0
        target = int(self.count * percentile / 100.0)
        cumulative = 0
        for bucket, count in enumerate(self.histogram):
            cumulative += count
            if cumulative >= target:
                return 1 << bucket
        return self.max_nanos


class AtomicLatencyMetrics:
    """Thread-safe counters with power-of-two buckets for percentiles."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._count = 0
        self._total_nanos = 0
        self._min_nanos = _U64_MAX
        self._max_nanos = 0
        self._histogram = [0] * _BUCKETS

    def record(self, nanos: int) -> None:
        if nanos < 0:
            raise ValueError("latency must not be negative")
        bucket = 0 if nanos == 0 else nanos.bit_length() - 1
        with self._lock:
            self._count += 1
            self._total_nanos += nanos
            if nanos < self._min_nanos:
                self._min_nanos = nanos
            if nanos > self._max_nanos:
                self._max_nanos = nanos
            if bucket < _BUCKETS:
                self._histogram[bucket] += 1

    def snapshot(self) -> LatencySnapshot:
        with self._lock:
            return LatencySnapshot(
                count=self._count,
                total_nanos=self._total_nanos,
                min_nanos=0 if self._min_nanos == _U64_MAX else self._min_nanos,
                max_nanos=self._max_nanos,
                histogram=tuple(self._histogram),
            )


class CycleProfiler:
    """Per-point latency collection keyed by name."""

    def __init__(self, timer: Optional[CycleTimer] = None) -> None:
        self._timer = timer if timer is not None else CycleTimer()
        self._lock = threading.Lock()
        self._measurements: dict[str, AtomicLatencyMetrics] = {}

    @classmethod
    def with_frequency(cls, frequency_hz: float) -> CycleProfiler:
        return cls(CycleTimer.with_frequency(frequency_hz))

    def _metrics_for(self, point: str) -> AtomicLatencyMetrics:
        with self._lock:
            metrics = self._measurements.get(point)
            if metrics is None:
                metrics = self._measurements[point] = AtomicLatencyMetrics()
            return metrics

    def record_latency(self, point: str, nanos: int) -> None:
        self._metrics_for(point).record(nanos)

    def record_duration(self, point: str, start: CycleTimestamp, end: CycleTimestamp) -> None:
        self.record_latency(point, self._timer.duration_nanos(start, end))

    def start(self) -> CycleTimestamp:
        return CycleTimestamp.now()

    def end(self, point: str, start: CycleTimestamp) -> int:
        """Record the time since ``start`` at ``point`` and return it in nanoseconds."""
        nanos = self._timer.duration_nanos(start, CycleTimestamp.now())
        self.record_latency(point, nanos)
        return nanos

    def get_metrics(self, point: str) -> Optional[LatencySnapshot]:
        with self._lock:
            metrics = self._measurements.get(point)
        return None if metrics is None else metrics.snapshot()

    def get_all_metrics(self) -> list[tuple[str, LatencySnapshot]]:
        """Snapshots of every point, ordered by point name."""
        with self._lock:
            items = sorted(self._measurements.items())
        return [(point, metrics.snapshot()) for point, metrics in items]

    def reset(self) -> None:
        with self._lock:
            self._measurements.clear()

    def reset_point(self, point: str) -> None:
        with self._lock:
            self._measurements.pop(point, None)

    def timer(self) -> CycleTimer:
        return self._timer

    def export_csv(self, path: str | Path) -> None:
        lines = [_CSV_HEADER]
        lines.extend(
            f"{point},{snap.count},{snap.min_nanos},{snap.max_nanos},"
            f"{snap.mean_nanos()},{snap.total_nanos}"
            for point, snap in self.get_all_metrics()
        )
        Path(path).write_text("\n".join(lines) + "\n", encoding="utf-8")


class ScopedCycleMeasurement:
    """Context manager recording the time its body takes at one point."""

    def __init__(self, profiler: CycleProfiler, point: str) -> None:
        self.profiler = profiler
        self.point = point
        self.start = CycleTimestamp.now()
        self.nanos: Optional[int] = None

    def __enter__(self) -> ScopedCycleMeasurement:
        self.start = CycleTimestamp.now()
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> bool:
        self.nanos = self.profiler.end(self.point, self.start)
        return False


_global_lock = threading.Lock()
_global_profiler: Optional[CycleProfiler] = None


def global_profiler() -> CycleProfiler:
    """The shared process-wide profiler, calibrated on first use."""
    global _global_profiler
    with _global_lock:
        if _global_profiler is None:
            _global_profiler = CycleProfiler()
        return _global_profiler


def cycle_measure(profiler: CycleProfiler, point: str) -> ScopedCycleMeasurement:
    """Time a ``with`` block at ``point`` on ``profiler``."""
    return ScopedCycleMeasurement(profiler, point)


def cycle_time(point: str) -> ScopedCycleMeasurement:
    """Time a ``with`` block at ``point`` on the global profiler."""
    return ScopedCycleMeasurement(global_profiler(), point)