"""High dynamic range histogram of integer latency values."""

from __future__ import annotations

import copy
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

_U64_MAX = (1 << 64) - 1
_DEFAULT_EXPORT = (50.0, 90.0, 95.0, 99.0, 99.9, 99.99)


def _format_percentile(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))


@dataclass
class HistogramPercentiles:
    """Standard latency percentiles, in nanoseconds."""

    p50: int
    p90: int
    p95: int
    p99: int
    p99_9: int
    p99_99: int

    def p50_us(self) -> float:
        return self.p50 / 1000.0

    def p90_us(self) -> float:
        return self.p90 / 1000.0

    def p95_us(self) -> float:
        return self.p95 / 1000.0

    def p99_us(self) -> float:
        return self.p99 / 1000.0

    def p99_9_us(self) -> float:
        return self.p99_9 / 1000.0

    def p99_99_us(self) -> float:
        return self.p99_99 / 1000.0


class Histogram:
    """Log-bucketed histogram keeping a fixed number of significant digits.

    A histogram built with the constructor grows to hold any 64-bit value;
    one built with ``with_bounds`` silently drops values it cannot hold.
    """

    def __init__(self, significant_digits: int = 3) -> None:
        self._configure(1, 2, significant_digits, auto_resize=True)

    @classmethod
    def with_bounds(cls, lowest: int, highest: int, precision: int) -> Histogram:
        hist = cls.__new__(cls)
        hist._configure(lowest, highest, precision, auto_resize=False)
        return hist

    def _configure(self, lowest: int, highest: int, sigfig: int, *, auto_resize: bool) -> None:
        if not 0 <= sigfig <= 5:
            raise ValueError("significant digits must be between 0 and 5")
        if lowest < 1:
            raise ValueError("lowest discernible value must be at least 1")
        if lowest > _U64_MAX // 2:
            raise ValueError("lowest discernible value is too large")
        if highest < 2 * lowest:
            raise ValueError("highest trackable value must be at least twice the lowest")
        if highest > _U64_MAX:
            raise ValueError("highest trackable value exceeds 64 bits")

        largest_single_unit = 2 * 10**sigfig
        self._unit_magnitude = lowest.bit_length() - 1
        sub_bucket_count_magnitude = (largest_single_unit - 1).bit_length()
        self._half_mag = max(sub_bucket_count_magnitude, 1) - 1
        if self._unit_magnitude + self._half_mag > 61:
            raise ValueError("precision and lowest value cannot be represented")
        self._sub_bucket_count = 1 << (self._half_mag + 1)
        self._sub_bucket_half_count = self._sub_bucket_count // 2
        self._sub_bucket_mask = (self._sub_bucket_count - 1) << self._unit_magnitude
        self._unit_mask = (1 << self._unit_magnitude) - 1
        self._max_index = self._counts_len(_U64_MAX if auto_resize else highest)

        self._counts: dict[int, int] = {}
        self._total = 0
        self._max_value = 0
        self._min_non_zero = _U64_MAX

    def _counts_len(self, highest: int) -> int:
        smallest_untrackable = self._sub_bucket_count << self._unit_magnitude
        buckets = 1
        while smallest_untrackable <= highest:
            if smallest_untrackable > _U64_MAX // 2:
                buckets += 1
                break
            smallest_untrackable <<= 1
            buckets += 1
        return (buckets + 1) * self._sub_bucket_half_count

    def _bucket_sub(self, value: int) -> tuple[int, int]:
        pow2ceiling = (value | self._sub_bucket_mask).bit_length()
        bucket = pow2ceiling - self._unit_magnitude - (self._half_mag + 1)
        return bucket, value >> (bucket + self._unit_magnitude)

    def _index_for(self, value: int) -> int:
        bucket, sub = self._bucket_sub(value)
        return ((bucket + 1) << self._half_mag) + (sub - self._sub_bucket_half_count)

    def _value_for(self, index: int) -> int:
        bucket = (index >> self._half_mag) - 1
        sub = (index & (self._sub_bucket_half_count - 1)) + self._sub_bucket_half_count
        if bucket < 0:
            sub -= self._sub_bucket_half_count
            bucket = 0
        return sub << (bucket + self._unit_magnitude)

    def _range_size(self, value: int) -> int:
        bucket, sub = self._bucket_sub(value)
        adjusted = bucket + 1 if sub >= self._sub_bucket_count else bucket
        return 1 << (self._unit_magnitude + adjusted)

    def _lowest_equivalent(self, value: int) -> int:
        bucket, sub = self._bucket_sub(value)
        return sub << (bucket + self._unit_magnitude)

    def _highest_equivalent(self, value: int) -> int:
        return self._lowest_equivalent(value) + self._range_size(value) - 1

    def _median_equivalent(self, value: int) -> int:
        return self._lowest_equivalent(value) + (self._range_size(value) >> 1)

    def _note_extremes(self, value: int) -> None:
        internal_max = value | self._unit_mask
        if internal_max > self._max_value:
            self._max_value = internal_max
        if value > self._unit_mask:
            internal_min = value & ~self._unit_mask
            if internal_min < self._min_non_zero:
                self._min_non_zero = internal_min

    def record(self, value: int) -> None:
        """Record one value; values outside the trackable range are dropped."""
        if value < 0:
            raise ValueError("histogram values must not be negative")
        if value > _U64_MAX:
            return
        index = self._index_for(value)
        if index >= self._max_index:
            return
        self._counts[index] = self._counts.get(index, 0) + 1
        self._total += 1
        self._note_extremes(value)

    def percentile(self, percentile: float) -> int:
        """Value at or below which the given percentage of samples fall."""
        if self._total == 0:
            return 0
        quantile = min(percentile / 100.0, 1.0)
        target = max(math.ceil(quantile * self._total), 1)
        running = 0
        for index in sorted(self._counts):
            running += self._counts[index]
            if running >= target:
                value = self._value_for(index)
                if quantile == 0.0:
                    return self._lowest_equivalent(value)
                return self._highest_equivalent(value)
        return 0

    def min(self) -> int:
        if self._total == 0 or self._counts.get(0, 0) != 0:
            return 0
        if self._min_non_zero == _U64_MAX:
            return _U64_MAX
        return self._lowest_equivalent(self._min_non_zero)

    def max(self) -> int:
        if self._max_value == 0:
            return 0
        return self._highest_equivalent(self._max_value)

    def mean(self) -> float:
        if self._total == 0:
            return 0.0
        weighted = sum(
            self._median_equivalent(self._value_for(index)) * count
            for index, count in self._counts.items()
        )
        return weighted / self._total

    def count(self) -> int:
        return self._total

    def is_empty(self) -> bool:
        return self._total == 0

    def reset(self) -> None:
        self._counts.clear()
        self._total = 0
        self._max_value = 0
        self._min_non_zero = _U64_MAX

    def merge(self, other: Histogram) -> None:
        """Add every value of ``other``; nothing is added if any value does not fit."""
        entries = [(other._value_for(index), count) for index, count in other._counts.items()]
        placed = []
        for value, count in entries:
            index = self._index_for(value)
            if index >= self._max_index:
                return
            placed.append((index, value, count))
        for index, value, count in placed:
            self._counts[index] = self._counts.get(index, 0) + count
            self._note_extremes(value)
        self._total += other._total

    def copy(self) -> Histogram:
        clone = copy.copy(self)
        clone._counts = dict(self._counts)
        return clone

    def percentiles(self) -> HistogramPercentiles:
        return HistogramPercentiles(
            p50=self.percentile(50.0),
            p90=self.percentile(90.0),
            p95=self.percentile(95.0),
            p99=self.percentile(99.0),
            p99_9=self.percentile(99.9),
            p99_99=self.percentile(99.99),
        )

    def export_percentiles(self, percentiles: Iterable[float]) -> list[tuple[float, int]]:
        return [(p, self.percentile(p)) for p in percentiles]

    def export_csv(self, path: str | Path) -> None:
        """Write the standard percentiles as ``percentile,value_ns`` rows."""
        lines = ["percentile,value_ns"]
        lines.extend(f"{_format_percentile(p)},{self.percentile(p)}" for p in _DEFAULT_EXPORT)
        Path(path).write_text("\n".join(lines) + "\n", encoding="utf-8")

    def __repr__(self) -> str:
        return f"Histogram(count={self._total}, min={self.min()}, max={self.max()})"