"""Latency statistics, HDR histograms and a counter-based profiler with nanosecond resolution."""

__all__ = ["metrics", "histogram", "cycle_timer"]