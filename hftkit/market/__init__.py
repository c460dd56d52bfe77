"""Market data types, order-book snapshots, event streams and feeds."""

__all__ = ["types", "snapshot", "stream", "feed"]