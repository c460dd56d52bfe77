"""Keeps the latest order book snapshot and trading summary per symbol."""

from __future__ import annotations

from datetime import datetime
from typing import Iterator, Optional

from hftkit.market.types import (
    Level2Update,
    MarketSummary,
    OrderBookSnapshot,
    Side,
    UpdateType,
)


class SnapshotManager:
    """Order book snapshots and summaries indexed by symbol."""

    def __init__(self) -> None:
        self._snapshots: dict[str, OrderBookSnapshot] = {}
        self._summaries: dict[str, MarketSummary] = {}

    def update_snapshot(self, symbol: str, snapshot: OrderBookSnapshot) -> None:
        self._snapshots[symbol] = snapshot

    def get_snapshot(self, symbol: str) -> Optional[OrderBookSnapshot]:
        return self._snapshots.get(symbol)

    def apply_update(self, update: Level2Update) -> None:
        """Apply a level-2 change to the symbol's snapshot, if there is one."""
        snapshot = self._snapshots.get(update.symbol)
        if snapshot is None:
            return

        is_bid = update.side is Side.BUY
        levels = snapshot.bids if is_bid else snapshot.asks

        if update.update_type is UpdateType.DELETE:
            levels[:] = [level for level in levels if level[0] != update.price]
        else:
            for position, (price, _) in enumerate(levels):
                if price == update.price:
                    levels[position] = (price, update.quantity)
                    break
            else:
                levels.append((update.price, update.quantity))
                levels.sort(key=lambda level: level[0], reverse=is_bid)

        snapshot.timestamp = update.timestamp

    def update_summary(self, symbol: str, summary: MarketSummary) -> None:
        self._summaries[symbol] = summary

    def get_summary(self, symbol: str) -> Optional[MarketSummary]:
        return self._summaries.get(symbol)

    def get_or_create_summary(self, symbol: str, open_price: float) -> MarketSummary:
        """The symbol's summary, created with ``open_price`` if missing."""
        summary = self._summaries.get(symbol)
        if summary is None:
            summary = self._summaries[symbol] = MarketSummary(symbol, open_price)
        return summary

    def symbols(self) -> Iterator[str]:
        """Symbols with a snapshot, in sorted order."""
        return iter(sorted(self._snapshots))

    def snapshot_count(self) -> int:
        return len(self._snapshots)

    def clear_old_snapshots(self, cutoff_time: datetime) -> None:
        """Drop snapshots and summaries not newer than ``cutoff_time``."""
        self._snapshots = {
            symbol: snapshot
            for symbol, snapshot in self._snapshots.items()
            if snapshot.timestamp > cutoff_time
        }
        self._summaries = {
            symbol: summary
            for symbol, summary in self._summaries.items()
            if summary.timestamp > cutoff_time
        }