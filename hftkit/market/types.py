"""Market data records: trades, level-2 book updates, book snapshots and summaries.

Prices and quantities are floats; timestamps are timezone-aware UTC datetimes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Optional

PriceLevel = tuple[float, float]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Side(str, Enum):
    BUY = "Buy"
    SELL = "Sell"


class UpdateType(IntEnum):
    ADD = 0
    UPDATE = 1
    DELETE = 2


@dataclass
class Tick:
    """A single executed trade."""

    symbol: str
    price: float
    quantity: float
    side: Side
    timestamp: datetime = field(default_factory=_utcnow)


@dataclass
class Level2Update:
    """A change to one price level of an order book."""

    symbol: str
    side: Side
    price: float
    quantity: float
    update_type: UpdateType = UpdateType.ADD
    timestamp: datetime = field(default_factory=_utcnow)

    @classmethod
    def add(cls, symbol: str, side: Side, price: float, quantity: float) -> Level2Update:
        return cls(symbol, side, price, quantity, UpdateType.ADD)

    @classmethod
    def update(cls, symbol: str, side: Side, price: float, quantity: float) -> Level2Update:
        return cls(symbol, side, price, quantity, UpdateType.UPDATE)

    @classmethod
    def delete(cls, symbol: str, side: Side, price: float) -> Level2Update:
        return cls(symbol, side, price, 0.0, UpdateType.DELETE)


@dataclass
class OrderBookSnapshot:
    """Full book state: bids best-first (descending), asks best-first (ascending)."""

    symbol: str
    sequence_number: int = 0
    bids: list[PriceLevel] = field(default_factory=list)
    asks: list[PriceLevel] = field(default_factory=list)
    timestamp: datetime = field(default_factory=_utcnow)

    def best_bid(self) -> Optional[float]:
        return self.bids[0][0] if self.bids else None

    def best_ask(self) -> Optional[float]:
        return self.asks[0][0] if self.asks else None

    def spread(self) -> Optional[float]:
        ask, bid = self.best_ask(), self.best_bid()
        if ask is None or bid is None:
            return None
        return ask - bid

    def mid_price(self) -> Optional[float]:
        ask, bid = self.best_ask(), self.best_bid()
        if ask is None or bid is None:
            return None
        return (ask + bid) / 2.0


@dataclass
class MarketSummary:
    """Running open/high/low/close, volume and VWAP for one symbol."""

    symbol: str
    open: float
    high: float = field(init=False)
    low: float = field(init=False)
    close: float = field(init=False)
    vwap: float = field(init=False)
    volume: float = 0.0
    num_trades: int = 0
    timestamp: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        self.high = self.low = self.close = self.vwap = self.open

    def update_trade(self, price: float, quantity: float) -> None:
        """Fold one trade into the summary."""
        self.high = max(self.high, price)
        self.low = min(self.low, price)
        self.close = price

        old_notional = self.vwap * self.volume
        new_notional = price * quantity
        self.volume += quantity
        self.vwap = price if self.volume == 0 else (old_notional + new_notional) / self.volume
        self.num_trades += 1
        self.timestamp = _utcnow()