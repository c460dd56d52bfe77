"""Fan-out of market data to per-symbol and global streams, with book tracking."""

from __future__ import annotations

import asyncio
import copy
import threading
from contextlib import suppress
from datetime import datetime, timedelta, timezone
from typing import Optional

from hftkit.market.snapshot import SnapshotManager
from hftkit.market.stream import MarketDataStream, MarketEvent, Sender, StreamClosed
from hftkit.market.types import Level2Update, MarketSummary, OrderBookSnapshot, Tick

_RETENTION = timedelta(hours=24)


class MarketDataFeed:
    """Publishes events to subscribers and keeps snapshots and summaries current."""

    def __init__(self) -> None:
        self._streams: dict[str, MarketDataStream] = {}
        self._manager = SnapshotManager()
        self._lock = threading.Lock()
        self._global_sender: Optional[Sender] = None
        self._tasks: set[asyncio.Task[None]] = set()

    def add_symbol(self, symbol: str) -> Sender:
        """Create (or replace) the stream for ``symbol`` and return a sender to it."""
        stream = MarketDataStream()
        self._streams[symbol] = stream
        return stream.sender()

    def get_stream(self, symbol: str) -> Optional[MarketDataStream]:
        return self._streams.get(symbol)

    def set_global_sender(self, sender: Sender) -> None:
        self._global_sender = sender

    def _dispatch(self, symbol: str, event: MarketEvent) -> None:
        stream = self._streams.get(symbol)
        if stream is not None:
            with suppress(StreamClosed):
                stream.sender().send(event)
        if self._global_sender is not None:
            with suppress(StreamClosed):
                self._global_sender.send(event)

    def publish_tick(self, tick: Tick) -> None:
        self._dispatch(tick.symbol, MarketEvent.tick(copy.copy(tick)))
        with self._lock:
            summary = self._manager.get_or_create_summary(tick.symbol, tick.price)
            summary.update_trade(tick.price, tick.quantity)

    def publish_level2_update(self, update: Level2Update) -> None:
        self._dispatch(update.symbol, MarketEvent.level2_update(copy.copy(update)))
        with self._lock:
            self._manager.apply_update(update)

    def publish_snapshot(self, snapshot: OrderBookSnapshot) -> None:
        self._dispatch(snapshot.symbol, MarketEvent.snapshot(copy.deepcopy(snapshot)))
        with self._lock:
            self._manager.update_snapshot(snapshot.symbol, copy.deepcopy(snapshot))

    def get_snapshot(self, symbol: str) -> Optional[OrderBookSnapshot]:
        """A copy of the current book for ``symbol``."""
        with self._lock:
            snapshot = self._manager.get_snapshot(symbol)
            return None if snapshot is None else copy.deepcopy(snapshot)

    def get_summary(self, symbol: str) -> Optional[MarketSummary]:
        """A copy of the trading summary for ``symbol``."""
        with self._lock:
            summary = self._manager.get_summary(symbol)
            return None if summary is None else copy.copy(summary)

    def symbols(self) -> list[str]:
        return list(self._streams)

    async def start_heartbeat(self, interval: float = 1.0) -> Optional[asyncio.Task[None]]:
        """Send a heartbeat to the global stream every ``interval`` seconds.

        Returns the background task, or None when no global sender is set.
        The task ends on its own once the global stream is closed.
        """
        if interval <= 0:
            raise ValueError("heartbeat interval must be positive")
        sender = self._global_sender
        if sender is None:
            return None
        task = asyncio.create_task(self._heartbeat_loop(sender, interval))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @staticmethod
    async def _heartbeat_loop(sender: Sender, interval: float) -> None:
        while True:
            try:
                sender.send(MarketEvent.heartbeat())
            except StreamClosed:
                return
            await asyncio.sleep(interval)

    def cleanup_old_data(self) -> None:
        """Forget snapshots and summaries untouched for a day."""
        cutoff = datetime.now(timezone.utc) - _RETENTION
        with self._lock:
            self._manager.clear_old_snapshots(cutoff)