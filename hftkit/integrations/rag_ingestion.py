"""Batched delivery of market events to the knowledge service."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import uuid
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from hftkit.integrations.rag_client import RagClient, RagError
from hftkit.integrations.rag_types import MarketEvent, MarketEventType
from hftkit.integrations.types import MarketContext, _format_timestamp

logger = logging.getLogger(__name__)


def _json_value(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return _format_timestamp(value)
    if isinstance(value, uuid.UUID):
        return str(value)
    return value


def _payload(record: Any) -> dict[str, Any]:
    """JSON-ready mapping of a record's fields."""
    return {f.name: _json_value(getattr(record, f.name)) for f in dataclasses.fields(record)}


def _number_text(value: float) -> str:
    """Render a float without a trailing ``.0`` for whole numbers."""
    value = float(value)
    if value.is_integer():
        return str(int(value))
    return repr(value)


class ExecutionType(str, Enum):
    MARKET = "Market"
    LIMIT = "Limit"
    STOP = "Stop"
    STOP_LIMIT = "StopLimit"


@dataclass
class TradeExecution:
    trade_id: str
    order_id: str
    symbol: str
    side: str
    quantity: Decimal
    price: Decimal
    fee: Decimal
    execution_type: ExecutionType
    timestamp: datetime


class AlertType(str, Enum):
    PRICE_ABOVE = "PriceAbove"
    PRICE_BELOW = "PriceBelow"
    PERCENTAGE_CHANGE = "PercentageChange"
    VOLUME_THRESHOLD = "VolumeThreshold"
    TECHNICAL_INDICATOR = "TechnicalIndicator"


@dataclass
class PriceAlert:
    alert_id: str
    symbol: str
    alert_type: AlertType
    threshold: Decimal
    current_price: Decimal
    message: str
    timestamp: datetime


@dataclass
class VolumeSpike:
    spike_id: str
    symbol: str
    normal_volume: Decimal
    spike_volume: Decimal
    spike_ratio: float
    duration_seconds: int
    timestamp: datetime


class TechnicalSignalType(str, Enum):
    BUY = "Buy"
    SELL = "Sell"
    HOLD = "Hold"
    OVERBOUGHT = "Overbought"
    OVERSOLD = "Oversold"
    BULLISH = "Bullish"
    BEARISH = "Bearish"
    BREAKOUT = "Breakout"
    BREAKDOWN = "Breakdown"


@dataclass
class TechnicalSignal:
    signal_id: str
    symbol: str
    indicator: str
    signal_type: TechnicalSignalType
    value: float
    strength: float
    description: str
    timestamp: datetime


@dataclass(frozen=True)
class QueueStats:
    queue_size: int
    is_running: bool
    batch_size: int
    batch_timeout_ms: int


class MarketEventIngestion:
    """Queues market events and ships them to the knowledge service in batches.

    While running, a background task sends up to ``batch_size`` events every
    ``batch_timeout_ms`` milliseconds. A queue that reaches twice the batch
    size is relieved at once. Delivery failures are logged, not raised.
    """

    def __init__(
        self,
        client: RagClient,
        *,
        batch_size: int = 50,
        batch_timeout_ms: int = 5000,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch size must be positive")
        if batch_timeout_ms <= 0:
            raise ValueError("batch timeout must be positive")
        self.client = client
        self.batch_size = batch_size
        self.batch_timeout_ms = batch_timeout_ms
        self._queue: deque[MarketEvent] = deque()
        self._running = False
        self._stop_signal: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task[None]] = None

    def _take(self, limit: Optional[int] = None) -> list[MarketEvent]:
        count = len(self._queue) if limit is None else min(limit, len(self._queue))
        return [self._queue.popleft() for _ in range(count)]

    async def _send(self, events: list[MarketEvent], failure: str) -> None:
        try:
            await self.client.batch_ingest_events(events)
        except RagError as exc:
            logger.error("%s: %s", failure, exc)

    async def start(self) -> None:
        """Start the background batching task; a second call only warns."""
        if self._running:
            logger.warning("Market event ingestion already running")
            return
        self._running = True
        logger.info("Starting market event ingestion service")
        self._stop_signal = asyncio.Event()
        self._task = asyncio.create_task(self._run(self._stop_signal))

    async def _run(self, stop_signal: asyncio.Event) -> None:
        loop = asyncio.get_running_loop()
        interval = self.batch_timeout_ms / 1000.0
        next_tick = loop.time()
        while not stop_signal.is_set():
            delay = next_tick - loop.time()
            if delay > 0:
                try:
                    await asyncio.wait_for(stop_signal.wait(), delay)
                    break
                except asyncio.TimeoutError:
                    pass
            next_tick += interval
            batch = self._take(self.batch_size)
            if batch:
                logger.debug("Processing batch of %d events", len(batch))
                await self._send(batch, "Failed to ingest event batch")
        logger.info("Market event ingestion service stopped")

    async def stop(self) -> None:
        """Stop batching and send whatever is still queued."""
        self._running = False
        logger.info("Stopping market event ingestion service")
        if self._stop_signal is not None:
            self._stop_signal.set()
        task, self._task = self._task, None
        self._stop_signal = None
        if task is not None:
            await task

        remaining = self._take()
        if remaining:
            logger.info("Processing %d remaining events before shutdown", len(remaining))
            await self._send(remaining, "Failed to process remaining events")

    async def ingest_event(self, event: MarketEvent) -> None:
        self._queue.append(event)
        if len(self._queue) >= self.batch_size * 2:
            logger.warning(
                "Event queue size (%d) exceeding threshold, triggering immediate processing",
                len(self._queue),
            )
            urgent = self._take(self.batch_size)
            await self._send(urgent, "Failed to process urgent event batch")

    async def ingest_market_context(self, context: MarketContext) -> None:
        await self.ingest_event(MarketEvent.from_market_context(context))

    async def ingest_trade_execution(self, trade: TradeExecution) -> None:
        await self.ingest_event(
            MarketEvent(
                symbol=trade.symbol,
                event_type=MarketEventType.TRADE,
                data=_payload(trade),
                metadata={
                    "trade_id": trade.trade_id,
                    "order_id": trade.order_id,
                    "execution_type": trade.execution_type.value,
                },
                timestamp=trade.timestamp,
            )
        )

    async def ingest_price_alert(self, alert: PriceAlert) -> None:
        await self.ingest_event(
            MarketEvent(
                symbol=alert.symbol,
                event_type=MarketEventType.ALERT,
                data=_payload(alert),
                metadata={
                    "alert_type": alert.alert_type.value,
                    "threshold": str(alert.threshold),
                },
                timestamp=alert.timestamp,
            )
        )

    async def ingest_volume_spike(self, spike: VolumeSpike) -> None:
        await self.ingest_event(
            MarketEvent(
                symbol=spike.symbol,
                event_type=MarketEventType.VOLUME_SPIKE,
                data=_payload(spike),
                metadata={
                    "spike_ratio": _number_text(spike.spike_ratio),
                    "duration": str(spike.duration_seconds),
                },
                timestamp=spike.timestamp,
            )
        )

    async def ingest_technical_signal(self, signal: TechnicalSignal) -> None:
        await self.ingest_event(
            MarketEvent(
                symbol=signal.symbol,
                event_type=MarketEventType.TECHNICAL_INDICATOR,
                data=_payload(signal),
                metadata={
                    "indicator": signal.indicator,
                    "signal_type": signal.signal_type.value,
                    "strength": _number_text(signal.strength),
                },
                timestamp=signal.timestamp,
            )
        )

    async def get_queue_stats(self) -> QueueStats:
        return QueueStats(
            queue_size=len(self._queue),
            is_running=self._running,
            batch_size=self.batch_size,
            batch_timeout_ms=self.batch_timeout_ms,
        )