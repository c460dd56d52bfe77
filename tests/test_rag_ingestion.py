import asyncio
import json
from datetime import datetime, timezone
from decimal import Decimal

import httpx
import pytest
import respx

from hftkit.integrations.rag_client import RagClient, RagSettings
from hftkit.integrations.rag_ingestion import (
    AlertType,
    ExecutionType,
    MarketEventIngestion,
    PriceAlert,
    TechnicalSignal,
    TechnicalSignalType,
    TradeExecution,
    VolumeSpike,
)
from hftkit.integrations.rag_types import MarketEvent, MarketEventType
from hftkit.integrations.types import MarketContext

BASE_URL = "http://localhost:8001"
MOMENT = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


def _settings() -> RagSettings:
    return RagSettings(
        server_url=BASE_URL,
        api_key=None,
        timeout_ms=5000,
        max_retries=3,
        query_threshold=0.6,
        top_k=10,
    )


def _event(n: int) -> MarketEvent:
    return MarketEvent(
        symbol="BTC-USDT",
        event_type=MarketEventType.TRADE,
        data={"test": "data"},
        id=f"test-{n}",
    )


def _batches(route) -> list[list[dict]]:
    return [json.loads(call.request.content)["events"] for call in route.calls]


def _sent(route) -> list[dict]:
    return [event for batch in _batches(route) for event in batch]


@pytest.mark.asyncio
async def test_ingestion_creation():
    async with RagClient(_settings()) as client:
        ingestion = MarketEventIngestion(client)
        stats = await ingestion.get_queue_stats()
        assert stats.queue_size == 0
        assert not stats.is_running
        assert stats.batch_size == 50
        assert stats.batch_timeout_ms == 5000


@pytest.mark.asyncio
async def test_event_queuing():
    async with RagClient(_settings()) as client:
        ingestion = MarketEventIngestion(client)
        await ingestion.ingest_event(_event(1))
        stats = await ingestion.get_queue_stats()
        assert stats.queue_size == 1


def test_invalid_batch_size_rejected():
    client = RagClient(_settings())
    with pytest.raises(ValueError):
        MarketEventIngestion(client, batch_size=0)
    asyncio.run(client.aclose())


@pytest.mark.asyncio
async def test_full_queue_sends_one_batch_immediately():
    with respx.mock(base_url=BASE_URL) as router:
        route = router.post("/events/batch").mock(return_value=httpx.Response(200, json={}))
        async with RagClient(_settings()) as client:
            ingestion = MarketEventIngestion(client, batch_size=2)
            for n in range(4):
                await ingestion.ingest_event(_event(n))
            stats = await ingestion.get_queue_stats()
    assert route.call_count == 1
    assert [event["id"] for event in _sent(route)] == ["test-0", "test-1"]
    assert stats.queue_size == 2


@pytest.mark.asyncio
async def test_stop_flushes_remaining_events():
    with respx.mock(base_url=BASE_URL) as router:
        route = router.post("/events/batch").mock(return_value=httpx.Response(200, json={}))
        async with RagClient(_settings()) as client:
            ingestion = MarketEventIngestion(client)
            for n in range(3):
                await ingestion.ingest_event(_event(n))
            await ingestion.stop()
            stats = await ingestion.get_queue_stats()
    assert [event["id"] for event in _sent(route)] == ["test-0", "test-1", "test-2"]
    assert stats.queue_size == 0


@pytest.mark.asyncio
async def test_start_and_stop_toggle_running():
    async with RagClient(_settings()) as client:
        ingestion = MarketEventIngestion(client)
        await ingestion.start()
        await ingestion.start()
        assert (await ingestion.get_queue_stats()).is_running
        await ingestion.stop()
        assert not (await ingestion.get_queue_stats()).is_running


@pytest.mark.asyncio
async def test_background_task_sends_in_batches():
    with respx.mock(base_url=BASE_URL) as router:
        route = router.post("/events/batch").mock(return_value=httpx.Response(200, json={}))
        async with RagClient(_settings()) as client:
            ingestion = MarketEventIngestion(client, batch_size=2, batch_timeout_ms=10)
            for n in range(3):
                await ingestion.ingest_event(_event(n))
            await ingestion.start()
            for _ in range(200):
                if (await ingestion.get_queue_stats()).queue_size == 0:
                    break
                await asyncio.sleep(0.01)
            drained = await ingestion.get_queue_stats()
            await ingestion.stop()
            stopped = await ingestion.get_queue_stats()
    assert drained.queue_size == 0
    assert drained.is_running
    assert not stopped.is_running
    assert [len(batch) for batch in _batches(route)] == [2, 1]
    assert [event["id"] for event in _sent(route)] == ["test-0", "test-1", "test-2"]


@pytest.mark.asyncio
async def test_delivery_failure_is_not_raised():
    with respx.mock(base_url=BASE_URL) as router:
        route = router.post("/events/batch").mock(return_value=httpx.Response(500, text="boom"))
        async with RagClient(_settings()) as client:
            ingestion = MarketEventIngestion(client)
            await ingestion.ingest_event(_event(1))
            await ingestion.stop()
            stats = await ingestion.get_queue_stats()
    assert route.call_count == 1
    assert stats.queue_size == 0


@pytest.mark.asyncio
async def test_trade_execution_event():
    trade = TradeExecution(
        trade_id="trade-1",
        order_id="order-1",
        symbol="BTC-USDT",
        side="buy",
        quantity=Decimal("1.5"),
        price=Decimal("42000"),
        fee=Decimal("0.1"),
        execution_type=ExecutionType.LIMIT,
        timestamp=MOMENT,
    )
    with respx.mock(base_url=BASE_URL) as router:
        route = router.post("/events/batch").mock(return_value=httpx.Response(200, json={}))
        async with RagClient(_settings()) as client:
            ingestion = MarketEventIngestion(client)
            await ingestion.ingest_trade_execution(trade)
            queued = await ingestion.get_queue_stats()
            await ingestion.stop()
            stats = await ingestion.get_queue_stats()
    assert queued.queue_size == 1
    assert stats.queue_size == 0
    (event,) = _sent(route)
    assert event["event_type"] == "Trade"
    assert event["symbol"] == "BTC-USDT"
    assert event["metadata"] == {
        "trade_id": "trade-1",
        "order_id": "order-1",
        "execution_type": "Limit",
    }
    assert event["data"]["quantity"] == 1.5
    assert event["data"]["execution_type"] == "Limit"


@pytest.mark.asyncio
async def test_price_alert_event():
    alert = PriceAlert(
        alert_id="alert-1",
        symbol="ETH-USDT",
        alert_type=AlertType.PRICE_ABOVE,
        threshold=Decimal("100.5"),
        current_price=Decimal("101"),
        message="above",
        timestamp=MOMENT,
    )
    with respx.mock(base_url=BASE_URL) as router:
        route = router.post("/events/batch").mock(return_value=httpx.Response(200, json={}))
        async with RagClient(_settings()) as client:
            ingestion = MarketEventIngestion(client)
            await ingestion.ingest_price_alert(alert)
            queued = await ingestion.get_queue_stats()
            await ingestion.stop()
            stats = await ingestion.get_queue_stats()
    assert queued.queue_size == 1
    assert stats.queue_size == 0
    (event,) = _sent(route)
    assert event["event_type"] == "Alert"
    assert event["metadata"] == {"alert_type": "PriceAbove", "threshold": "100.5"}
    assert event["data"]["message"] == "above"


@pytest.mark.asyncio
async def test_volume_spike_event():
    spike = VolumeSpike(
        spike_id="spike-1",
        symbol="BTC-USDT",
        normal_volume=Decimal("10"),
        spike_volume=Decimal("25"),
        spike_ratio=2.5,
        duration_seconds=30,
        timestamp=MOMENT,
    )
    with respx.mock(base_url=BASE_URL) as router:
        route = router.post("/events/batch").mock(return_value=httpx.Response(200, json={}))
        async with RagClient(_settings()) as client:
            ingestion = MarketEventIngestion(client)
            await ingestion.ingest_volume_spike(spike)
            queued = await ingestion.get_queue_stats()
            await ingestion.stop()
            stats = await ingestion.get_queue_stats()
    assert queued.queue_size == 1
    assert stats.queue_size == 0
    (event,) = _sent(route)
    assert event["event_type"] == "VolumeSpike"
    assert event["metadata"] == {"spike_ratio": "2.5", "duration": "30"}


@pytest.mark.asyncio
async def test_technical_signal_event():
    signal = TechnicalSignal(
        signal_id="sig-1",
        symbol="BTC-USDT",
        indicator="RSI",
        signal_type=TechnicalSignalType.OVERSOLD,
        value=25.0,
        strength=0.8,
        description="oversold",
        timestamp=MOMENT,
    )
    with respx.mock(base_url=BASE_URL) as router:
        route = router.post("/events/batch").mock(return_value=httpx.Response(200, json={}))
        async with RagClient(_settings()) as client:
            ingestion = MarketEventIngestion(client)
            await ingestion.ingest_technical_signal(signal)
            queued = await ingestion.get_queue_stats()
            await ingestion.stop()
            stats = await ingestion.get_queue_stats()
    assert queued.queue_size == 1
    assert stats.queue_size == 0
    (event,) = _sent(route)
    assert event["event_type"] == "TechnicalIndicator"
    assert event["metadata"] == {
        "indicator": "RSI",
        "signal_type": "Oversold",
        "strength": "0.8",
    }


@pytest.mark.asyncio
async def test_market_context_event():
    context = MarketContext(
        symbol="BTC-USDT",
        current_price=Decimal("42000"),
        bid=Decimal("41999"),
        ask=Decimal("42001"),
        volume_24h=Decimal("1000"),
        change_24h=Decimal("1.5"),
        volatility=None,
        order_book_depth=None,
        timestamp=MOMENT,
    )
    with respx.mock(base_url=BASE_URL) as router:
        route = router.post("/events/batch").mock(return_value=httpx.Response(200, json={}))
        async with RagClient(_settings()) as client:
            ingestion = MarketEventIngestion(client)
            await ingestion.ingest_market_context(context)
            queued = await ingestion.get_queue_stats()
            await ingestion.stop()
            stats = await ingestion.get_queue_stats()
    assert queued.queue_size == 1
    assert stats.queue_size == 0
    (event,) = _sent(route)
    assert event["event_type"] == "Quote"
    assert event["symbol"] == "BTC-USDT"
    assert event["data"]["bid"] == 41999.0