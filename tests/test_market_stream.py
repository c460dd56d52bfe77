import queue
import threading
import time

import pytest

from hftkit.market.stream import (
    AsyncMarketStream,
    EventKind,
    MarketDataStream,
    MarketEvent,
    StreamClosed,
    StreamProcessor,
)
from hftkit.market.types import Level2Update, OrderBookSnapshot, Side, Tick


def _tick(symbol="BTC", price=100.0):
    return Tick(symbol, price, 1.0, Side.BUY)


def test_event_constructors_set_kind_and_data():
    tick = _tick()
    update = Level2Update.add("BTC", Side.BUY, 1.0, 1.0)
    book = OrderBookSnapshot("BTC")
    assert MarketEvent.tick(tick) == MarketEvent(EventKind.TICK, tick)
    assert MarketEvent.level2_update(update).kind is EventKind.LEVEL2_UPDATE
    assert MarketEvent.snapshot(book).data is book
    assert MarketEvent.heartbeat().data is None
    assert MarketEvent.heartbeat().kind is EventKind.HEARTBEAT


def test_try_recv_on_empty_stream_returns_none():
    assert MarketDataStream().try_recv() is None


def test_events_arrive_in_order():
    stream = MarketDataStream()
    sender = stream.sender()
    events = [MarketEvent.tick(_tick(price=p)) for p in (1.0, 2.0, 3.0)]
    for event in events:
        sender.send(event)
    assert [stream.recv() for _ in events] == events
    assert stream.try_recv() is None


def test_recv_timeout_raises_when_nothing_arrives():
    with pytest.raises(TimeoutError):
        MarketDataStream().recv_timeout(0.01)


def test_recv_waits_for_other_thread():
    stream = MarketDataStream()
    event = MarketEvent.tick(_tick())
    timer = threading.Timer(0.02, stream.sender().send, args=(event,))
    timer.start()
    try:
        assert stream.recv_timeout(2.0) == event
    finally:
        timer.join()


def test_closed_stream_drains_then_raises():
    stream = MarketDataStream()
    event = MarketEvent.heartbeat()
    stream.sender().send(event)
    stream.close()
    assert stream.try_recv() == event
    with pytest.raises(StreamClosed):
        stream.try_recv()
    with pytest.raises(StreamClosed):
        stream.recv()


def test_send_to_closed_stream_raises():
    stream = MarketDataStream()
    sender = stream.sender()
    stream.close()
    with pytest.raises(StreamClosed):
        sender.send(MarketEvent.heartbeat())


@pytest.mark.asyncio
async def test_async_stream_yields_queued_events_then_ends():
    stream = MarketDataStream()
    event = MarketEvent.tick(_tick())
    stream.sender().send(event)
    stream.close()
    received = [item async for item in stream.into_async_stream()]
    assert received == [event]


@pytest.mark.asyncio
async def test_async_stream_heartbeats_when_idle():
    stream = MarketDataStream()
    events = AsyncMarketStream(stream, heartbeat_interval=0.01)
    first = await anext(events)
    second = await anext(events)
    assert first.kind is EventKind.HEARTBEAT
    assert second.kind is EventKind.HEARTBEAT


def test_async_stream_rejects_bad_interval():
    with pytest.raises(ValueError):
        AsyncMarketStream(MarketDataStream(), heartbeat_interval=0)


def test_processor_delivers_events_from_all_streams():
    streams = [MarketDataStream(), MarketDataStream()]
    received = queue.Queue()
    with StreamProcessor() as processor:
        for stream in streams:
            processor.add_stream(stream)
        processor.start(received.put)
        streams[0].sender().send(MarketEvent.tick(_tick("BTC")))
        streams[1].sender().send(MarketEvent.tick(_tick("ETH")))
        symbols = set()
        deadline = time.monotonic() + 5
        while len(symbols) < 2 and time.monotonic() < deadline:
            event = received.get(timeout=5)
            if event.kind is EventKind.TICK:
                symbols.add(event.data.symbol)
    assert symbols == {"BTC", "ETH"}


def test_processor_sends_heartbeat_when_idle():
    received = queue.Queue()
    with StreamProcessor(heartbeat_timeout=0.01) as processor:
        processor.add_stream(MarketDataStream())
        processor.start(received.put)
        event = received.get(timeout=5)
    assert event.kind is EventKind.HEARTBEAT


def test_processor_stops_delivering_after_stop():
    stream = MarketDataStream()
    received = queue.Queue()
    processor = StreamProcessor(heartbeat_timeout=0.01)
    processor.add_stream(stream)
    processor.start(received.put)
    processor.stop()
    while not received.empty():
        received.get_nowait()
    stream.sender().send(MarketEvent.tick(_tick()))
    time.sleep(0.05)
    assert received.empty()
    assert stream.try_recv().kind is EventKind.TICK