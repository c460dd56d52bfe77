"""In-process channels carrying market events, with sync, async and threaded consumers."""

from __future__ import annotations

import asyncio
import threading
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from types import TracebackType
from typing import Callable, Optional, Union

from hftkit.market.types import Level2Update, OrderBookSnapshot, Tick

EventData = Union[Tick, Level2Update, OrderBookSnapshot, None]


class EventKind(str, Enum):
    TICK = "Tick"
    LEVEL2_UPDATE = "Level2Update"
    SNAPSHOT = "Snapshot"
    HEARTBEAT = "Heartbeat"


@dataclass(frozen=True)
class MarketEvent:
    """One message on a market data stream."""

    kind: EventKind
    data: EventData = None

    @classmethod
    def tick(cls, tick: Tick) -> MarketEvent:
        return cls(EventKind.TICK, tick)

    @classmethod
    def level2_update(cls, update: Level2Update) -> MarketEvent:
        return cls(EventKind.LEVEL2_UPDATE, update)

    @classmethod
    def snapshot(cls, snapshot: OrderBookSnapshot) -> MarketEvent:
        return cls(EventKind.SNAPSHOT, snapshot)

    @classmethod
    def heartbeat(cls) -> MarketEvent:
        return cls(EventKind.HEARTBEAT)


class StreamClosed(Exception):
    """Sending to a closed stream, or receiving from one that is closed and drained."""


class _Channel:
    """Unbounded multi-producer, multi-consumer FIFO that can be closed."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._items: deque[MarketEvent] = deque()
        self._closed = False
        self._watchers: list[threading.Event] = []

    def _notify_watchers(self, watchers: list[threading.Event]) -> None:
        for watcher in watchers:
            watcher.set()

    def put(self, event: MarketEvent) -> None:
        with self._cond:
            if self._closed:
                raise StreamClosed("stream is closed")
            self._items.append(event)
            self._cond.notify()
            watchers = list(self._watchers)
        self._notify_watchers(watchers)

    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify_all()
            watchers = list(self._watchers)
        self._notify_watchers(watchers)

    def try_get(self) -> Optional[MarketEvent]:
        with self._cond:
            if self._items:
                return self._items.popleft()
            if self._closed:
                raise StreamClosed("stream is closed")
            return None

    def get(self, timeout: Optional[float] = None) -> MarketEvent:
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while not self._items:
                if self._closed:
                    raise StreamClosed("stream is closed")
                if deadline is None:
                    self._cond.wait()
                    continue
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise TimeoutError("no market event arrived in time")
                self._cond.wait(remaining)
            return self._items.popleft()

    def watch(self, watcher: threading.Event) -> None:
        with self._cond:
            self._watchers.append(watcher)

    def unwatch(self, watcher: threading.Event) -> None:
        with self._cond:
            if watcher in self._watchers:
                self._watchers.remove(watcher)


class Sender:
    """Handle used to push events onto a stream."""

    def __init__(self, channel: _Channel) -> None:
        self._channel = channel

    def send(self, event: MarketEvent) -> None:
        """Queue an event; raises ``StreamClosed`` if the stream is closed."""
        self._channel.put(event)


class MarketDataStream:
    """An unbounded queue of market events with any number of senders."""

    def __init__(self) -> None:
        self._channel = _Channel()

    def sender(self) -> Sender:
        return Sender(self._channel)

    def close(self) -> None:
        """Refuse further sends; queued events can still be received."""
        self._channel.close()

    def try_recv(self) -> Optional[MarketEvent]:
        """Next event, or None if none is queued."""
        return self._channel.try_get()

    def recv(self) -> MarketEvent:
        """Block until an event arrives."""
        return self._channel.get()

    def recv_timeout(self, timeout: float) -> MarketEvent:
        """Block up to ``timeout`` seconds; raises ``TimeoutError`` if nothing arrives."""
        return self._channel.get(timeout)

    def into_async_stream(self) -> AsyncMarketStream:
        return AsyncMarketStream(self)


class AsyncMarketStream:
    """Async iterator over a stream, yielding heartbeats while it is idle.

    The first heartbeat is due immediately, later ones every ``heartbeat_interval``
    seconds. Iteration ends once the stream is closed and drained.
    """

    def __init__(
        self,
        stream: MarketDataStream,
        heartbeat_interval: float = 1.0,
        poll_interval: float = 0.001,
    ) -> None:
        if heartbeat_interval <= 0:
            raise ValueError("heartbeat interval must be positive")
        if poll_interval <= 0:
            raise ValueError("poll interval must be positive")
        self._channel = stream._channel
        self._interval = heartbeat_interval
        self._poll = poll_interval
        self._next_heartbeat = time.monotonic()

    def __aiter__(self) -> AsyncMarketStream:
        return self

    async def __anext__(self) -> MarketEvent:
        while True:
            try:
                event = self._channel.try_get()
            except StreamClosed:
                raise StopAsyncIteration from None
            if event is not None:
                return event
            now = time.monotonic()
            if now >= self._next_heartbeat:
                self._next_heartbeat += self._interval
                return MarketEvent.heartbeat()
            await asyncio.sleep(min(self._poll, self._next_heartbeat - now))


class StreamProcessor:
    """Runs a callback on a background thread for every event from its streams.

    When no stream delivers anything for ``heartbeat_timeout`` seconds the
    callback receives a heartbeat instead.
    """

    def __init__(self, heartbeat_timeout: float = 0.1) -> None:
        if heartbeat_timeout <= 0:
            raise ValueError("heartbeat timeout must be positive")
        self._streams: list[MarketDataStream] = []
        self._timeout = heartbeat_timeout
        self._thread: Optional[threading.Thread] = None
        self._stop_requested = threading.Event()
        self._wakeup = threading.Event()

    def add_stream(self, stream: MarketDataStream) -> None:
        self._streams.append(stream)

    def start(self, callback: Callable[[MarketEvent], None]) -> None:
        """Start processing; does nothing if already running."""
        if self._thread is not None:
            return
        self._stop_requested.clear()
        self._wakeup = threading.Event()
        channels = deque(stream._channel for stream in self._streams)
        self._thread = threading.Thread(
            target=self._run,
            args=(channels, callback, self._wakeup),
            name="market-stream-processor",
            daemon=True,
        )
        self._thread.start()

    def _next_ready(self, channels: deque[_Channel]) -> Optional[MarketEvent]:
        for _ in range(len(channels)):
            channel = channels[0]
            channels.rotate(-1)
            try:
                event = channel.try_get()
            except StreamClosed:
                continue
            if event is not None:
                return event
        return None

    def _run(
        self,
        channels: deque[_Channel],
        callback: Callable[[MarketEvent], None],
        wakeup: threading.Event,
    ) -> None:
        for channel in channels:
            channel.watch(wakeup)
        try:
            while not self._stop_requested.is_set():
                wakeup.clear()
                event = self._next_ready(channels)
                if event is not None:
                    callback(event)
                    continue
                if not wakeup.wait(self._timeout) and not self._stop_requested.is_set():
                    callback(MarketEvent.heartbeat())
        finally:
            for channel in channels:
                channel.unwatch(wakeup)

    def stop(self) -> None:
        """Signal the worker to finish and wait for it."""
        self._stop_requested.set()
        self._wakeup.set()
        thread, self._thread = self._thread, None
        if thread is not None and thread is not threading.current_thread():
            thread.join()

    def __enter__(self) -> StreamProcessor:
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> bool:
        self.stop()
        return False