# hftkit

Building blocks for latency-sensitive trading code. The package is a library; it has no command-line entry point.

- **`hftkit.latency`** measures where time goes.
  - `metrics.LatencyMetrics` keeps a running count, sum, min, max, mean, variance and standard deviation. `metrics.PerformanceStats` and `metrics.Percentile` are plain summary records.
  - `histogram.Histogram` is a high dynamic range histogram. It answers percentile queries, from p50 to p99.99, and supports merging, copying and CSV export.
  - `cycle_timer.CycleProfiler` records latencies keyed by point name. It works against a `CycleTimer` that is either calibrated against the wall clock or given a known frequency. Each point keeps an `AtomicLatencyMetrics` with power-of-two buckets and reports `LatencySnapshot`s.
- **`hftkit.market`** is market data plumbing.
  - `types` defines `Tick`, `Level2Update`, `OrderBookSnapshot`, and `MarketSummary` (OHLC, volume and VWAP).
  - `snapshot.SnapshotManager` keeps per-symbol books up to date from level-2 updates.
  - `stream.MarketDataStream`, `stream.AsyncMarketStream` and `stream.StreamProcessor` carry `MarketEvent`s from producers to consumers.
  - `feed.MarketDataFeed` ties these together per symbol.
- **`hftkit.integrations`** talks to a retrieval/knowledge service.
  - `rag_client.RagClient` is an async `httpx` client for that service.
  - `rag_ingestion.MarketEventIngestion` batches events before sending them.
  - `rag.RagIntegration` combines the client and the ingestion queue.
  - `types` and `rag_types` hold the records exchanged with the service.

All durations are plain integers of nanoseconds, unless a method name says otherwise (for example `avg_latency_us`).

## Running statistics and histograms

```python
from hftkit.latency.histogram import Histogram
from hftkit.latency.metrics import LatencyMetrics

metrics = LatencyMetrics()
histogram = Histogram()          # 3 significant digits, grows to any 64-bit value
for ns in (1_200, 950, 4_000):
    metrics.record(ns)
    histogram.record(ns)

print(metrics.count(), metrics.min(), metrics.max(), metrics.mean(), metrics.std_dev())
print(histogram.percentiles().p99_us())
histogram.export_csv("percentiles.csv")   # rows: percentile,value_ns
```

`Histogram.with_bounds(lowest, highest, precision)` builds a histogram with a fixed range. Values that fall outside that range are dropped silently.

## Counter-based profiling

```python
from hftkit.latency.cycle_timer import CycleProfiler, cycle_measure, cycle_time, global_profiler

profiler = CycleProfiler.with_frequency(1_000_000_000)  # skip calibration
with cycle_measure(profiler, "risk_check"):
    run_risk_check()
profiler.record_latency("order_entry", 1_500)

snapshot = profiler.get_metrics("risk_check")
print(snapshot.count, snapshot.mean_nanos(), snapshot.percentile(99.0))
profiler.export_csv("latency.csv")

with cycle_time("global_point"):
    do_work()
print(global_profiler().get_metrics("global_point"))
```

A `CycleProfiler()` or `CycleTimer()` built without a frequency calibrates itself first. By default this takes five rounds of 100 ms. The shared profiler returned by `global_profiler()` is calibrated the first time it is used.

## Market data

`MarketDataFeed` publishes with three methods:

- `publish_tick`
- `publish_level2_update`
- `publish_snapshot`

Each event goes to the stream of its symbol, if that symbol was registered with `add_symbol`. It also goes to the global sender set with `set_global_sender`, if there is one.

Read the current state back with `get_snapshot(symbol)` and `get_summary(symbol)`; both return copies. `OrderBookSnapshot` offers `best_bid()`, `best_ask()`, `spread()` and `mid_price()`. `cleanup_old_data()` forgets books and summaries that have not been touched for 24 hours.

`await feed.start_heartbeat(interval)` starts a task that sends heartbeats to the global sender. The task stops once that stream is closed.

Streams can be read in three ways:

- **Synchronous.** Use `try_recv()`, `recv()` or `recv_timeout(seconds)`.
  - `try_recv()` returns `None` when nothing is queued.
  - `recv_timeout()` raises `TimeoutError` when nothing arrives in time.
  - Reading a stream that is closed and empty raises `StreamClosed`.
- **Asynchronous.** Iterate `stream.into_async_stream()` with `async for`. It yields heartbeats while the stream is idle and ends once the stream is closed and drained.
- **Background thread.** `StreamProcessor` calls a callback for every event. When nothing arrives within its timeout, the callback gets a heartbeat instead. It is a context manager, and leaving the block stops the thread.

## Knowledge-service client

Build a `RagSettings` with these fields:

- `server_url`
- `api_key` (optional; sent as a bearer token)
- `timeout_ms` (default 5000)
- `max_retries` (default 3)
- `query_threshold` (default 0.6)
- `top_k` (default 10)

Pass it to `RagClient` or `RagIntegration`; both are async context managers.

```python
from hftkit.integrations.rag import RagIntegration
from hftkit.integrations.rag_client import RagSettings
from hftkit.integrations.types import KnowledgeQuery

async with RagIntegration(RagSettings("http://localhost:8001", api_key="placeholder")) as rag:
    status = await rag.health_check()
    answer = await rag.query_knowledge(KnowledgeQuery("BTC volatility", top_k=5, threshold=0.6))
```

`query_documents` retries failed requests up to `max_retries` times. The delay before each retry grows by 100 ms.

`health_check()` never raises:

- an unreachable or failing service is reported as `HealthStatus.UNHEALTHY`;
- a service that does not report "healthy", or answers slower than one second, is reported as `DEGRADED`.

Every other failure raises `RagError`.

`MarketEventIngestion` queues events and sends them in batches, 50 events every 5000 ms by default, once `start()` has been awaited. When the queue reaches twice the batch size, a batch is sent at once. `stop()` sends whatever is still queued. Delivery failures are logged, not raised.

## What is not included

- No command-line tool, server or persistent storage.
- No connection to an exchange or to a live market data source: events are whatever your code publishes.
- Latency profiling is available only through `CycleProfiler`, which keys measurements by name. There is no profiler that hands out measurement ids or keeps a full `Histogram` per point. To get percentiles with that precision, record into a `Histogram` yourself.