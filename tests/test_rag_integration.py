import json
import uuid
from datetime import datetime, timezone

import httpx
import pytest
import respx

from hftkit.integrations.rag import RagIntegration
from hftkit.integrations.rag_client import RagSettings
from hftkit.integrations.rag_types import (
    MarketEvent,
    MarketEventType,
    PatternSearchQuery,
    PatternType,
    TimeFrame,
)
from hftkit.integrations.types import HealthStatus, KnowledgeQuery

BASE_URL = "http://localhost:8001"
STAMP = "2024-01-02T03:04:05Z"


def _settings() -> RagSettings:
    return RagSettings(
        server_url=BASE_URL,
        api_key="placeholder",
        timeout_ms=5000,
        max_retries=3,
        query_threshold=0.6,
        top_k=10,
    )


def _query() -> KnowledgeQuery:
    return KnowledgeQuery(
        query_id=uuid.uuid4(),
        query_text="btc momentum",
        symbol="BTC-USDT",
        context={},
        filters={"symbol": "BTC-USDT"},
        top_k=5,
        threshold=0.5,
        timestamp=datetime.now(timezone.utc),
    )


@pytest.mark.asyncio
async def test_config_is_the_given_settings():
    settings = _settings()
    async with RagIntegration(settings) as integration:
        assert integration.config is settings
        assert integration.client.base_url == BASE_URL


@pytest.mark.asyncio
async def test_query_knowledge_round_trip():
    query = _query()
    document = {
        "id": "doc-1",
        "content": "btc rallied",
        "metadata": {"source": "feed"},
        "score": 0.75,
        "timestamp": STAMP,
    }
    with respx.mock(base_url=BASE_URL) as router:
        route = router.post("/query").mock(
            return_value=httpx.Response(
                200,
                json={
                    "query": query.query_text,
                    "documents": [document],
                    "metadata": {},
                    "processing_time_ms": 12,
                },
            )
        )
        async with RagIntegration(_settings()) as integration:
            response = await integration.query_knowledge(query)
    sent = json.loads(route.calls.last.request.content)
    assert sent["query"] == query.query_text
    assert sent["filters"] == query.filters
    assert sent["top_k"] == query.top_k
    assert route.calls.last.request.headers["Authorization"] == "Bearer placeholder"
    assert [result.id for result in response.results] == ["doc-1"]
    assert response.results[0].content == document["content"]
    assert response.processing_time_ms == 12


@pytest.mark.asyncio
async def test_health_check_healthy():
    with respx.mock(base_url=BASE_URL) as router:
        router.get("/health").mock(
            return_value=httpx.Response(
                200,
                json={"status": "healthy", "timestamp": STAMP, "version": "1", "components": {}},
            )
        )
        async with RagIntegration(_settings()) as integration:
            status = await integration.health_check()
    assert status is HealthStatus.HEALTHY


@pytest.mark.asyncio
async def test_health_check_unhealthy_on_server_error():
    with respx.mock(base_url=BASE_URL) as router:
        router.get("/health").mock(return_value=httpx.Response(503, text="down"))
        async with RagIntegration(_settings()) as integration:
            status = await integration.health_check()
    assert status is HealthStatus.UNHEALTHY


@pytest.mark.asyncio
async def test_ingest_market_event_is_queued():
    event = MarketEvent(symbol="BTC-USDT", event_type=MarketEventType.NEWS, data={"headline": "x"})
    async with RagIntegration(_settings()) as integration:
        await integration.ingest_market_event(event)
        stats = await integration.ingestion.get_queue_stats()
    assert stats.queue_size == 1
    assert not stats.is_running


@pytest.mark.asyncio
async def test_search_patterns_round_trip():
    pattern_query = PatternSearchQuery(
        symbol="BTC-USDT",
        similarity_threshold=0.7,
        pattern_type=PatternType.TREND_REVERSAL,
        timeframe=TimeFrame.ONE_HOUR,
    )
    with respx.mock(base_url=BASE_URL) as router:
        route = router.post("/patterns/search").mock(
            return_value=httpx.Response(
                200,
                json={
                    "query_id": str(pattern_query.query_id),
                    "patterns": [],
                    "total_matches": 0,
                    "confidence_score": 0.4,
                    "processing_time_ms": 3,
                    "timestamp": STAMP,
                },
            )
        )
        async with RagIntegration(_settings()) as integration:
            response = await integration.search_patterns(pattern_query)
    sent = json.loads(route.calls.last.request.content)
    assert sent["pattern_type"] == "TrendReversal"
    assert sent["timeframe"] == "1h"
    assert response.query_id == pattern_query.query_id
    assert response.patterns == []
    assert response.total_matches == 0


@pytest.mark.asyncio
async def test_aclose_flushes_running_ingestion():
    event = MarketEvent(symbol="ETH-USDT", event_type=MarketEventType.TRADE, id="event-1")
    with respx.mock(base_url=BASE_URL) as router:
        route = router.post("/events/batch").mock(return_value=httpx.Response(200, json={}))
        integration = RagIntegration(_settings())
        integration.ingestion.batch_timeout_ms = 60_000
        await integration.ingestion.start()
        await integration.ingest_market_event(event)
        await integration.aclose()
    sent = [e for call in route.calls for e in json.loads(call.request.content)["events"]]
    assert [e["id"] for e in sent] == ["event-1"]
    assert not (await integration.ingestion.get_queue_stats()).is_running