"""Asynchronous HTTP client for the retrieval-augmented knowledge service."""

from __future__ import annotations

import asyncio
import json
import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from types import TracebackType
from typing import Any, Callable, Mapping, Optional

import httpx

from hftkit.integrations.rag_types import (
    MarketEvent,
    MarketRegimeQuery,
    MarketRegimeResponse,
    NewsAnalysisRequest,
    NewsAnalysisResponse,
    PatternSearchQuery,
    PatternSearchResponse,
    RagHealthResponse,
    RagQueryRequest,
    RagQueryResponse,
    _parse_timestamp,
)
from hftkit.integrations.types import (
    HealthStatus,
    KnowledgeQuery,
    KnowledgeResponse,
    _format_timestamp,
)

logger = logging.getLogger(__name__)

_USER_AGENT = "HFT-Integrations/1.0"
_HEALTHY_WITHIN_S = 1.0


class RagError(Exception):
    """A request to the knowledge service failed or returned something unusable."""


@dataclass
class RagSettings:
    server_url: str
    api_key: Optional[str] = None
    timeout_ms: int = 5000
    max_retries: int = 3
    query_threshold: float = 0.6
    top_k: int = 10


@dataclass
class KnowledgeStats:
    total_documents: int
    total_events: int
    total_patterns: int
    storage_size_mb: float
    last_update: datetime
    symbols_covered: list[str]

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> KnowledgeStats:
        return cls(
            total_documents=int(data["total_documents"]),
            total_events=int(data["total_events"]),
            total_patterns=int(data["total_patterns"]),
            storage_size_mb=float(data["storage_size_mb"]),
            last_update=_parse_timestamp(data["last_update"]),
            symbols_covered=[str(symbol) for symbol in data["symbols_covered"]],
        )


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, datetime):
        return _format_timestamp(value)
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    raise TypeError(f"cannot serialise {type(value).__name__}")


class RagClient:
    """Talks JSON over HTTP to the knowledge service."""

    def __init__(self, settings: RagSettings) -> None:
        self.settings = settings
        self.base_url = settings.server_url.rstrip("/")
        self._http = httpx.AsyncClient(
            timeout=httpx.Timeout(settings.timeout_ms / 1000.0),
            headers={"User-Agent": _USER_AGENT},
        )
        logger.info("Initializing RAG client for server: %s", self.base_url)

    async def __aenter__(self) -> RagClient:
        return self

    async def __aexit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    def _url(self, endpoint: str) -> str:
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    async def _request(
        self,
        method: str,
        endpoint: str,
        payload: Any = None,
        parse: Optional[Callable[[Any], Any]] = None,
    ) -> Any:
        url = self._url(endpoint)
        headers: dict[str, str] = {}
        if self.settings.api_key is not None:
            headers["Authorization"] = f"Bearer {self.settings.api_key}"
        body: Optional[str] = None
        if method == "POST":
            headers["Content-Type"] = "application/json"
            body = json.dumps(payload, default=_json_default)
            logger.debug("Sending RAG request to %s: %s", url, body)
        else:
            logger.debug("Sending RAG GET request to %s", url)

        try:
            response = await self._http.request(method, url, content=body, headers=headers)
        except httpx.HTTPError as exc:
            raise RagError(f"RAG request to {url} failed: {exc}") from exc

        if not response.is_success:
            raise RagError(
                f"RAG API error {response.status_code} {response.reason_phrase}: {response.text}"
            )

        text = response.text
        logger.debug("Received RAG response: %s", text)
        label = "RAG response" if method == "POST" else "RAG GET response"
        try:
            data = json.loads(text)
            return data if parse is None else parse(data)
        except (ValueError, KeyError, TypeError) as exc:
            raise RagError(f"Failed to parse {label}: {exc}") from exc

    async def query_documents(self, query: KnowledgeQuery) -> KnowledgeResponse:
        """Run a knowledge query, retrying with a growing delay on failure."""
        started = time.monotonic()
        request = RagQueryRequest.from_knowledge_query(query)
        logger.info("Querying RAG for: %s", request.query)

        attempts = 0
        while True:
            try:
                response = await self._request(
                    "POST", "/query", request.to_dict(), RagQueryResponse.from_dict
                )
            except RagError as exc:
                attempts += 1
                if attempts >= self.settings.max_retries:
                    logger.error("RAG query failed after %d attempts: %s", attempts, exc)
                    raise
                logger.warning("RAG query attempt %d failed: %s, retrying...", attempts, exc)
                await asyncio.sleep(0.1 * attempts)
                continue
            elapsed_ms = int((time.monotonic() - started) * 1000)
            logger.info(
                "RAG query completed in %dms, found %d documents",
                elapsed_ms,
                len(response.documents),
            )
            return response.to_knowledge_response()

    async def search_patterns(self, pattern_query: PatternSearchQuery) -> PatternSearchResponse:
        started = time.monotonic()
        logger.info(
            "Searching for %s patterns in symbol %s",
            pattern_query.pattern_type.value,
            pattern_query.symbol,
        )
        response = await self._request(
            "POST", "/patterns/search", pattern_query.to_dict(), PatternSearchResponse.from_dict
        )
        logger.info(
            "Pattern search completed in %dms, found %d patterns",
            int((time.monotonic() - started) * 1000),
            len(response.patterns),
        )
        return response

    async def analyze_news(self, news_request: NewsAnalysisRequest) -> NewsAnalysisResponse:
        started = time.monotonic()
        logger.info("Analyzing %d news items", len(news_request.news_items))
        response = await self._request(
            "POST", "/news/analyze", news_request.to_dict(), NewsAnalysisResponse.from_dict
        )
        logger.info(
            "News analysis completed in %dms, overall sentiment: %.2f",
            int((time.monotonic() - started) * 1000),
            response.overall_sentiment,
        )
        return response

    async def get_market_regime(self, regime_query: MarketRegimeQuery) -> MarketRegimeResponse:
        started = time.monotonic()
        logger.info("Analyzing market regime for %s", regime_query.symbol)
        response = await self._request(
            "POST", "/regime/analyze", regime_query.to_dict(), MarketRegimeResponse.from_dict
        )
        logger.info(
            "Market regime analysis completed in %dms, current regime: %s",
            int((time.monotonic() - started) * 1000),
            response.current_regime.name,
        )
        return response

    async def ingest_document(self, content: str, metadata: Mapping[str, str]) -> str:
        """Store a document and return its id; raises unless it was accepted."""
        logger.debug("Ingesting document with %d characters", len(content))

        def parse(data: Any) -> tuple[str, str]:
            return str(data["id"]), str(data["status"])

        document_id, status = await self._request(
            "POST", "/documents", {"content": content, "metadata": dict(metadata)}, parse
        )
        if status not in ("accepted", "success"):
            raise RagError(f"Document indexing failed with status: {status}")
        logger.info("Document ingested with ID: %s (status: %s)", document_id, status)
        return document_id

    async def ingest_market_event(self, event: MarketEvent) -> None:
        logger.debug("Ingesting market event: %s for %s", event.event_type.value, event.symbol)
        await self._request("POST", "/events/ingest", {"events": [event.to_dict()]})
        logger.debug("Market event ingested successfully")

    async def batch_ingest_events(self, events: list[MarketEvent]) -> None:
        logger.info("Batch ingesting %d market events", len(events))
        await self._request(
            "POST", "/events/batch", {"events": [event.to_dict() for event in events]}
        )
        logger.info("Batch ingestion completed")

    async def health_check(self) -> HealthStatus:
        """Healthy only if the service says so within a second; never raises."""
        started = time.monotonic()
        logger.debug("Performing RAG health check")
        try:
            health = await self._request("GET", "/health", parse=RagHealthResponse.from_dict)
        except RagError as exc:
            logger.error("RAG health check failed: %s", exc)
            return HealthStatus.UNHEALTHY
        elapsed = time.monotonic() - started
        if health.status != "healthy":
            logger.warning("RAG reports unhealthy status: %s", health.status)
            return HealthStatus.DEGRADED
        if elapsed < _HEALTHY_WITHIN_S:
            logger.info("RAG health check passed in %.3fs", elapsed)
            return HealthStatus.HEALTHY
        logger.warning("RAG health check slow: %.3fs", elapsed)
        return HealthStatus.DEGRADED

    async def get_system_status(self) -> Any:
        logger.debug("Fetching RAG system status")
        return await self._request("GET", "/status")

    async def search_similar_events(
        self, reference_event: MarketEvent, limit: int
    ) -> list[MarketEvent]:
        logger.debug("Searching for events similar to %s", reference_event.event_type.value)
        payload = {
            "reference_event": reference_event.to_dict(),
            "limit": limit,
            "similarity_threshold": self.settings.query_threshold,
        }

        def parse(data: Any) -> list[MarketEvent]:
            return [MarketEvent.from_dict(item) for item in data["events"]]

        events = await self._request("POST", "/events/similar", payload, parse)
        logger.info("Found %d similar events", len(events))
        return events

    async def get_knowledge_stats(self) -> KnowledgeStats:
        logger.debug("Fetching knowledge base statistics")
        return await self._request("GET", "/stats", parse=KnowledgeStats.from_dict)