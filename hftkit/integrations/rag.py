"""Single entry point bundling the knowledge-service client and event ingestion."""

from __future__ import annotations

from types import TracebackType
from typing import Optional

from hftkit.integrations.rag_client import RagClient, RagSettings
from hftkit.integrations.rag_ingestion import MarketEventIngestion
from hftkit.integrations.rag_types import (
    MarketEvent,
    PatternSearchQuery,
    PatternSearchResponse,
)
from hftkit.integrations.types import HealthStatus, KnowledgeQuery, KnowledgeResponse


class RagIntegration:
    """Queries the knowledge service and feeds it market events."""

    def __init__(self, settings: RagSettings) -> None:
        self._settings = settings
        self.client = RagClient(settings)
        self.ingestion = MarketEventIngestion(self.client)

    @property
    def config(self) -> RagSettings:
        return self._settings

    async def query_knowledge(self, query: KnowledgeQuery) -> KnowledgeResponse:
        return await self.client.query_documents(query)

    async def ingest_market_event(self, event: MarketEvent) -> None:
        await self.ingestion.ingest_event(event)

    async def health_check(self) -> HealthStatus:
        return await self.client.health_check()

    async def search_patterns(self, pattern_query: PatternSearchQuery) -> PatternSearchResponse:
        return await self.client.search_patterns(pattern_query)

    async def aclose(self) -> None:
        """Stop a running ingestion service, flushing its queue, then close the client."""
        stats = await self.ingestion.get_queue_stats()
        if stats.is_running:
            await self.ingestion.stop()
        await self.client.aclose()

    async def __aenter__(self) -> RagIntegration:
        return self

    async def __aexit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        await self.aclose()