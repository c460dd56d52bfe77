"""Wire records of the retrieval-augmented knowledge service.

Each record converts to and from the JSON shapes the service speaks:
enum members travel as their string values, timestamps as RFC 3339 in UTC,
identifiers as strings and decimal amounts as floats.
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Optional

from hftkit.integrations.types import (
    KnowledgeQuery,
    KnowledgeResponse,
    KnowledgeResult,
    MarketContext,
    _format_timestamp,
)

_TIMESTAMP = re.compile(
    r"(\d{4}-\d{2}-\d{2})[Tt ](\d{2}:\d{2}:\d{2})(?:\.(\d+))?(Z|z|[+-]\d{2}:\d{2})"
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


def _parse_timestamp(value: Any) -> datetime:
    """Parse an RFC 3339 timestamp, keeping at most microsecond precision."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    match = _TIMESTAMP.fullmatch(str(value).strip())
    if match is None:
        raise ValueError(f"invalid timestamp: {value!r}")
    date, clock, fraction, zone = match.groups()
    offset = "+00:00" if zone in ("Z", "z") else zone
    micros = int((fraction or "0")[:6].ljust(6, "0"))
    moment = datetime.fromisoformat(f"{date}T{clock}{offset}").replace(microsecond=micros)
    return moment.astimezone(timezone.utc)


def _string_map(value: Mapping[str, Any]) -> dict[str, str]:
    return {str(key): str(item) for key, item in value.items()}


def _float_map(value: Mapping[str, Any]) -> dict[str, float]:
    return {str(key): float(item) for key, item in value.items()}


@dataclass
class RagQueryRequest:
    query: str
    filters: Optional[dict[str, str]] = None
    top_k: Optional[int] = None
    threshold: Optional[float] = None

    @classmethod
    def from_knowledge_query(cls, query: KnowledgeQuery) -> RagQueryRequest:
        return cls(
            query=query.query_text,
            filters=dict(query.filters),
            top_k=query.top_k,
            threshold=query.threshold,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "query": self.query,
            "filters": None if self.filters is None else dict(self.filters),
            "top_k": self.top_k,
            "threshold": self.threshold,
        }


@dataclass
class RagDocumentResponse:
    id: str
    content: str
    metadata: dict[str, str]
    score: float
    timestamp: datetime

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RagDocumentResponse:
        return cls(
            id=str(data["id"]),
            content=str(data["content"]),
            metadata=_string_map(data["metadata"]),
            score=float(data["score"]),
            timestamp=_parse_timestamp(data["timestamp"]),
        )


@dataclass
class RagQueryResponse:
    query: str
    documents: list[RagDocumentResponse]
    metadata: Any
    processing_time_ms: int

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RagQueryResponse:
        return cls(
            query=str(data["query"]),
            documents=[RagDocumentResponse.from_dict(doc) for doc in data["documents"]],
            metadata=data["metadata"],
            processing_time_ms=int(data["processing_time_ms"]),
        )

    def to_knowledge_response(self) -> KnowledgeResponse:
        """Convert to a knowledge response with a fresh query id."""
        return KnowledgeResponse(
            query_id=uuid.uuid4(),
            results=[
                KnowledgeResult(
                    id=doc.id,
                    content=doc.content,
                    score=doc.score,
                    metadata=dict(doc.metadata),
                    timestamp=doc.timestamp,
                )
                for doc in self.documents
            ],
            total_score=0.0,
            processing_time_ms=self.processing_time_ms,
        )


class MarketEventType(str, Enum):
    TRADE = "Trade"
    QUOTE = "Quote"
    ORDER_BOOK = "OrderBook"
    NEWS = "News"
    SIGNAL = "Signal"
    ALERT = "Alert"
    PRICE_MOVEMENT = "PriceMovement"
    VOLUME_SPIKE = "VolumeSpike"
    TECHNICAL_INDICATOR = "TechnicalIndicator"


@dataclass
class MarketEvent:
    """A market occurrence stored in the knowledge base."""

    symbol: str
    event_type: MarketEventType
    data: Any = None
    metadata: dict[str, str] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=_utcnow)
    id: str = field(default_factory=_new_id)

    @classmethod
    def from_market_context(cls, context: MarketContext) -> MarketEvent:
        depth = context.order_book_depth
        return cls(
            symbol=context.symbol,
            event_type=MarketEventType.QUOTE,
            data={
                "current_price": float(context.current_price),
                "bid": float(context.bid),
                "ask": float(context.ask),
                "volume_24h": float(context.volume_24h),
                "change_24h": float(context.change_24h),
                "volatility": context.volatility,
                "order_book_depth": None if depth is None else depth.to_dict(),
            },
            timestamp=context.timestamp,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": _format_timestamp(self.timestamp),
            "event_type": self.event_type.value,
            "symbol": self.symbol,
            "data": self.data,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> MarketEvent:
        return cls(
            id=str(data["id"]),
            timestamp=_parse_timestamp(data["timestamp"]),
            event_type=MarketEventType(data["event_type"]),
            symbol=str(data["symbol"]),
            data=data["data"],
            metadata=_string_map(data["metadata"]),
        )


class PatternType(str, Enum):
    PRICE_PATTERN = "PricePattern"
    VOLUME_PATTERN = "VolumePattern"
    TECHNICAL_INDICATOR_PATTERN = "TechnicalIndicatorPattern"
    NEWS_PATTERN = "NewsPattern"
    MARKET_REGIME_CHANGE = "MarketRegimeChange"
    VOLATILITY_CLUSTER = "VolatilityCluster"
    TREND_REVERSAL = "TrendReversal"
    BREAKOUT_PATTERN = "BreakoutPattern"


class TimeFrame(str, Enum):
    ONE_MINUTE = "1m"
    FIVE_MINUTES = "5m"
    FIFTEEN_MINUTES = "15m"
    ONE_HOUR = "1h"
    FOUR_HOURS = "4h"
    ONE_DAY = "1d"


@dataclass
class PatternSearchQuery:
    symbol: str
    similarity_threshold: float
    pattern_type: PatternType = PatternType.PRICE_PATTERN
    timeframe: TimeFrame = TimeFrame.FIVE_MINUTES
    context: dict[str, str] = field(default_factory=dict)
    query_id: uuid.UUID = field(default_factory=uuid.uuid4)
    timestamp: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "query_id": str(self.query_id),
            "symbol": self.symbol,
            "pattern_type": self.pattern_type.value,
            "timeframe": self.timeframe.value,
            "similarity_threshold": self.similarity_threshold,
            "context": dict(self.context),
            "timestamp": _format_timestamp(self.timestamp),
        }


@dataclass
class PatternOutcome:
    direction: str
    magnitude: float
    duration: int
    success_rate: float


@dataclass
class PatternFeature:
    name: str
    value: float
    importance: float


@dataclass
class HistoricalPattern:
    id: str
    symbol: str
    pattern_type: PatternType
    start_time: datetime
    end_time: datetime
    similarity_score: float
    outcome: PatternOutcome
    metadata: dict[str, str] = field(default_factory=dict)
    features: list[PatternFeature] = field(default_factory=list)


def _pattern_from_dict(data: Mapping[str, Any]) -> HistoricalPattern:
    outcome = data["outcome"]
    return HistoricalPattern(
        id=str(data["id"]),
        symbol=str(data["symbol"]),
        pattern_type=PatternType(data["pattern_type"]),
        start_time=_parse_timestamp(data["start_time"]),
        end_time=_parse_timestamp(data["end_time"]),
        similarity_score=float(data["similarity_score"]),
        outcome=PatternOutcome(
            direction=str(outcome["direction"]),
            magnitude=float(outcome["magnitude"]),
            duration=int(outcome["duration"]),
            success_rate=float(outcome["success_rate"]),
        ),
        metadata=_string_map(data["metadata"]),
        features=[
            PatternFeature(
                name=str(item["name"]),
                value=float(item["value"]),
                importance=float(item["importance"]),
            )
            for item in data["features"]
        ],
    )


@dataclass
class PatternSearchResponse:
    query_id: uuid.UUID
    patterns: list[HistoricalPattern]
    total_matches: int
    confidence_score: float
    processing_time_ms: int
    timestamp: datetime

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PatternSearchResponse:
        return cls(
            query_id=uuid.UUID(str(data["query_id"])),
            patterns=[_pattern_from_dict(item) for item in data["patterns"]],
            total_matches=int(data["total_matches"]),
            confidence_score=float(data["confidence_score"]),
            processing_time_ms=int(data["processing_time_ms"]),
            timestamp=_parse_timestamp(data["timestamp"]),
        )


class NewsAnalysisType(str, Enum):
    SENTIMENT_ANALYSIS = "SentimentAnalysis"
    MARKET_IMPACT = "MarketImpact"
    PRICE_MOVEMENT_PREDICTOR = "PriceMovementPredictor"
    VOLATILITY_PREDICTOR = "VolatilityPredictor"


@dataclass
class NewsItem:
    id: str
    title: str
    content: str
    source: str
    timestamp: datetime = field(default_factory=_utcnow)
    url: Optional[str] = None

    def _to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "source": self.source,
            "timestamp": _format_timestamp(self.timestamp),
            "url": self.url,
        }


@dataclass
class NewsAnalysisRequest:
    news_items: list[NewsItem]
    analysis_type: NewsAnalysisType
    symbol: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "news_items": [item._to_dict() for item in self.news_items],
            "symbol": self.symbol,
            "analysis_type": self.analysis_type.value,
        }


@dataclass
class NewsAnalysisResult:
    news_id: str
    sentiment_score: float
    impact_score: float
    topics: list[str]
    entities: list[str]
    relevance_score: float


@dataclass
class NewsAnalysisResponse:
    analysis_id: uuid.UUID
    results: list[NewsAnalysisResult]
    overall_sentiment: float
    impact_score: float
    processing_time_ms: int
    timestamp: datetime

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> NewsAnalysisResponse:
        return cls(
            analysis_id=uuid.UUID(str(data["analysis_id"])),
            results=[
                NewsAnalysisResult(
                    news_id=str(item["news_id"]),
                    sentiment_score=float(item["sentiment_score"]),
                    impact_score=float(item["impact_score"]),
                    topics=[str(topic) for topic in item["topics"]],
                    entities=[str(entity) for entity in item["entities"]],
                    relevance_score=float(item["relevance_score"]),
                )
                for item in data["results"]
            ],
            overall_sentiment=float(data["overall_sentiment"]),
            impact_score=float(data["impact_score"]),
            processing_time_ms=int(data["processing_time_ms"]),
            timestamp=_parse_timestamp(data["timestamp"]),
        )


class HistoricalPeriod(str, Enum):
    ONE_WEEK = "1w"
    ONE_MONTH = "1M"
    THREE_MONTHS = "3M"
    SIX_MONTHS = "6M"
    ONE_YEAR = "1Y"


class RegimeIndicator(str, Enum):
    VOLATILITY = "Volatility"
    TREND = "Trend"
    VOLUME = "Volume"
    CORRELATION = "Correlation"
    MOMENTUM = "Momentum"


@dataclass
class MarketRegimeQuery:
    symbol: str
    historical_period: HistoricalPeriod
    regime_indicators: list[RegimeIndicator] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "historical_period": self.historical_period.value,
            "regime_indicators": [indicator.value for indicator in self.regime_indicators],
        }


class VolatilityLevel(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    EXTREME = "Extreme"


class TrendDirection(str, Enum):
    BULLISH = "Bullish"
    BEARISH = "Bearish"
    SIDEWAYS = "Sideways"


@dataclass
class MarketRegime:
    name: str
    characteristics: dict[str, float] = field(default_factory=dict)
    volatility_level: VolatilityLevel = VolatilityLevel.MEDIUM
    trend_direction: TrendDirection = TrendDirection.SIDEWAYS


def _regime_from_dict(data: Mapping[str, Any]) -> MarketRegime:
    return MarketRegime(
        name=str(data["name"]),
        characteristics=_float_map(data["characteristics"]),
        volatility_level=VolatilityLevel(data["volatility_level"]),
        trend_direction=TrendDirection(data["trend_direction"]),
    )


@dataclass
class RegimePerformance:
    total_return: float
    volatility: float
    max_drawdown: float
    sharpe_ratio: float


@dataclass
class HistoricalRegime:
    regime: MarketRegime
    start_time: datetime
    end_time: datetime
    performance: RegimePerformance


@dataclass
class RegimeTransitionSignal:
    signal_type: str
    strength: float
    confidence: float
    description: str


@dataclass
class MarketRegimeResponse:
    current_regime: MarketRegime
    regime_probability: float
    regime_duration: int
    historical_regimes: list[HistoricalRegime] = field(default_factory=list)
    transition_signals: list[RegimeTransitionSignal] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> MarketRegimeResponse:
        return cls(
            current_regime=_regime_from_dict(data["current_regime"]),
            regime_probability=float(data["regime_probability"]),
            regime_duration=int(data["regime_duration"]),
            historical_regimes=[
                HistoricalRegime(
                    regime=_regime_from_dict(item["regime"]),
                    start_time=_parse_timestamp(item["start_time"]),
                    end_time=_parse_timestamp(item["end_time"]),
                    performance=RegimePerformance(
                        total_return=float(item["performance"]["total_return"]),
                        volatility=float(item["performance"]["volatility"]),
                        max_drawdown=float(item["performance"]["max_drawdown"]),
                        sharpe_ratio=float(item["performance"]["sharpe_ratio"]),
                    ),
                )
                for item in data["historical_regimes"]
            ],
            transition_signals=[
                RegimeTransitionSignal(
                    signal_type=str(item["signal_type"]),
                    strength=float(item["strength"]),
                    confidence=float(item["confidence"]),
                    description=str(item["description"]),
                )
                for item in data["transition_signals"]
            ],
        )


@dataclass
class RagHealthResponse:
    status: str
    timestamp: datetime
    version: str
    components: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RagHealthResponse:
        return cls(
            status=str(data["status"]),
            timestamp=_parse_timestamp(data["timestamp"]),
            version=str(data["version"]),
            components=_string_map(data["components"]),
        )