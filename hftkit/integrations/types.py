"""Records exchanged between the trading system and external services."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _format_timestamp(moment: datetime) -> str:
    """RFC 3339 in UTC with a ``Z`` suffix and 0, 3 or 6 fractional digits."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    text = moment.replace(tzinfo=None, microsecond=0).isoformat()
    micros = moment.microsecond
    if micros:
        text += f".{micros // 1000:03d}" if micros % 1000 == 0 else f".{micros:06d}"
    return text + "Z"


def _decimal_to_float(value: Optional[Decimal]) -> Optional[float]:
    return None if value is None else float(value)


class SignalType(str, Enum):
    BUY = "Buy"
    SELL = "Sell"
    HOLD = "Hold"
    STRONG_BUY = "StrongBuy"
    STRONG_SELL = "StrongSell"


class SignalSource(str, Enum):
    OKX = "OKX"
    MCP = "MCP"
    RAG = "RAG"
    COORDINATOR = "Coordinator"
    COMBINED = "Combined"


class PredictionHorizon(str, Enum):
    SHORT_TERM = "ShortTerm"
    MEDIUM_TERM = "MediumTerm"
    LONG_TERM = "LongTerm"


class PredictionDirection(str, Enum):
    UP = "Up"
    DOWN = "Down"
    SIDEWAYS = "Sideways"


class HealthStatus(str, Enum):
    HEALTHY = "Healthy"
    DEGRADED = "Degraded"
    UNHEALTHY = "Unhealthy"
    UNKNOWN = "Unknown"


@dataclass
class OrderBookDepth:
    bid_depth: Decimal
    ask_depth: Decimal
    spread: Decimal
    imbalance: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "bid_depth": float(self.bid_depth),
            "ask_depth": float(self.ask_depth),
            "spread": float(self.spread),
            "imbalance": self.imbalance,
        }


@dataclass
class MarketContext:
    symbol: str
    current_price: Decimal
    bid: Decimal
    ask: Decimal
    volume_24h: Decimal
    change_24h: Decimal
    volatility: Optional[float] = None
    order_book_depth: Optional[OrderBookDepth] = None
    timestamp: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "current_price": float(self.current_price),
            "bid": float(self.bid),
            "ask": float(self.ask),
            "volume_24h": float(self.volume_24h),
            "change_24h": float(self.change_24h),
            "volatility": self.volatility,
            "order_book_depth": (
                None if self.order_book_depth is None else self.order_book_depth.to_dict()
            ),
            "timestamp": _format_timestamp(self.timestamp),
        }


@dataclass
class TradingSignal:
    symbol: str
    signal_type: SignalType
    strength: float
    confidence: float
    source: SignalSource
    price_target: Optional[Decimal] = None
    stop_loss: Optional[Decimal] = None
    take_profit: Optional[Decimal] = None
    metadata: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=_utcnow)
    id: uuid.UUID = field(default_factory=uuid.uuid4)


@dataclass
class PredictionRequest:
    symbol: str
    market_context: MarketContext
    features: dict[str, float] = field(default_factory=dict)
    prediction_horizon: PredictionHorizon = PredictionHorizon.SHORT_TERM
    request_id: uuid.UUID = field(default_factory=uuid.uuid4)
    timestamp: datetime = field(default_factory=_utcnow)


@dataclass
class PredictionFactor:
    name: str
    weight: float
    value: float
    description: str


@dataclass
class TradingPrediction:
    direction: PredictionDirection
    probability: float
    risk_score: float
    price_target: Optional[Decimal] = None
    factors: list[PredictionFactor] = field(default_factory=list)


@dataclass
class PredictionResponse:
    request_id: uuid.UUID
    symbol: str
    prediction: TradingPrediction
    confidence: float
    model_version: str
    processing_time_ms: int
    timestamp: datetime = field(default_factory=_utcnow)


@dataclass
class KnowledgeQuery:
    query_text: str
    top_k: int
    threshold: float
    symbol: Optional[str] = None
    context: dict[str, str] = field(default_factory=dict)
    filters: dict[str, str] = field(default_factory=dict)
    query_id: uuid.UUID = field(default_factory=uuid.uuid4)
    timestamp: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "query_id": str(self.query_id),
            "query_text": self.query_text,
            "symbol": self.symbol,
            "context": dict(self.context),
            "filters": dict(self.filters),
            "top_k": self.top_k,
            "threshold": self.threshold,
            "timestamp": _format_timestamp(self.timestamp),
        }


@dataclass
class KnowledgeResult:
    id: str
    content: str
    score: float
    metadata: dict[str, str] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=_utcnow)


@dataclass
class KnowledgeResponse:
    query_id: uuid.UUID
    results: list[KnowledgeResult] = field(default_factory=list)
    total_score: float = 0.0
    processing_time_ms: int = 0
    timestamp: datetime = field(default_factory=_utcnow)


@dataclass
class ResponseTimes:
    okx_avg_ms: float = 0.0
    mcp_avg_ms: float = 0.0
    rag_avg_ms: float = 0.0
    coordinator_avg_ms: float = 0.0


@dataclass
class IntegrationHealth:
    overall_status: HealthStatus = HealthStatus.UNKNOWN
    okx_status: HealthStatus = HealthStatus.UNKNOWN
    mcp_status: HealthStatus = HealthStatus.UNKNOWN
    rag_status: HealthStatus = HealthStatus.UNKNOWN
    response_times: ResponseTimes = field(default_factory=ResponseTimes)
    last_check: datetime = field(default_factory=_utcnow)


@dataclass
class RiskAssessment:
    risk_score: float
    max_position_size: Decimal
    position_limit_used: float
    volatility_risk: float
    liquidity_risk: float
    correlation_risk: float
    recommended_stop_loss: Optional[Decimal] = None


@dataclass
class DecisionContext:
    symbol: str
    market_context: MarketContext
    risk_assessment: RiskAssessment
    prediction: Optional[PredictionResponse] = None
    knowledge: Optional[KnowledgeResponse] = None
    signal_id: uuid.UUID = field(default_factory=uuid.uuid4)
    timestamp: datetime = field(default_factory=_utcnow)


@dataclass
class IntegrationMetrics:
    requests_per_second: float
    success_rate: float
    avg_latency_ms: float
    p95_latency_ms: float
    p99_latency_ms: float
    error_count: int
    active_connections: int
    timestamp: datetime = field(default_factory=_utcnow)