"""Latency metrics, market data streaming and knowledge-service integration for trading systems."""

__version__ = "0.1.0"
__all__ = ["integrations", "latency", "market"]