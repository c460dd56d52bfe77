"""Shared integration records and an async client, ingestion queue and façade for a knowledge service."""

__all__ = ["types", "rag_types", "rag_client", "rag_ingestion", "rag"]