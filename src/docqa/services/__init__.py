"""Application services built on top of the ingestion and retrieval components."""

from .query import REFUSAL_MESSAGE, QueryOrchestrator, QueryRequest, QueryResponse
from .rag import RAGService, get_rag_service, reset_rag_service_cache

__all__ = [
    "QueryOrchestrator",
    "QueryRequest",
    "QueryResponse",
    "RAGService",
    "REFUSAL_MESSAGE",
    "get_rag_service",
    "reset_rag_service_cache",
]
