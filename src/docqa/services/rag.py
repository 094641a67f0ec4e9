"""Service wiring shared by the HTTP API and the command-line scripts."""
from __future__ import annotations

import logging
from functools import lru_cache
from typing import Iterable, List, Optional

from docqa.chunker import Chunker, ChunkingConfig
from docqa.config import Settings, get_settings
from docqa.embeddings import EmbeddingClient
from docqa.ingest import ExtractorRegistry, IngestionCoordinator, IngestItem, LanguageDetector
from docqa.memory import SessionMemory
from docqa.models import Document, IngestionReport, MetadataValue
from docqa.providers import GenerationProvider, create_generation_provider
from docqa.retriever import Retriever
from docqa.vectorstore import VectorIndex, get_vector_index

from .query import QueryOrchestrator, QueryRequest, QueryResponse

LOGGER = logging.getLogger(__name__)


class RAGService:
    """Own the process-wide components of the ingestion and query paths.

    Any component may be injected; the rest is built from :class:`Settings`.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        embedding_client: Optional[EmbeddingClient] = None,
        vector_index: Optional[VectorIndex] = None,
        generator: Optional[GenerationProvider] = None,
        memory: Optional[SessionMemory] = None,
        extractors: Optional[ExtractorRegistry] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.embedding_client = embedding_client or EmbeddingClient.from_settings(self.settings)
        self.vector_index = vector_index or get_vector_index(self.settings)
        self.generator = generator or create_generation_provider(self.settings)
        self.memory = memory or SessionMemory(self.settings.session_history_window)
        self.extractors = extractors or ExtractorRegistry()

        self.coordinator = IngestionCoordinator(
            embedding_client=self.embedding_client,
            vector_index=self.vector_index,
            chunker=Chunker(
                ChunkingConfig(
                    chunk_size=self.settings.chunk_size,
                    overlap=self.settings.chunk_overlap,
                    snap_to_whitespace=self.settings.chunk_snap_to_whitespace,
                )
            ),
            extractors=self.extractors,
            language_detector=LanguageDetector() if self.settings.detect_language else None,
            max_workers=self.settings.ingest_max_workers,
        )
        self.retriever = Retriever(
            self.embedding_client,
            self.vector_index,
            top_k=self.settings.top_k,
            similarity_threshold=self.settings.similarity_threshold,
        )
        self.orchestrator = QueryOrchestrator(
            retriever=self.retriever,
            memory=self.memory,
            generator=self.generator,
            history_turns=self.settings.session_history_window,
            max_attempts=self.settings.provider_max_attempts,
            backoff_seconds=self.settings.provider_backoff_seconds,
            backoff_max_seconds=self.settings.provider_backoff_max_seconds,
            max_tokens=self.settings.generation_max_tokens,
            temperature=self.settings.generation_temperature,
        )
        LOGGER.info(
            "RAG service ready (index=%s, embeddings=%s, generator=%s)",
            self.vector_index.backend_name,
            self.embedding_client.model_name,
            self.generator.model_name,
        )

    def ingest_source(
        self,
        document_id: str,
        mime_type: str,
        raw_bytes: bytes,
        metadata: Optional[dict[str, MetadataValue]] = None,
    ) -> IngestionReport:
        return self.coordinator.ingest_source(document_id, mime_type, raw_bytes, metadata)

    def ingest_text(
        self,
        document_id: str,
        text: str,
        *,
        mime_type: str = "text/plain",
        metadata: Optional[dict[str, MetadataValue]] = None,
    ) -> IngestionReport:
        document = Document(
            document_id=document_id,
            mime_type=mime_type,
            raw_text=text,
            metadata=dict(metadata or {}),
        )
        return self.coordinator.ingest_document(document)

    def ingest_many(self, items: Iterable[IngestItem]) -> List[IngestionReport]:
        return self.coordinator.ingest_many(items)

    def status(self, document_id: str) -> Optional[IngestionReport]:
        return self.coordinator.status(document_id)

    def record_count(self, document_id: str) -> int:
        return self.vector_index.count(document_id)

    def delete(self, document_id: str) -> int:
        return self.coordinator.delete(document_id)

    def answer(self, query_text: str, session_id: str) -> QueryResponse:
        return self.orchestrator.answer(QueryRequest(query_text=query_text, session_id=session_id))

    def close(self) -> None:
        self.embedding_client.close()
        self.generator.close()


@lru_cache()
def get_rag_service() -> RAGService:
    """FastAPI dependency returning the shared :class:`RAGService` instance."""

    return RAGService(get_settings())


def reset_rag_service_cache() -> None:
    """Drop the cached service (primarily for testing)."""

    get_rag_service.cache_clear()  # type: ignore[attr-defined]


__all__ = ["RAGService", "get_rag_service", "reset_rag_service_cache"]
