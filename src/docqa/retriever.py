"""Retrieve relevant chunks for a question from the vector index."""
from __future__ import annotations

import time
from typing import List, Optional

from docqa.embeddings import EmbeddingClient
from docqa.models import SearchResult
from docqa.telemetry import emit_retriever_event
from docqa.vectorstore import VectorIndex


class Retriever:
    """Embed a question and search the index with fixed ranking parameters."""

    def __init__(
        self,
        embedding_client: EmbeddingClient,
        vector_index: VectorIndex,
        *,
        top_k: int = 4,
        similarity_threshold: float = 0.75,
    ) -> None:
        self.embedding_client = embedding_client
        self.vector_index = vector_index
        self.top_k = top_k
        self.similarity_threshold = similarity_threshold

    def retrieve(self, question: str, top_k: Optional[int] = None) -> List[SearchResult]:
        """Return matches above the threshold, most similar first."""

        limit = self.top_k if top_k is None else top_k
        if limit <= 0 or not question.strip():
            return []

        started = time.perf_counter()
        query_vector = self.embedding_client.embed_query(question)
        results = self.vector_index.search(query_vector, limit, self.similarity_threshold)
        emit_retriever_event(
            query=question,
            top_k=limit,
            threshold=self.similarity_threshold,
            results=[
                {
                    "document_id": item.record.document_id,
                    "chunk_index": item.record.chunk_index,
                    "similarity": round(item.similarity, 4),
                }
                for item in results
            ],
            duration_ms=(time.perf_counter() - started) * 1000.0,
        )
        return results


__all__ = ["Retriever"]
