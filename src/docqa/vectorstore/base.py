"""Vector index contract and helpers shared by the backends."""
from __future__ import annotations

import uuid
from typing import Iterable, List, Optional, Protocol, Sequence, runtime_checkable

from docqa.models import IndexRecord, SearchResult


@runtime_checkable
class VectorIndex(Protocol):
    """Persistent store of (vector, text, metadata) records keyed by natural key."""

    backend_name: str

    def upsert(self, records: Sequence[IndexRecord]) -> None:
        """Insert records, replacing any that share a natural key."""

    def search(
        self,
        query_vector: Sequence[float],
        top_k: int,
        similarity_threshold: float,
    ) -> List[SearchResult]:
        """Return the most similar records above the threshold."""

    def delete_document(self, document_id: str) -> None:
        """Remove every record belonging to *document_id*."""

    def count(self, document_id: Optional[str] = None) -> int:
        """Return the number of stored records, optionally for one document."""

    def get_document(self, document_id: str) -> List[IndexRecord]:
        """Return a document's records ordered by chunk index."""


def record_id(document_id: str, chunk_index: int) -> str:
    """Stable identifier derived from a record's natural key."""

    return uuid.uuid5(uuid.NAMESPACE_URL, f"{document_id}:{chunk_index}").hex


def rank_results(
    candidates: Iterable[SearchResult],
    top_k: int,
    similarity_threshold: float,
) -> List[SearchResult]:
    """Filter by threshold, order by similarity then natural key, truncate."""

    if top_k <= 0:
        return []
    passing = [item for item in candidates if item.similarity > similarity_threshold]
    passing.sort(
        key=lambda item: (-item.similarity, item.record.document_id, item.record.chunk_index)
    )
    return passing[:top_k]


__all__ = ["VectorIndex", "rank_results", "record_id"]
