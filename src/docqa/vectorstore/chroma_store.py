"""Chroma-backed vector index."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

from docqa.errors import IndexWriteFailed, VectorStoreUnavailableError
from docqa.models import IndexRecord, MetadataValue, SearchResult

from .base import rank_results, record_id

if TYPE_CHECKING:  # pragma: no cover - import for typing only
    from chromadb.api import ClientAPI

LOGGER = logging.getLogger(__name__)

DEFAULT_COLLECTION_NAME = "document_chunks"


def _clean_metadata(record: IndexRecord) -> Dict[str, MetadataValue]:
    # Chroma only stores scalar metadata values.
    metadata: Dict[str, MetadataValue] = {
        key: value
        for key, value in record.metadata.items()
        if isinstance(value, (str, int, float, bool))
    }
    metadata["document_id"] = record.document_id
    metadata["chunk_index"] = int(record.chunk_index)
    return metadata


def _first_row(result: Dict[str, Any], key: str) -> List[Any]:
    rows = result.get(key)
    if rows is None or len(rows) == 0:
        return []
    return list(rows[0])


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    return list(value)


class ChromaVectorIndex:
    """Store index records in a persistent Chroma collection.

    Records of one document are written with a single ``upsert`` call, which
    Chroma applies as one batch. Search over-fetches nearest neighbours and
    applies the threshold and tie-breaking locally.
    """

    backend_name = "chroma"

    def __init__(
        self,
        persist_dir: str | Path,
        *,
        collection_name: str = DEFAULT_COLLECTION_NAME,
        client: Optional["ClientAPI"] = None,
    ) -> None:
        self.persist_dir = Path(persist_dir)
        self.collection_name = collection_name
        if client is None:
            try:
                import chromadb
            except ImportError as exc:
                raise VectorStoreUnavailableError(
                    "VECTOR_STORE=chroma requires the 'chromadb' package to be installed",
                    cause=exc,
                ) from exc
            self.persist_dir.mkdir(parents=True, exist_ok=True)
            try:
                client = chromadb.PersistentClient(path=str(self.persist_dir))
            except Exception as exc:  # pragma: no cover - depends on chromadb runtime
                raise VectorStoreUnavailableError(
                    "Failed to initialise Chroma persistent client",
                    cause=exc,
                ) from exc
        self._client = client
        try:
            self._collection = client.get_or_create_collection(
                name=collection_name,
                metadata={"hnsw:space": "cosine"},
            )
        except Exception as exc:  # pragma: no cover - unexpected backend failure
            raise VectorStoreUnavailableError(
                "Failed to initialise vector store collection",
                cause=exc,
            ) from exc

    def upsert(self, records: Sequence[IndexRecord]) -> None:
        if not records:
            return
        try:
            self._collection.upsert(
                ids=[record_id(record.document_id, record.chunk_index) for record in records],
                embeddings=[[float(value) for value in record.vector] for record in records],
                documents=[record.text for record in records],
                metadatas=[_clean_metadata(record) for record in records],
            )
        except Exception as exc:
            document_ids = sorted({record.document_id for record in records})
            raise IndexWriteFailed(
                f"Failed to upsert {len(records)} records for {', '.join(document_ids)}",
                document_id=document_ids[0] if len(document_ids) == 1 else None,
                cause=exc,
            ) from exc

    def delete_document(self, document_id: str) -> None:
        try:
            self._collection.delete(where={"document_id": document_id})
        except Exception as exc:
            raise IndexWriteFailed(
                f"Failed to delete records of {document_id}",
                document_id=document_id,
                cause=exc,
            ) from exc

    def search(
        self,
        query_vector: Sequence[float],
        top_k: int,
        similarity_threshold: float,
    ) -> List[SearchResult]:
        if top_k <= 0:
            return []
        try:
            total = self._collection.count()
            if total == 0:
                return []
            result = self._collection.query(
                query_embeddings=[[float(value) for value in query_vector]],
                n_results=min(total, max(top_k * 4, top_k + 10)),
                include=["documents", "metadatas", "distances", "embeddings"],
            )
        except Exception as exc:
            raise VectorStoreUnavailableError("Vector store query failed", cause=exc) from exc

        documents = _first_row(result, "documents")
        metadatas = _first_row(result, "metadatas")
        distances = _first_row(result, "distances")
        embeddings = _first_row(result, "embeddings")

        candidates: List[SearchResult] = []
        for index, document in enumerate(documents):
            metadata = dict(metadatas[index] or {}) if index < len(metadatas) else {}
            vector = _as_list(embeddings[index]) if index < len(embeddings) else []
            distance = float(distances[index]) if index < len(distances) else 1.0
            candidates.append(
                SearchResult(
                    record=self._to_record(document, metadata, vector),
                    similarity=1.0 - distance,
                )
            )
        return rank_results(candidates, top_k, similarity_threshold)

    def count(self, document_id: Optional[str] = None) -> int:
        try:
            if document_id is None:
                return int(self._collection.count())
            found = self._collection.get(where={"document_id": document_id}, include=["metadatas"])
        except Exception as exc:
            raise VectorStoreUnavailableError("Vector store count failed", cause=exc) from exc
        return len(found.get("ids") or [])

    def get_document(self, document_id: str) -> List[IndexRecord]:
        try:
            found = self._collection.get(
                where={"document_id": document_id},
                include=["documents", "metadatas", "embeddings"],
            )
        except Exception as exc:
            raise VectorStoreUnavailableError("Vector store lookup failed", cause=exc) from exc

        documents = _as_list(found.get("documents"))
        metadatas = _as_list(found.get("metadatas"))
        embeddings = found.get("embeddings")
        records = [
            self._to_record(
                document,
                dict(metadatas[index] or {}),
                _as_list(embeddings[index]) if embeddings is not None else [],
            )
            for index, document in enumerate(documents)
        ]
        return sorted(records, key=lambda record: record.chunk_index)

    @staticmethod
    def _to_record(document: Optional[str], metadata: Dict[str, Any], vector: List[Any]) -> IndexRecord:
        document_id = str(metadata.get("document_id", ""))
        chunk_index = int(metadata.get("chunk_index", 0))
        return IndexRecord(
            document_id=document_id,
            chunk_index=chunk_index,
            vector=[float(value) for value in vector],
            text=document or "",
            metadata=metadata,
        )


__all__ = ["ChromaVectorIndex", "DEFAULT_COLLECTION_NAME"]
