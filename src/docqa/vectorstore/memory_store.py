"""In-memory vector index with optional JSON persistence."""
from __future__ import annotations

import json
import logging
import threading
import time
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import numpy as np

from docqa.errors import IndexWriteFailed
from docqa.models import IndexRecord, SearchResult

from .base import rank_results

LOGGER = logging.getLogger(__name__)

_DocumentMap = Dict[str, Dict[int, IndexRecord]]


class InMemoryVectorIndex:
    """Keep index records in process memory.

    Every write builds a new top-level mapping and swaps it in under the
    write lock, so a concurrent search always works on a consistent
    snapshot: it sees either all or none of a document's new records.
    """

    backend_name = "memory"

    def __init__(self, *, dimension: Optional[int] = None) -> None:
        self.dimension = dimension
        self._documents: _DocumentMap = {}
        self._write_lock = threading.Lock()

    def upsert(self, records: Sequence[IndexRecord]) -> None:
        if not records:
            return
        grouped = self._group(records)
        with self._write_lock:
            proposed: _DocumentMap = dict(self._documents)
            for document_id, new_records in grouped.items():
                merged = dict(proposed.get(document_id, {}))
                merged.update(new_records)
                proposed[document_id] = merged
            self._persist(proposed)
            self._documents = proposed

    def delete_document(self, document_id: str) -> None:
        with self._write_lock:
            if document_id not in self._documents:
                return
            proposed = {key: value for key, value in self._documents.items() if key != document_id}
            self._persist(proposed)
            self._documents = proposed

    def search(
        self,
        query_vector: Sequence[float],
        top_k: int,
        similarity_threshold: float,
    ) -> List[SearchResult]:
        if top_k <= 0:
            return []
        documents = self._documents
        records = [record for chunks in documents.values() for record in chunks.values()]
        if not records:
            return []

        query = np.asarray(query_vector, dtype=float)
        matrix = np.asarray([record.vector for record in records], dtype=float)
        if matrix.shape[1] != query.shape[0]:
            raise ValueError(
                f"Query vector has dimension {query.shape[0]}, index holds {matrix.shape[1]}"
            )

        denominators = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
        dots = matrix @ query
        similarities = np.divide(
            dots,
            denominators,
            out=np.zeros_like(dots),
            where=denominators > 0,
        )
        candidates = [
            SearchResult(record=record, similarity=float(similarity))
            for record, similarity in zip(records, similarities)
        ]
        return rank_results(candidates, top_k, similarity_threshold)

    def count(self, document_id: Optional[str] = None) -> int:
        documents = self._documents
        if document_id is not None:
            return len(documents.get(document_id, {}))
        return sum(len(chunks) for chunks in documents.values())

    def get_document(self, document_id: str) -> List[IndexRecord]:
        chunks = self._documents.get(document_id, {})
        return [chunks[index] for index in sorted(chunks)]

    def create_snapshot(self, snapshot_dir: Path) -> Path:
        """Write every record to a timestamped JSON file inside *snapshot_dir*."""

        snapshot_dir = Path(snapshot_dir)
        snapshot_dir.mkdir(parents=True, exist_ok=True)
        timestamp = time.strftime("%Y%m%d%H%M%S")
        snapshot_path = snapshot_dir / f"index-{timestamp}.json"
        snapshot_path.write_text(
            json.dumps(_serialise(self._documents), indent=2, ensure_ascii=False),
            encoding="utf-8",
        )
        return snapshot_path

    def _group(self, records: Sequence[IndexRecord]) -> Dict[str, Dict[int, IndexRecord]]:
        grouped: Dict[str, Dict[int, IndexRecord]] = {}
        for record in records:
            vector = [float(value) for value in record.vector]
            if self.dimension is None:
                self.dimension = len(vector)
            if len(vector) != self.dimension:
                raise IndexWriteFailed(
                    f"Record {record.document_id}:{record.chunk_index} has dimension {len(vector)}, "
                    f"expected {self.dimension}",
                    document_id=record.document_id,
                )
            grouped.setdefault(record.document_id, {})[record.chunk_index] = IndexRecord(
                document_id=record.document_id,
                chunk_index=record.chunk_index,
                vector=vector,
                text=record.text,
                metadata=dict(record.metadata),
            )
        return grouped

    def _persist(self, documents: _DocumentMap) -> None:
        """Hook called with the proposed state before it becomes visible."""


class PersistentInMemoryVectorIndex(InMemoryVectorIndex):
    """In-memory index that mirrors its state to a JSON file on every write."""

    backend_name = "memory-persistent"

    def __init__(self, path: str | Path, *, dimension: Optional[int] = None) -> None:
        super().__init__(dimension=dimension)
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as error:
            LOGGER.warning("Failed to load vector index from %s: %s", self.path, error)
            return

        loaded: _DocumentMap = {}
        for item in payload.get("records", []):
            try:
                record = IndexRecord(
                    document_id=str(item["document_id"]),
                    chunk_index=int(item["chunk_index"]),
                    vector=[float(value) for value in item["vector"]],
                    text=str(item.get("text", "")),
                    metadata=dict(item.get("metadata") or {}),
                )
            except (KeyError, TypeError, ValueError) as error:
                LOGGER.warning("Skipping malformed index record in %s: %s", self.path, error)
                continue
            if self.dimension is None:
                self.dimension = len(record.vector)
            loaded.setdefault(record.document_id, {})[record.chunk_index] = record
        self._documents = loaded
        LOGGER.info("Loaded %d index records from %s", self.count(), self.path)

    def _persist(self, documents: _DocumentMap) -> None:
        tmp_path = self.path.with_suffix(".tmp")
        try:
            tmp_path.write_text(json.dumps(_serialise(documents), ensure_ascii=False), encoding="utf-8")
            tmp_path.replace(self.path)
        except OSError as error:
            raise IndexWriteFailed(f"Failed to persist vector index to {self.path}", cause=error) from error


def _serialise(documents: _DocumentMap) -> Dict[str, List[dict]]:
    return {
        "records": [
            {
                "document_id": record.document_id,
                "chunk_index": record.chunk_index,
                "vector": list(record.vector),
                "text": record.text,
                "metadata": dict(record.metadata),
            }
            for document_id in sorted(documents)
            for _, record in sorted(documents[document_id].items())
        ]
    }


__all__ = ["InMemoryVectorIndex", "PersistentInMemoryVectorIndex"]
