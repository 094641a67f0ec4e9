"""Ingestion coordinator driving documents through the write path."""
from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Union

from docqa.chunker import Chunker
from docqa.embeddings import EmbeddingClient
from docqa.logging_config import AUDIT_LOGGER_NAME
from docqa.models import (
    Chunk,
    Document,
    IndexRecord,
    IngestionReport,
    IngestionState,
    MetadataValue,
)
from docqa.telemetry import emit_exception, emit_ingest_event, emit_vectorstore_event, traced_duration
from docqa.vectorstore import VectorIndex

from .extractors import ExtractorRegistry
from .language import LanguageDetector
from .normalization import normalize_text

LOGGER = logging.getLogger(__name__)
AUDIT_LOGGER = logging.getLogger(AUDIT_LOGGER_NAME)


@dataclass(slots=True)
class SourceDocument:
    """Raw bytes announced by the upstream trigger."""

    document_id: str
    mime_type: str
    raw_bytes: bytes
    metadata: Dict[str, MetadataValue] = field(default_factory=dict)


IngestItem = Union[Document, SourceDocument]


@dataclass(slots=True)
class _DocumentLock:
    lock: threading.Lock = field(default_factory=threading.Lock)
    users: int = 0


class IngestionCoordinator:
    """Run extraction, chunking, embedding and indexing for documents.

    Each run produces an :class:`IngestionReport`. Every chunk of a document
    is embedded before the index is touched, so a provider failure leaves
    the previously indexed version in place. The indexing stage removes the
    old records of the document before inserting the new ones, which keeps
    shrinking documents free of stale chunks. Runs for the same document are
    serialised; distinct documents may be ingested concurrently.
    """

    def __init__(
        self,
        *,
        embedding_client: EmbeddingClient,
        vector_index: VectorIndex,
        chunker: Optional[Chunker] = None,
        extractors: Optional[ExtractorRegistry] = None,
        language_detector: Optional[LanguageDetector] = None,
        max_workers: int = 4,
    ) -> None:
        if max_workers <= 0:
            raise ValueError("max_workers must be a positive integer")
        self.embedding_client = embedding_client
        self.vector_index = vector_index
        self.chunker = chunker or Chunker()
        self.extractors = extractors or ExtractorRegistry()
        self.language_detector = language_detector
        self.max_workers = max_workers
        self._reports: Dict[str, IngestionReport] = {}
        self._document_locks: Dict[str, _DocumentLock] = {}
        self._registry_lock = threading.Lock()

    def ingest_document(self, document: Document) -> IngestionReport:
        """Ingest text that has already been extracted from its source."""

        def extract() -> Document:
            return Document(
                document_id=document.document_id,
                mime_type=document.mime_type,
                raw_text=normalize_text(document.raw_text),
                metadata=dict(document.metadata),
            )

        return self._run(document.document_id, document.mime_type, extract)

    def ingest_source(
        self,
        document_id: str,
        mime_type: str,
        raw_bytes: bytes,
        metadata: Optional[Dict[str, MetadataValue]] = None,
    ) -> IngestionReport:
        """Extract text from *raw_bytes* with the adapter for *mime_type*, then ingest it."""

        def extract() -> Document:
            text = self.extractors.extract(raw_bytes, mime_type)
            return Document(
                document_id=document_id,
                mime_type=mime_type,
                raw_text=text,
                metadata=dict(metadata or {}),
            )

        return self._run(document_id, mime_type, extract)

    def ingest_many(self, items: Iterable[IngestItem]) -> List[IngestionReport]:
        """Ingest several documents concurrently; reports follow input order."""

        pending = list(items)
        if not pending:
            return []
        workers = min(self.max_workers, len(pending))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="ingest") as executor:
            return list(executor.map(self._ingest_item, pending))

    def status(self, document_id: str) -> Optional[IngestionReport]:
        return self._reports.get(document_id)

    def delete(self, document_id: str) -> int:
        """Remove a document from the index and return how many records it had."""

        with self._lock_for(document_id):
            removed = self.vector_index.count(document_id)
            self.vector_index.delete_document(document_id)
            self._reports.pop(document_id, None)
        emit_vectorstore_event(
            "vectorstore.delete",
            backend=self.vector_index.backend_name,
            count=removed,
            document_id=document_id,
        )
        AUDIT_LOGGER.info({"event": "delete_document", "document_id": document_id, "records": removed})
        return removed

    def _ingest_item(self, item: IngestItem) -> IngestionReport:
        if isinstance(item, SourceDocument):
            return self.ingest_source(item.document_id, item.mime_type, item.raw_bytes, item.metadata)
        return self.ingest_document(item)

    @contextmanager
    def _lock_for(self, document_id: str) -> Iterator[None]:
        """Serialise work on *document_id*; the lock entry lives only while in use."""

        with self._registry_lock:
            entry = self._document_locks.get(document_id)
            if entry is None:
                entry = self._document_locks[document_id] = _DocumentLock()
            entry.users += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._registry_lock:
                entry.users -= 1
                if entry.users == 0:
                    del self._document_locks[document_id]

    def _run(self, document_id: str, mime_type: str, extract: Callable[[], Document]) -> IngestionReport:
        with self._lock_for(document_id):
            report = IngestionReport(document_id=document_id)
            started = time.perf_counter()
            try:
                report.advance(IngestionState.EXTRACTING)
                document = self._annotate(extract())

                report.advance(IngestionState.CHUNKING)
                chunks = self.chunker.split(document)

                report.advance(IngestionState.EMBEDDING)
                vectors = self.embedding_client.embed(
                    [chunk.text for chunk in chunks],
                    identifiers=[f"{document_id}:{chunk.chunk_index}" for chunk in chunks],
                )

                report.advance(IngestionState.INDEXING)
                self._replace(document_id, chunks, vectors)

                report.chunk_count = len(chunks)
                report.advance(IngestionState.COMPLETE)
            except Exception as error:
                report.fail(error)
                emit_exception(module=__name__, error=error, document_id=document_id)
            finally:
                report.duration_seconds = time.perf_counter() - started
                self._reports[document_id] = report

        emit_ingest_event(
            "ingest.document",
            document_id=document_id,
            mime_type=mime_type,
            state=report.state.value,
            chunks=report.chunk_count,
            duration_ms=report.duration_seconds * 1000.0,
            reason=report.reason,
        )
        AUDIT_LOGGER.info({"event": "ingest_document", "mime_type": mime_type, **report.as_dict()})
        return report

    def _annotate(self, document: Document) -> Document:
        if self.language_detector is None or "language" in document.metadata:
            return document
        with traced_duration("ingest.language", logger=LOGGER, document_id=document.document_id):
            language = self.language_detector.detect(document.raw_text)
        if language:
            document.metadata["language"] = language
        return document

    def _replace(self, document_id: str, chunks: List[Chunk], vectors: List[List[float]]) -> None:
        records = [
            IndexRecord(
                document_id=chunk.document_id,
                chunk_index=chunk.chunk_index,
                vector=vector,
                text=chunk.text,
                metadata=dict(chunk.metadata),
            )
            for chunk, vector in zip(chunks, vectors)
        ]
        started = time.perf_counter()
        self.vector_index.delete_document(document_id)
        self.vector_index.upsert(records)
        emit_vectorstore_event(
            "vectorstore.upsert",
            backend=self.vector_index.backend_name,
            count=len(records),
            document_id=document_id,
            duration_ms=(time.perf_counter() - started) * 1000.0,
        )


__all__ = ["IngestItem", "IngestionCoordinator", "SourceDocument"]
