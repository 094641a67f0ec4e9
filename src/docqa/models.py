"""Data models shared by the ingestion and query pipelines."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union

MetadataValue = Union[str, int, float, bool]


@dataclass(slots=True)
class Document:
    """Extracted, normalised text of one source document."""

    document_id: str
    mime_type: str
    raw_text: str
    metadata: Dict[str, MetadataValue] = field(default_factory=dict)


@dataclass(slots=True)
class Chunk:
    """A contiguous slice of a document's normalised text."""

    document_id: str
    chunk_index: int
    text: str
    char_start: int
    char_end: int
    metadata: Dict[str, MetadataValue] = field(default_factory=dict)

    @property
    def natural_key(self) -> Tuple[str, int]:
        return (self.document_id, self.chunk_index)


@dataclass(slots=True)
class IndexRecord:
    """The persisted unit of the vector index."""

    document_id: str
    chunk_index: int
    vector: List[float]
    text: str
    metadata: Dict[str, MetadataValue] = field(default_factory=dict)

    @property
    def natural_key(self) -> Tuple[str, int]:
        return (self.document_id, self.chunk_index)


@dataclass(slots=True)
class SearchResult:
    """A record returned from similarity search along with its score."""

    record: IndexRecord
    similarity: float


class Role(str, Enum):
    """Author of a session turn."""

    USER = "user"
    ASSISTANT = "assistant"


@dataclass(slots=True)
class SessionTurn:
    """One message in a conversation."""

    session_id: str
    turn_index: int
    role: Role
    content: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class IngestionState(str, Enum):
    """Lifecycle of one document ingestion run."""

    PENDING = "pending"
    EXTRACTING = "extracting"
    CHUNKING = "chunking"
    EMBEDDING = "embedding"
    INDEXING = "indexing"
    COMPLETE = "complete"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (IngestionState.COMPLETE, IngestionState.FAILED)


@dataclass(slots=True)
class IngestionReport:
    """Outcome of one ingestion run for a single document."""

    document_id: str
    state: IngestionState = IngestionState.PENDING
    chunk_count: int = 0
    reason: Optional[str] = None
    error_type: Optional[str] = None
    transitions: List[IngestionState] = field(default_factory=lambda: [IngestionState.PENDING])
    duration_seconds: float = 0.0

    def advance(self, state: IngestionState) -> None:
        if self.state.is_terminal:
            raise ValueError(f"Ingestion of {self.document_id} already finished as {self.state.value}")
        self.state = state
        self.transitions.append(state)

    def fail(self, error: BaseException) -> None:
        self.advance(IngestionState.FAILED)
        self.reason = str(error) or error.__class__.__name__
        self.error_type = error.__class__.__name__

    def as_dict(self) -> Dict[str, object]:
        return {
            "document_id": self.document_id,
            "state": self.state.value,
            "chunk_count": self.chunk_count,
            "reason": self.reason,
            "error_type": self.error_type,
            "transitions": [state.value for state in self.transitions],
            "duration_seconds": self.duration_seconds,
        }


__all__ = [
    "Chunk",
    "Document",
    "IndexRecord",
    "IngestionReport",
    "IngestionState",
    "MetadataValue",
    "Role",
    "SearchResult",
    "SessionTurn",
]
