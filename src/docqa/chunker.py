from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional

from docqa.models import Chunk, Document, MetadataValue

LOGGER = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s")


def _validate(chunk_size: int, overlap: int) -> None:
    if chunk_size <= 0:
        raise ValueError("chunk_size must be a positive integer")
    if overlap < 0:
        raise ValueError("overlap must be a non-negative integer")
    if overlap >= chunk_size:
        raise ValueError("overlap must be smaller than chunk_size")


def _snap_end(text: str, start: int, end: int) -> int:
    """Move *end* back to just after the last whitespace inside the window."""

    window = text[start:end]
    split_at = None
    for match in _WHITESPACE_RE.finditer(window):
        if match.start() == 0:
            continue
        split_at = match.start()
    if split_at is None:
        return end
    candidate_end = start + split_at + 1
    if start < candidate_end < end:
        return candidate_end
    return end


def chunk_text(
    text: str,
    chunk_size: int = 1000,
    overlap: int = 200,
    *,
    document_id: str = "",
    metadata: Optional[Mapping[str, MetadataValue]] = None,
    snap_to_whitespace: bool = False,
) -> List[Chunk]:
    """Split *text* into overlapping chunks.

    The window start advances by ``chunk_size - overlap`` characters until it
    reaches the end of the text, so the last chunk may be shorter than
    ``chunk_size``. With ``snap_to_whitespace`` the window end is pulled back
    to the last whitespace inside the window and the next window starts
    ``overlap`` characters before that end. Both modes depend only on the
    input, so re-chunking identical text yields identical chunks.
    """

    _validate(chunk_size, overlap)
    if not text:
        return []

    base_metadata: Dict[str, MetadataValue] = dict(metadata or {})
    text_length = len(text)
    step = chunk_size - overlap
    chunks: List[Chunk] = []
    start = 0

    while start < text_length:
        end = min(start + chunk_size, text_length)
        next_start = start + step
        if snap_to_whitespace and end < text_length:
            end = _snap_end(text, start, end)
            next_start = end - overlap
            if next_start <= start:
                next_start = end

        chunk_index = len(chunks)
        chunk_metadata = dict(base_metadata)
        chunk_metadata.update(
            {
                "document_id": document_id,
                "chunk_index": chunk_index,
                "char_start": start,
                "char_end": end,
            }
        )
        chunks.append(
            Chunk(
                document_id=document_id,
                chunk_index=chunk_index,
                text=text[start:end],
                char_start=start,
                char_end=end,
                metadata=chunk_metadata,
            )
        )
        start = next_start

    return chunks


@dataclass(frozen=True, slots=True)
class ChunkingConfig:
    chunk_size: int = 1000
    overlap: int = 200
    snap_to_whitespace: bool = False

    def __post_init__(self) -> None:
        _validate(self.chunk_size, self.overlap)


class Chunker:
    """Split documents into chunks using a fixed configuration."""

    def __init__(self, config: Optional[ChunkingConfig] = None) -> None:
        self.config = config or ChunkingConfig()

    def split(self, document: Document) -> List[Chunk]:
        metadata: Dict[str, MetadataValue] = dict(document.metadata)
        metadata["mime_type"] = document.mime_type
        chunks = chunk_text(
            document.raw_text,
            self.config.chunk_size,
            self.config.overlap,
            document_id=document.document_id,
            metadata=metadata,
            snap_to_whitespace=self.config.snap_to_whitespace,
        )
        LOGGER.debug(
            "Split %s (%d chars) into %d chunks",
            document.document_id,
            len(document.raw_text),
            len(chunks),
        )
        return chunks


__all__ = ["Chunker", "ChunkingConfig", "chunk_text"]
