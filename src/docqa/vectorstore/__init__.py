"""Vector index backends and the configuration-driven factory."""

from __future__ import annotations

from docqa.config import Settings
from docqa.errors import IndexWriteFailed, VectorStoreUnavailableError

from .base import VectorIndex, rank_results, record_id
from .memory_store import InMemoryVectorIndex, PersistentInMemoryVectorIndex


def get_vector_index(settings: Settings) -> VectorIndex:
    """Return a new vector index for the backend named by ``VECTOR_STORE``."""

    backend = settings.vector_store.strip().lower()

    if backend == "memory":
        if settings.memory_store_path:
            return PersistentInMemoryVectorIndex(
                settings.memory_store_path,
                dimension=settings.embedding_dimension,
            )
        return InMemoryVectorIndex(dimension=settings.embedding_dimension)

    if backend == "chroma":
        from .chroma_store import ChromaVectorIndex

        return ChromaVectorIndex(
            settings.chroma_persist_dir,
            collection_name=settings.chroma_collection,
        )

    raise VectorStoreUnavailableError(f"Unsupported VECTOR_STORE backend: {backend!r}")


__all__ = [
    "InMemoryVectorIndex",
    "IndexWriteFailed",
    "PersistentInMemoryVectorIndex",
    "VectorIndex",
    "VectorStoreUnavailableError",
    "get_vector_index",
    "rank_results",
    "record_id",
]
