"""Embedding client: ordered, batched, retried calls to an embedding provider."""
from __future__ import annotations

import logging
import time
from typing import List, Optional, Sequence

from docqa.config import Settings
from docqa.errors import ProviderRejected, ProviderUnavailable
from docqa.providers import EmbeddingProvider, create_embedding_provider
from docqa.providers.retry import call_with_retry
from docqa.telemetry import emit_embeddings_event

LOGGER = logging.getLogger(__name__)


class EmbeddingClient:
    """Convert texts into fixed-dimension vectors.

    Output order always matches input order. Texts are sent to the provider
    in batches of ``batch_size``; each batch is retried independently and a
    failing batch reports the identifiers of the units it carried.
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        *,
        dimension: int,
        batch_size: int = 32,
        max_attempts: int = 5,
        backoff_seconds: float = 1.0,
        backoff_max_seconds: float = 30.0,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be a positive integer")
        self.provider = provider
        self.dimension = dimension
        self.batch_size = batch_size
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self.backoff_max_seconds = backoff_max_seconds

    @classmethod
    def from_settings(cls, settings: Settings, provider: Optional[EmbeddingProvider] = None) -> "EmbeddingClient":
        return cls(
            provider or create_embedding_provider(settings),
            dimension=settings.embedding_dimension,
            batch_size=settings.embedding_batch_size,
            max_attempts=settings.provider_max_attempts,
            backoff_seconds=settings.provider_backoff_seconds,
            backoff_max_seconds=settings.provider_backoff_max_seconds,
        )

    @property
    def model_name(self) -> str:
        return self.provider.model_name

    def embed(self, texts: Sequence[str], identifiers: Optional[Sequence[str]] = None) -> List[List[float]]:
        """Return one vector per text, in the same order."""

        if not texts:
            return []
        if identifiers is None:
            identifiers = [str(index) for index in range(len(texts))]
        elif len(identifiers) != len(texts):
            raise ValueError("identifiers must align with texts")

        started = time.perf_counter()
        vectors: List[List[float]] = []
        try:
            for offset in range(0, len(texts), self.batch_size):
                batch = list(texts[offset : offset + self.batch_size])
                batch_ids = list(identifiers[offset : offset + self.batch_size])
                vectors.extend(self._embed_batch(batch, batch_ids))
        except (ProviderUnavailable, ProviderRejected) as error:
            emit_embeddings_event(
                model=self.model_name,
                count=len(texts),
                duration_ms=(time.perf_counter() - started) * 1000.0,
                errors=[str(error)],
            )
            raise

        emit_embeddings_event(
            model=self.model_name,
            count=len(texts),
            duration_ms=(time.perf_counter() - started) * 1000.0,
        )
        return vectors

    def embed_query(self, text: str) -> List[float]:
        """Embed a single query string."""

        return self.embed([text], identifiers=["query"])[0]

    def _embed_batch(self, batch: List[str], batch_ids: List[str]) -> List[List[float]]:
        try:
            vectors = call_with_retry(
                lambda: self.provider.embed_batch(batch),
                operation=f"embed[{self.model_name}]",
                max_attempts=self.max_attempts,
                backoff_seconds=self.backoff_seconds,
                backoff_max_seconds=self.backoff_max_seconds,
                identifiers=batch_ids,
            )
        except ProviderRejected as error:
            if not error.identifiers:
                error.identifiers = tuple(batch_ids)
            raise

        if len(vectors) != len(batch):
            raise ProviderRejected(
                f"Embedding provider returned {len(vectors)} vectors for {len(batch)} texts",
                identifiers=batch_ids,
            )
        for identifier, vector in zip(batch_ids, vectors):
            if len(vector) != self.dimension:
                raise ProviderRejected(
                    f"Embedding for {identifier} has dimension {len(vector)}, expected {self.dimension}",
                    identifiers=batch_ids,
                )
        return [list(map(float, vector)) for vector in vectors]

    def close(self) -> None:
        self.provider.close()


__all__ = ["EmbeddingClient"]
