"""Base provider interfaces for embeddings and language models."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Sequence

__all__ = ["EmbeddingProvider", "GenerationProvider"]


class EmbeddingProvider(ABC):
    """Abstract interface for embedding backends.

    ``embed_batch`` performs a single provider call. Implementations raise
    :class:`~docqa.errors.TransientProviderError` for retryable failures and
    :class:`~docqa.errors.ProviderRejected` for everything that must not be
    retried; batching and retries live in :class:`~docqa.embeddings.EmbeddingClient`.
    """

    model_name: str = "unknown"

    @abstractmethod
    def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        """Return one vector per text, in input order."""

    def close(self) -> None:
        """Release network resources held by the provider."""


class GenerationProvider(ABC):
    """Abstract interface for answer generation backends."""

    model_name: str = "unknown"

    @abstractmethod
    def generate(self, system_prompt: str, user_prompt: str) -> str:
        """Generate a completion for the supplied prompts."""

    def close(self) -> None:
        """Release network resources held by the provider."""
