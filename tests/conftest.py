"""Shared fakes and fixtures for the test-suite."""
from __future__ import annotations

import math
from pathlib import Path
from typing import List, Optional, Sequence

import pytest

from docqa.config import Settings, reset_settings_cache
from docqa.embeddings import EmbeddingClient
from docqa.errors import ProviderRejected, TransientProviderError
from docqa.memory import SessionMemory
from docqa.providers import EmbeddingProvider, GenerationProvider
from docqa.services.rag import RAGService, reset_rag_service_cache
from docqa.vectorstore import InMemoryVectorIndex

KEYWORDS = ("warranty", "invoice", "shipping", "refund")


class KeywordEmbeddingProvider(EmbeddingProvider):
    """One axis per keyword; texts without keywords map to the zero vector."""

    model_name = "keyword-axes"

    def __init__(self, keywords: Sequence[str] = KEYWORDS) -> None:
        self.keywords = tuple(keywords)
        self.calls: List[List[str]] = []

    @property
    def dimension(self) -> int:
        return len(self.keywords)

    def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        self.calls.append(list(texts))
        return [self._embed(text) for text in texts]

    def _embed(self, text: str) -> List[float]:
        lowered = text.lower()
        vector = [1.0 if keyword in lowered else 0.0 for keyword in self.keywords]
        norm = math.sqrt(sum(value * value for value in vector))
        return [value / norm for value in vector] if norm else vector


class FlakyEmbeddingProvider(KeywordEmbeddingProvider):
    """Raise a transient error for the first ``failures`` calls."""

    def __init__(self, failures: int, keywords: Sequence[str] = KEYWORDS) -> None:
        super().__init__(keywords)
        self.failures = failures
        self.attempts = 0

    def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        self.attempts += 1
        if self.attempts <= self.failures:
            raise TransientProviderError("simulated timeout")
        return super().embed_batch(texts)


class RejectingEmbeddingProvider(KeywordEmbeddingProvider):
    def __init__(self) -> None:
        super().__init__()
        self.attempts = 0

    def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        self.attempts += 1
        raise ProviderRejected("quota exceeded", status_code=403)


class FakeGenerator(GenerationProvider):
    """Return a fixed answer and remember every prompt it was given."""

    model_name = "fake-generator"

    def __init__(self, answer: str = "The warranty lasts two years.", error: Optional[Exception] = None) -> None:
        self.answer = answer
        self.error = error
        self.prompts: List[tuple[str, str]] = []

    def generate(self, system_prompt: str, user_prompt: str) -> str:
        self.prompts.append((system_prompt, user_prompt))
        if self.error is not None:
            raise self.error
        return self.answer


def make_embedding_client(provider: Optional[KeywordEmbeddingProvider] = None, **overrides) -> EmbeddingClient:
    provider = provider or KeywordEmbeddingProvider()
    options = {
        "dimension": provider.dimension,
        "batch_size": 2,
        "max_attempts": 3,
        "backoff_seconds": 0.0,
        "backoff_max_seconds": 0.0,
    }
    options.update(overrides)
    return EmbeddingClient(provider, **options)


@pytest.fixture(autouse=True)
def _reset_caches():
    reset_settings_cache()
    reset_rag_service_cache()
    yield
    reset_settings_cache()
    reset_rag_service_cache()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings().with_overrides(
        chunk_size=200,
        chunk_overlap=20,
        embedding_dimension=len(KEYWORDS),
        embedding_provider="hash",
        generation_provider="mock",
        provider_max_attempts=3,
        provider_backoff_seconds=0.0,
        provider_backoff_max_seconds=0.0,
        detect_language=False,
        log_dir=str(tmp_path / "logs"),
    )


@pytest.fixture
def embedding_provider() -> KeywordEmbeddingProvider:
    return KeywordEmbeddingProvider()


@pytest.fixture
def generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def rag_service(settings: Settings, embedding_provider: KeywordEmbeddingProvider, generator: FakeGenerator) -> RAGService:
    return RAGService(
        settings,
        embedding_client=make_embedding_client(embedding_provider),
        vector_index=InMemoryVectorIndex(dimension=embedding_provider.dimension),
        generator=generator,
        memory=SessionMemory(settings.session_history_window),
    )
