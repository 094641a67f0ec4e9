"""Embedding and generation provider backends."""
from __future__ import annotations

from docqa.config import Settings
from docqa.telemetry import emit_provider_init

from .base import EmbeddingProvider, GenerationProvider
from .http import DEFAULT_EMBEDDING_MODEL, HTTPEmbeddingProvider, HTTPGenerationProvider
from .local import SentenceTransformerEmbeddingProvider
from .mock import EchoGenerationProvider, HashEmbeddingProvider


def create_embedding_provider(settings: Settings) -> EmbeddingProvider:
    """Instantiate the embedding backend named by ``EMBEDDING_PROVIDER``."""

    provider: EmbeddingProvider
    if settings.embedding_provider == "http":
        provider = HTTPEmbeddingProvider(
            settings.embedding_endpoint,
            settings.embedding_model or DEFAULT_EMBEDDING_MODEL,
            api_key=settings.embedding_api_key,
            timeout=settings.embedding_timeout,
        )
    elif settings.embedding_provider == "sentence-transformers":
        provider = SentenceTransformerEmbeddingProvider(settings.embedding_model)
    else:
        provider = HashEmbeddingProvider(settings.embedding_dimension)
    emit_provider_init(
        kind="embedding",
        provider=settings.embedding_provider,
        model=provider.model_name,
        endpoint=settings.embedding_endpoint if settings.embedding_provider == "http" else None,
    )
    return provider


def create_generation_provider(settings: Settings) -> GenerationProvider:
    """Instantiate the answer generation backend named by ``LLM_PROVIDER``."""

    provider: GenerationProvider
    if settings.generation_provider == "http":
        provider = HTTPGenerationProvider(
            settings.generation_endpoint,
            settings.generation_model,
            api_key=settings.generation_api_key,
            timeout=settings.generation_timeout,
            max_tokens=settings.generation_max_tokens,
            temperature=settings.generation_temperature,
        )
    else:
        provider = EchoGenerationProvider()
    emit_provider_init(
        kind="generation",
        provider=settings.generation_provider,
        model=provider.model_name,
        endpoint=settings.generation_endpoint if settings.generation_provider == "http" else None,
    )
    return provider


__all__ = [
    "EchoGenerationProvider",
    "EmbeddingProvider",
    "GenerationProvider",
    "HTTPEmbeddingProvider",
    "HTTPGenerationProvider",
    "HashEmbeddingProvider",
    "SentenceTransformerEmbeddingProvider",
    "create_embedding_provider",
    "create_generation_provider",
]
