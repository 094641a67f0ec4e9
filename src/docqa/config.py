"""Runtime configuration resolved from environment variables."""
from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from functools import lru_cache
from typing import Any, Callable, Optional

from docqa.errors import ConfigurationError

EMBEDDING_PROVIDERS = frozenset({"http", "sentence-transformers", "hash"})
GENERATION_PROVIDERS = frozenset({"http", "mock"})
VECTOR_STORES = frozenset({"memory", "chroma"})

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _env_str(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}") from exc


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got {value!r}") from exc


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"{name} must be a boolean flag, got {value!r}")


@dataclass(frozen=True, slots=True)
class Settings:
    """Explicit configuration passed to every component."""

    chunk_size: int = 1000
    chunk_overlap: int = 200
    chunk_snap_to_whitespace: bool = False
    top_k: int = 4
    similarity_threshold: float = 0.75
    session_history_window: int = 10

    embedding_dimension: int = 768
    embedding_provider: str = "http"
    embedding_endpoint: str = "http://localhost:11434/v1"
    embedding_model: Optional[str] = None
    embedding_api_key: Optional[str] = None
    embedding_timeout: float = 30.0
    embedding_batch_size: int = 32

    provider_max_attempts: int = 5
    provider_backoff_seconds: float = 1.0
    provider_backoff_max_seconds: float = 30.0

    generation_provider: str = "http"
    generation_endpoint: str = "http://localhost:11434/v1"
    generation_model: str = "llama3.1"
    generation_api_key: Optional[str] = None
    generation_timeout: float = 60.0
    generation_max_tokens: int = 512
    generation_temperature: float = 0.0

    vector_store: str = "memory"
    memory_store_path: Optional[str] = None
    chroma_persist_dir: str = "chroma_db"
    chroma_collection: str = "document_chunks"

    ingest_max_workers: int = 4
    detect_language: bool = True

    log_level: str = "INFO"
    log_dir: str = "logs"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment and validate them."""

        defaults = cls()
        readers: dict[str, Callable[[], Any]] = {
            "chunk_size": lambda: _env_int("CHUNK_SIZE", defaults.chunk_size),
            "chunk_overlap": lambda: _env_int("CHUNK_OVERLAP", defaults.chunk_overlap),
            "chunk_snap_to_whitespace": lambda: _env_flag(
                "CHUNK_SNAP_TO_WHITESPACE", defaults.chunk_snap_to_whitespace
            ),
            "top_k": lambda: _env_int("TOP_K", defaults.top_k),
            "similarity_threshold": lambda: _env_float(
                "SIMILARITY_THRESHOLD", defaults.similarity_threshold
            ),
            "session_history_window": lambda: _env_int(
                "SESSION_HISTORY_WINDOW", defaults.session_history_window
            ),
            "embedding_dimension": lambda: _env_int("EMBEDDING_DIMENSION", defaults.embedding_dimension),
            "embedding_provider": lambda: _env_str("EMBEDDING_PROVIDER", defaults.embedding_provider),
            "embedding_endpoint": lambda: _env_str("EMBEDDING_ENDPOINT", defaults.embedding_endpoint),
            "embedding_model": lambda: _env_str("EMBEDDING_MODEL", defaults.embedding_model),
            "embedding_api_key": lambda: _env_str("EMBEDDING_API_KEY", None),
            "embedding_timeout": lambda: _env_float("EMBEDDING_TIMEOUT", defaults.embedding_timeout),
            "embedding_batch_size": lambda: _env_int("EMBEDDING_BATCH_SIZE", defaults.embedding_batch_size),
            "provider_max_attempts": lambda: _env_int(
                "PROVIDER_MAX_ATTEMPTS", defaults.provider_max_attempts
            ),
            "provider_backoff_seconds": lambda: _env_float(
                "PROVIDER_BACKOFF_SECONDS", defaults.provider_backoff_seconds
            ),
            "provider_backoff_max_seconds": lambda: _env_float(
                "PROVIDER_BACKOFF_MAX_SECONDS", defaults.provider_backoff_max_seconds
            ),
            "generation_provider": lambda: _env_str("LLM_PROVIDER", defaults.generation_provider),
            "generation_endpoint": lambda: _env_str("LLM_ENDPOINT", defaults.generation_endpoint),
            "generation_model": lambda: _env_str("LLM_MODEL", defaults.generation_model),
            "generation_api_key": lambda: _env_str("LLM_API_KEY", None),
            "generation_timeout": lambda: _env_float("LLM_TIMEOUT", defaults.generation_timeout),
            "generation_max_tokens": lambda: _env_int("LLM_MAX_TOKENS", defaults.generation_max_tokens),
            "generation_temperature": lambda: _env_float(
                "LLM_TEMPERATURE", defaults.generation_temperature
            ),
            "vector_store": lambda: _env_str("VECTOR_STORE", defaults.vector_store),
            "memory_store_path": lambda: _env_str("MEMORY_STORE_PATH", None),
            "chroma_persist_dir": lambda: _env_str("CHROMA_PERSIST_DIR", defaults.chroma_persist_dir),
            "chroma_collection": lambda: _env_str("CHROMA_COLLECTION", defaults.chroma_collection),
            "ingest_max_workers": lambda: _env_int("INGEST_MAX_WORKERS", defaults.ingest_max_workers),
            "detect_language": lambda: _env_flag("DETECT_LANGUAGE", defaults.detect_language),
            "log_level": lambda: _env_str("LOG_LEVEL", defaults.log_level),
            "log_dir": lambda: _env_str("LOG_DIR", defaults.log_dir),
        }
        settings = cls(**{name: reader() for name, reader in readers.items()})
        settings.validate()
        return settings

    def with_overrides(self, **overrides: Any) -> "Settings":
        """Return a validated copy with selected fields replaced."""

        known = {item.name for item in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise ConfigurationError(f"Unknown settings: {', '.join(sorted(unknown))}")
        updated = replace(self, **overrides)
        updated.validate()
        return updated

    def validate(self) -> None:
        """Raise :class:`ConfigurationError` when a value is out of range."""

        if self.chunk_size <= 0:
            raise ConfigurationError("chunk_size must be a positive integer")
        if not 0 <= self.chunk_overlap < self.chunk_size:
            raise ConfigurationError("chunk_overlap must satisfy 0 <= chunk_overlap < chunk_size")
        if self.top_k <= 0:
            raise ConfigurationError("top_k must be a positive integer")
        if not 0.0 <= self.similarity_threshold <= 1.0:
            raise ConfigurationError("similarity_threshold must be within [0, 1]")
        if self.session_history_window <= 0:
            raise ConfigurationError("session_history_window must be a positive integer")
        if self.embedding_dimension <= 0:
            raise ConfigurationError("embedding_dimension must be a positive integer")
        if self.embedding_batch_size <= 0:
            raise ConfigurationError("embedding_batch_size must be a positive integer")
        if self.provider_max_attempts <= 0:
            raise ConfigurationError("provider_max_attempts must be a positive integer")
        if self.provider_backoff_seconds < 0 or self.provider_backoff_max_seconds < 0:
            raise ConfigurationError("provider backoff values must not be negative")
        if self.embedding_timeout <= 0 or self.generation_timeout <= 0:
            raise ConfigurationError("provider timeouts must be positive")
        if self.generation_max_tokens <= 0:
            raise ConfigurationError("generation_max_tokens must be a positive integer")
        if self.ingest_max_workers <= 0:
            raise ConfigurationError("ingest_max_workers must be a positive integer")
        if self.embedding_provider not in EMBEDDING_PROVIDERS:
            raise ConfigurationError(f"Unsupported EMBEDDING_PROVIDER: {self.embedding_provider!r}")
        if self.generation_provider not in GENERATION_PROVIDERS:
            raise ConfigurationError(f"Unsupported LLM_PROVIDER: {self.generation_provider!r}")
        if self.vector_store not in VECTOR_STORES:
            raise ConfigurationError(f"Unsupported VECTOR_STORE backend: {self.vector_store!r}")


@lru_cache()
def get_settings() -> Settings:
    """Return the process-wide settings instance."""

    return Settings.from_env()


def reset_settings_cache() -> None:
    """Clear the cached settings (primarily for testing)."""

    get_settings.cache_clear()  # type: ignore[attr-defined]


__all__ = ["Settings", "get_settings", "reset_settings_cache"]
