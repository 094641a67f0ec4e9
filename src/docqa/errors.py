"""Exception taxonomy shared by the ingestion and query paths."""
from __future__ import annotations

from typing import Iterable, Tuple


class DocQAError(RuntimeError):
    """Base class for errors raised by the document Q&A service."""

    def __init__(self, message: str, *, cause: Exception | None = None) -> None:
        super().__init__(message)
        if cause is not None:
            self.__cause__ = cause


class ConfigurationError(DocQAError):
    """Raised when the service configuration is invalid."""


class ExtractionFailed(DocQAError):
    """Raised when no adapter matches a mime type or extraction errors."""

    def __init__(
        self,
        message: str,
        *,
        mime_type: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, cause=cause)
        self.mime_type = mime_type


class TransientProviderError(DocQAError):
    """A provider failure worth retrying (timeout, 5xx, rate limit)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, cause=cause)
        self.status_code = status_code


class ProviderUnavailable(DocQAError):
    """Raised once retries against a remote provider are exhausted."""

    def __init__(
        self,
        message: str,
        *,
        identifiers: Iterable[str] = (),
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, cause=cause)
        self.identifiers: Tuple[str, ...] = tuple(identifiers)


class ProviderRejected(DocQAError):
    """Raised for quota, permission or request errors that must not be retried."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        identifiers: Iterable[str] = (),
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, cause=cause)
        self.status_code = status_code
        self.identifiers: Tuple[str, ...] = tuple(identifiers)


class IndexWriteFailed(DocQAError):
    """Raised when the vector index cannot persist an upsert or delete."""

    def __init__(
        self,
        message: str,
        *,
        document_id: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, cause=cause)
        self.document_id = document_id


class VectorStoreUnavailableError(DocQAError):
    """Raised when the vector store backend cannot be initialised or queried."""


class NoRelevantContext(DocQAError):
    """Signals that retrieval found nothing above the similarity threshold."""


class QueryFailed(DocQAError):
    """User-visible failure of a query before or during generation."""

    def __init__(
        self,
        user_message: str,
        *,
        stage: str,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(user_message, cause=cause)
        self.user_message = user_message
        self.stage = stage


__all__ = [
    "ConfigurationError",
    "DocQAError",
    "ExtractionFailed",
    "IndexWriteFailed",
    "NoRelevantContext",
    "ProviderRejected",
    "ProviderUnavailable",
    "QueryFailed",
    "TransientProviderError",
    "VectorStoreUnavailableError",
]
