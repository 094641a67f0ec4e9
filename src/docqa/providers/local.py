"""Embedding provider backed by a local Sentence Transformers model."""
from __future__ import annotations

import logging
import threading
from typing import Any, List, Optional, Sequence

from docqa.errors import ProviderUnavailable
from docqa.providers.base import EmbeddingProvider

LOGGER = logging.getLogger(__name__)

DEFAULT_MODEL_NAME = "sentence-transformers/all-mpnet-base-v2"


class SentenceTransformerEmbeddingProvider(EmbeddingProvider):
    """Lazily load a ``SentenceTransformer`` and encode texts in-process."""

    def __init__(self, model_name_or_path: str | None = None, *, device: str | None = None) -> None:
        self.model_name = model_name_or_path or DEFAULT_MODEL_NAME
        self._device = device
        self._model: Optional[Any] = None
        self._lock = threading.Lock()

    def _ensure_loaded(self) -> Any:
        if self._model is not None:
            return self._model
        with self._lock:
            if self._model is not None:
                return self._model
            try:
                from sentence_transformers import SentenceTransformer
            except ImportError as exc:
                raise ProviderUnavailable(
                    "EMBEDDING_PROVIDER=sentence-transformers requires the 'sentence-transformers' package",
                    cause=exc,
                ) from exc
            try:
                self._model = SentenceTransformer(self.model_name, device=self._device)
            except Exception as exc:  # pragma: no cover - depends on model files
                raise ProviderUnavailable(
                    f"Failed to initialise sentence-transformers model '{self.model_name}'",
                    cause=exc,
                ) from exc
            LOGGER.info(
                "Loaded sentence-transformers model %s (dimension=%s)",
                self.model_name,
                self._model.get_sentence_embedding_dimension(),
            )
        return self._model

    @property
    def dimension(self) -> int:
        return int(self._ensure_loaded().get_sentence_embedding_dimension())

    def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        model = self._ensure_loaded()
        embeddings = model.encode(
            list(texts),
            convert_to_numpy=True,
            show_progress_bar=False,
            normalize_embeddings=False,
        )
        return embeddings.tolist()


__all__ = ["SentenceTransformerEmbeddingProvider"]
