"""Deterministic providers for tests and offline development."""
from __future__ import annotations

import hashlib
import math
import re
from typing import List, Sequence

from docqa.providers.base import EmbeddingProvider, GenerationProvider

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)


class HashEmbeddingProvider(EmbeddingProvider):
    """Hashed bag-of-words embeddings.

    Each lower-cased token is hashed into one of ``dimension`` buckets with a
    hash-derived sign, and the result is L2-normalised. Texts that share
    vocabulary end up close in cosine space, which is enough to exercise
    retrieval end to end without a model.
    """

    model_name = "hash-bow"

    def __init__(self, dimension: int = 768) -> None:
        if dimension <= 0:
            raise ValueError("dimension must be a positive integer")
        self.dimension = dimension

    def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        return [self._embed(text) for text in texts]

    def _embed(self, text: str) -> List[float]:
        vector = [0.0] * self.dimension
        for token in _TOKEN_RE.findall(text.lower()):
            digest = hashlib.sha256(token.encode("utf-8")).digest()
            bucket = int.from_bytes(digest[:8], "big") % self.dimension
            sign = 1.0 if digest[8] & 1 else -1.0
            vector[bucket] += sign
        norm = math.sqrt(sum(value * value for value in vector))
        if norm == 0.0:
            return vector
        return [value / norm for value in vector]


class EchoGenerationProvider(GenerationProvider):
    """Return a deterministic answer derived from the prompt."""

    model_name = "mock-echo"

    def generate(self, system_prompt: str, user_prompt: str) -> str:
        del system_prompt
        return f"MOCK_ANSWER: {user_prompt[:100]}"


__all__ = ["EchoGenerationProvider", "HashEmbeddingProvider"]
