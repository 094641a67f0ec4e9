"""OpenAI-compatible HTTP providers for embeddings and chat completions."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx

from docqa.errors import ProviderRejected, TransientProviderError
from docqa.providers.base import EmbeddingProvider, GenerationProvider

LOGGER = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = frozenset({408, 425, 429})
DEFAULT_EMBEDDING_MODEL = "nomic-embed-text"


def _build_client(endpoint: str, api_key: Optional[str], timeout: float, transport: Optional[httpx.BaseTransport]) -> httpx.Client:
    headers = {"Content-Type": "application/json"}
    if api_key:
        headers["Authorization"] = f"Bearer {api_key}"
    return httpx.Client(
        base_url=endpoint.rstrip("/"),
        headers=headers,
        timeout=timeout,
        transport=transport,
    )


def _post_json(client: httpx.Client, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    """POST *payload* and classify failures into transient or rejected."""

    try:
        response = client.post(path, json=payload)
    except httpx.TimeoutException as exc:
        raise TransientProviderError(f"Provider request to {path} timed out", cause=exc) from exc
    except httpx.TransportError as exc:
        raise TransientProviderError(f"Provider request to {path} failed: {exc}", cause=exc) from exc

    status = response.status_code
    if status >= 500 or status in RETRYABLE_STATUS_CODES:
        raise TransientProviderError(
            f"Provider returned HTTP {status} for {path}", status_code=status
        )
    if status >= 400:
        raise ProviderRejected(
            f"Provider rejected request to {path} with HTTP {status}: {response.text[:200]}",
            status_code=status,
        )

    try:
        body = response.json()
    except ValueError as exc:
        raise TransientProviderError(f"Provider returned invalid JSON for {path}", cause=exc) from exc
    if not isinstance(body, dict):
        raise ProviderRejected(f"Unexpected provider payload for {path}: {type(body).__name__}")
    return body


class HTTPEmbeddingProvider(EmbeddingProvider):
    """Call an OpenAI-compatible ``/embeddings`` endpoint."""

    def __init__(
        self,
        endpoint: str,
        model: str,
        *,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.endpoint = endpoint
        self.model_name = model
        self._client = _build_client(endpoint, api_key, timeout, transport)

    def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        body = _post_json(self._client, "/embeddings", {"model": self.model_name, "input": list(texts)})
        data = body.get("data")
        if not isinstance(data, list) or len(data) != len(texts):
            raise ProviderRejected(
                f"Embedding response size mismatch: expected {len(texts)}, "
                f"got {len(data) if isinstance(data, list) else 'none'}"
            )
        try:
            ordered = sorted(
                enumerate(data),
                key=lambda item: int(item[1].get("index", item[0])) if isinstance(item[1], dict) else item[0],
            )
            vectors: List[List[float]] = []
            for _, item in ordered:
                embedding = item.get("embedding") if isinstance(item, dict) else None
                if not isinstance(embedding, list):
                    raise ProviderRejected("Embedding response item is missing an 'embedding' list")
                vectors.append([float(value) for value in embedding])
        except (TypeError, ValueError) as error:
            raise ProviderRejected("Malformed embedding response", cause=error) from error
        return vectors

    def close(self) -> None:
        self._client.close()


class HTTPGenerationProvider(GenerationProvider):
    """Call an OpenAI-compatible ``/chat/completions`` endpoint."""

    def __init__(
        self,
        endpoint: str,
        model: str,
        *,
        api_key: Optional[str] = None,
        timeout: float = 60.0,
        max_tokens: int = 512,
        temperature: float = 0.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.endpoint = endpoint
        self.model_name = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self._client = _build_client(endpoint, api_key, timeout, transport)

    def generate(self, system_prompt: str, user_prompt: str) -> str:
        payload = {
            "model": self.model_name,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }
        body = _post_json(self._client, "/chat/completions", payload)
        try:
            content = body["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise ProviderRejected("Chat completion response has no message content", cause=exc) from exc
        if not isinstance(content, str) or not content.strip():
            raise ProviderRejected("Chat completion returned an empty answer")
        return content.strip()

    def close(self) -> None:
        self._client.close()


__all__ = ["DEFAULT_EMBEDDING_MODEL", "HTTPEmbeddingProvider", "HTTPGenerationProvider", "RETRYABLE_STATUS_CODES"]
