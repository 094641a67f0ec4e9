from __future__ import annotations

import json

import httpx
import pytest

from docqa.embeddings import EmbeddingClient
from docqa.errors import ProviderRejected, ProviderUnavailable, QueryFailed, TransientProviderError
from docqa.memory import SessionMemory
from docqa.providers import EchoGenerationProvider, HTTPEmbeddingProvider, HTTPGenerationProvider
from docqa.retriever import Retriever
from docqa.services.query import QueryOrchestrator, QueryRequest
from docqa.vectorstore import InMemoryVectorIndex


def _embedding_handler(request: httpx.Request) -> httpx.Response:
    payload = json.loads(request.content)
    data = [
        {"index": index, "embedding": [float(len(text)), float(index)]}
        for index, text in enumerate(payload["input"])
    ]
    # Providers may return items out of order; ``index`` is authoritative.
    return httpx.Response(200, json={"data": list(reversed(data)), "model": payload["model"]})


def test_http_embeddings_are_reordered_by_index() -> None:
    provider = HTTPEmbeddingProvider(
        "http://embeddings.test/v1",
        "test-model",
        transport=httpx.MockTransport(_embedding_handler),
    )

    vectors = provider.embed_batch(["a", "bbb", "cc"])

    assert vectors == [[1.0, 0.0], [3.0, 1.0], [2.0, 2.0]]


def test_http_embeddings_send_model_and_bearer_token() -> None:
    seen: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("Authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"data": [{"index": 0, "embedding": [0.5]}]})

    provider = HTTPEmbeddingProvider(
        "http://embeddings.test/v1",
        "nomic-embed-text",
        api_key="secret",
        transport=httpx.MockTransport(handler),
    )
    provider.embed_batch(["hello"])

    assert seen["url"] == "http://embeddings.test/v1/embeddings"
    assert seen["auth"] == "Bearer secret"
    assert seen["body"] == {"model": "nomic-embed-text", "input": ["hello"]}


@pytest.mark.parametrize("status", [429, 500, 503])
def test_retryable_statuses_raise_transient_errors(status: int) -> None:
    provider = HTTPEmbeddingProvider(
        "http://embeddings.test/v1",
        "m",
        transport=httpx.MockTransport(lambda request: httpx.Response(status)),
    )

    with pytest.raises(TransientProviderError) as excinfo:
        provider.embed_batch(["x"])
    assert excinfo.value.status_code == status


@pytest.mark.parametrize("status", [400, 401, 403])
def test_client_errors_are_rejected(status: int) -> None:
    provider = HTTPEmbeddingProvider(
        "http://embeddings.test/v1",
        "m",
        transport=httpx.MockTransport(lambda request: httpx.Response(status, text="quota exceeded")),
    )

    with pytest.raises(ProviderRejected) as excinfo:
        provider.embed_batch(["x"])
    assert excinfo.value.status_code == status


def test_timeouts_are_transient() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("too slow", request=request)

    provider = HTTPEmbeddingProvider("http://embeddings.test/v1", "m", transport=httpx.MockTransport(handler))

    with pytest.raises(TransientProviderError):
        provider.embed_batch(["x"])


def test_client_retries_http_failures_then_succeeds() -> None:
    responses = iter(
        [
            httpx.Response(503),
            httpx.Response(429),
            httpx.Response(200, json={"data": [{"index": 0, "embedding": [1.0, 0.0]}]}),
        ]
    )
    provider = HTTPEmbeddingProvider(
        "http://embeddings.test/v1",
        "m",
        transport=httpx.MockTransport(lambda request: next(responses)),
    )
    client = EmbeddingClient(provider, dimension=2, max_attempts=3, backoff_seconds=0.0, backoff_max_seconds=0.0)

    assert client.embed(["x"]) == [[1.0, 0.0]]


def test_client_gives_up_after_max_attempts() -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(502)

    provider = HTTPEmbeddingProvider("http://embeddings.test/v1", "m", transport=httpx.MockTransport(handler))
    client = EmbeddingClient(provider, dimension=2, max_attempts=2, backoff_seconds=0.0, backoff_max_seconds=0.0)

    with pytest.raises(ProviderUnavailable) as excinfo:
        client.embed(["x"], identifiers=["doc-1:0"])

    assert len(calls) == 2
    assert excinfo.value.identifiers == ("doc-1:0",)


def test_generation_provider_returns_message_content() -> None:
    seen: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={"choices": [{"message": {"role": "assistant", "content": "  Two years.  "}}]},
        )

    provider = HTTPGenerationProvider(
        "http://llm.test/v1",
        "llama3.1",
        max_tokens=64,
        temperature=0.1,
        transport=httpx.MockTransport(handler),
    )

    assert provider.generate("system text", "user text") == "Two years."
    assert seen["url"] == "http://llm.test/v1/chat/completions"
    body = seen["body"]
    assert body["model"] == "llama3.1"
    assert body["max_tokens"] == 64
    assert body["messages"] == [
        {"role": "system", "content": "system text"},
        {"role": "user", "content": "user text"},
    ]


def test_generation_provider_rejects_empty_answers() -> None:
    provider = HTTPGenerationProvider(
        "http://llm.test/v1",
        "llama3.1",
        transport=httpx.MockTransport(
            lambda request: httpx.Response(200, json={"choices": [{"message": {"content": ""}}]})
        ),
    )

    with pytest.raises(ProviderRejected):
        provider.generate("s", "u")


@pytest.mark.parametrize(
    "item",
    [
        {"index": 0, "embedding": [None, 1.0]},
        {"index": 0, "embedding": ["high", 1.0]},
        {"index": None, "embedding": [0.5, 1.0]},
    ],
)
def test_malformed_embedding_payload_is_rejected(item: dict) -> None:
    provider = HTTPEmbeddingProvider(
        "http://embeddings.test/v1",
        "test-model",
        transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"data": [item]})),
    )

    with pytest.raises(ProviderRejected, match="Malformed embedding response"):
        provider.embed_batch(["hello"])


def test_malformed_query_embedding_surfaces_as_retrieval_failure() -> None:
    provider = HTTPEmbeddingProvider(
        "http://embeddings.test/v1",
        "test-model",
        transport=httpx.MockTransport(
            lambda request: httpx.Response(200, json={"data": [{"index": 0, "embedding": [None, 1.0]}]})
        ),
    )
    client = EmbeddingClient(provider, dimension=2, max_attempts=2, backoff_seconds=0.0, backoff_max_seconds=0.0)
    orchestrator = QueryOrchestrator(
        retriever=Retriever(client, InMemoryVectorIndex(dimension=2)),
        memory=SessionMemory(),
        generator=EchoGenerationProvider(),
        max_attempts=1,
        backoff_seconds=0.0,
        backoff_max_seconds=0.0,
    )

    with pytest.raises(QueryFailed) as excinfo:
        orchestrator.answer(QueryRequest(query_text="warranty?", session_id="s"))

    assert excinfo.value.stage == "retrieval"
