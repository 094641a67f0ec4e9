from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest

from docqa.errors import ProviderRejected, QueryFailed, TransientProviderError, VectorStoreUnavailableError
from docqa.memory import SessionMemory
from docqa.models import Document, IndexRecord, IngestionState, Role
from docqa.retriever import Retriever
from docqa.services.query import REFUSAL_MESSAGE, QueryOrchestrator, QueryRequest
from docqa.vectorstore import InMemoryVectorIndex

from conftest import FakeGenerator, KeywordEmbeddingProvider, make_embedding_client


class _BrokenIndex(InMemoryVectorIndex):
    def search(self, query_vector, top_k, similarity_threshold):
        raise VectorStoreUnavailableError("index offline")


def _orchestrator(generator=None, index=None, memory=None, history_turns=None):
    provider = KeywordEmbeddingProvider()
    client = make_embedding_client(provider)
    index = index if index is not None else InMemoryVectorIndex(dimension=provider.dimension)
    retriever = Retriever(client, index, top_k=4, similarity_threshold=0.75)
    return QueryOrchestrator(
        retriever=retriever,
        memory=memory or SessionMemory(window=10),
        generator=generator or FakeGenerator(),
        history_turns=history_turns,
        max_attempts=2,
        backoff_seconds=0.0,
        backoff_max_seconds=0.0,
    )


def _seed(rag_service) -> None:
    documents = [
        ("policy.txt", "The warranty covers parts for two years."),
        ("billing.txt", "Every invoice is due within thirty days."),
        ("terms.txt", "Warranty claims require the original invoice."),
    ]
    for document_id, text in documents:
        report = rag_service.coordinator.ingest_document(Document(document_id, "text/plain", text))
        assert report.state is IngestionState.COMPLETE


def test_no_match_returns_fixed_refusal_without_generation(rag_service, generator) -> None:
    _seed(rag_service)

    response = rag_service.answer("What about shipping?", "session-1")

    assert response.answer == REFUSAL_MESSAGE
    assert response.answer == "I'm sorry, I can only answer questions based on the uploaded document(s)."
    assert response.sources == []
    assert generator.prompts == []
    assert rag_service.memory.history("session-1") == []


def test_refusal_on_empty_index(rag_service) -> None:
    response = rag_service.answer("Is there a warranty?", "session-1")

    assert response.answer == REFUSAL_MESSAGE
    assert response.sources == []


def test_grounded_answer_records_both_turns(rag_service, generator) -> None:
    _seed(rag_service)

    response = rag_service.answer("How long is the warranty?", "session-1")

    assert response.answer == generator.answer
    assert response.sources == ["policy.txt"]
    system_prompt, user_prompt = generator.prompts[0]
    assert "ONLY" in system_prompt
    assert "The warranty covers parts for two years." in user_prompt
    turns = rag_service.memory.history("session-1")
    assert [(turn.role, turn.content) for turn in turns] == [
        (Role.USER, "How long is the warranty?"),
        (Role.ASSISTANT, generator.answer),
    ]


def test_sources_are_distinct_and_in_similarity_order(rag_service) -> None:
    _seed(rag_service)

    response = rag_service.answer("Does a warranty claim need the invoice?", "session-1")

    assert response.sources == ["terms.txt"]


def test_follow_up_prompt_includes_history(rag_service, generator) -> None:
    _seed(rag_service)
    rag_service.answer("How long is the warranty?", "session-1")

    rag_service.answer("And what does the warranty cover?", "session-1")

    _, user_prompt = generator.prompts[-1]
    assert "User: How long is the warranty?" in user_prompt
    assert f"Assistant: {generator.answer}" in user_prompt


def test_history_of_other_sessions_is_not_used(rag_service, generator) -> None:
    _seed(rag_service)
    rag_service.answer("How long is the warranty?", "session-a")

    rag_service.answer("How long is the warranty?", "session-b")

    _, user_prompt = generator.prompts[-1]
    assert "(no previous turns)" in user_prompt


def test_generation_failure_raises_and_leaves_memory_untouched() -> None:
    memory = SessionMemory(window=10)
    generator = FakeGenerator(error=ProviderRejected("content policy", status_code=400))
    orchestrator = _orchestrator(generator=generator, memory=memory)
    _index_warranty(orchestrator)

    with pytest.raises(QueryFailed) as excinfo:
        orchestrator.answer(QueryRequest(query_text="warranty?", session_id="s"))

    assert excinfo.value.stage == "generation"
    assert excinfo.value.user_message
    assert memory.history("s") == []


def test_transient_generation_failures_are_retried_then_reported() -> None:
    generator = FakeGenerator(error=TransientProviderError("timeout"))
    orchestrator = _orchestrator(generator=generator)
    _index_warranty(orchestrator)

    with pytest.raises(QueryFailed) as excinfo:
        orchestrator.answer(QueryRequest(query_text="warranty?", session_id="s"))

    assert excinfo.value.stage == "generation"
    assert len(generator.prompts) == 2


def test_retrieval_failure_raises_query_failed() -> None:
    memory = SessionMemory(window=10)
    generator = FakeGenerator()
    orchestrator = _orchestrator(generator=generator, index=_BrokenIndex(), memory=memory)

    with pytest.raises(QueryFailed) as excinfo:
        orchestrator.answer(QueryRequest(query_text="warranty?", session_id="s"))

    assert excinfo.value.stage == "retrieval"
    assert generator.prompts == []
    assert memory.history("s") == []


def test_history_turns_bounds_prompt_history() -> None:
    memory = SessionMemory(window=10)
    for position in range(6):
        memory.append("s", Role.USER, f"old question {position}")
    generator = FakeGenerator()
    orchestrator = _orchestrator(generator=generator, memory=memory, history_turns=2)
    _index_warranty(orchestrator)

    orchestrator.answer(QueryRequest(query_text="warranty?", session_id="s"))

    _, user_prompt = generator.prompts[0]
    assert "old question 3" not in user_prompt
    assert "old question 4" in user_prompt
    assert "old question 5" in user_prompt


def _index_warranty(orchestrator: QueryOrchestrator) -> None:
    orchestrator.retriever.vector_index.upsert(
        [
            IndexRecord(
                document_id="doc",
                chunk_index=0,
                vector=[1.0, 0.0, 0.0, 0.0],
                text="The warranty lasts two years.",
            )
        ]
    )


def test_concurrent_answers_in_one_session_record_paired_turns(rag_service) -> None:
    _seed(rag_service)
    rag_service.memory = rag_service.orchestrator.memory = SessionMemory(window=100)
    questions = [f"Is warranty case {number} covered?" for number in range(12)]

    with ThreadPoolExecutor(max_workers=6) as executor:
        list(executor.map(lambda question: rag_service.answer(question, "shared"), questions))

    turns = rag_service.memory.history("shared")
    assert len(turns) == 24
    assert [turn.role for turn in turns] == [Role.USER, Role.ASSISTANT] * 12
    assert sorted(turn.content for turn in turns[::2]) == sorted(questions)
