"""Query orchestration: retrieval, grounding guardrail, generation and memory."""
from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import List, Optional

from docqa.errors import (
    NoRelevantContext,
    ProviderRejected,
    ProviderUnavailable,
    QueryFailed,
    VectorStoreUnavailableError,
)
from docqa.memory import SessionMemory
from docqa.models import SearchResult
from docqa.prompt_builder import build_prompt
from docqa.providers import GenerationProvider
from docqa.providers.retry import call_with_retry
from docqa.retriever import Retriever
from docqa.telemetry import emit_exception, emit_inference_request, emit_inference_result

LOGGER = logging.getLogger(__name__)

REFUSAL_MESSAGE = "I'm sorry, I can only answer questions based on the uploaded document(s)."
RETRIEVAL_FAILED_MESSAGE = "The document search is temporarily unavailable. Please try again later."
GENERATION_FAILED_MESSAGE = "The answer could not be generated right now. Please try again later."


@dataclass(slots=True)
class QueryRequest:
    query_text: str
    session_id: str


@dataclass(slots=True)
class QueryResponse:
    answer: str
    sources: List[str] = field(default_factory=list)


def distinct_sources(results: List[SearchResult]) -> List[str]:
    """Document ids of *results* without duplicates, in result order."""

    seen: dict[str, None] = {}
    for result in results:
        seen.setdefault(result.record.document_id, None)
    return list(seen)


class QueryOrchestrator:
    """Answer questions strictly from indexed document content.

    When retrieval finds nothing above the similarity threshold the fixed
    refusal is returned without calling the generation provider. Session
    memory only changes after a successful generation, when both the user
    turn and the assistant turn are appended.
    """

    def __init__(
        self,
        *,
        retriever: Retriever,
        memory: SessionMemory,
        generator: GenerationProvider,
        history_turns: Optional[int] = None,
        max_attempts: int = 5,
        backoff_seconds: float = 1.0,
        backoff_max_seconds: float = 30.0,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> None:
        self.retriever = retriever
        self.memory = memory
        self.generator = generator
        self.history_turns = history_turns
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self.backoff_max_seconds = backoff_max_seconds
        self.max_tokens = max_tokens
        self.temperature = temperature

    def answer(self, request: QueryRequest) -> QueryResponse:
        req_id = uuid.uuid4().hex
        try:
            results = self._retrieve(request, req_id)
        except NoRelevantContext:
            LOGGER.info("No context above threshold for session %s; refusing", request.session_id)
            emit_inference_result(
                req_id=req_id,
                session_id=request.session_id,
                duration_ms=0.0,
                model_used=self.generator.model_name,
                answer_preview=REFUSAL_MESSAGE,
                refused=True,
            )
            return QueryResponse(answer=REFUSAL_MESSAGE, sources=[])

        sources = distinct_sources(results)
        history = self.memory.history(request.session_id, self.history_turns)
        prompt = build_prompt(request.query_text, results, history)

        emit_inference_request(
            req_id=req_id,
            session_id=request.session_id,
            model=self.generator.model_name,
            prompt_len=len(prompt.system) + len(prompt.user),
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            sources=sources,
        )
        started = time.perf_counter()
        try:
            answer = call_with_retry(
                lambda: self.generator.generate(prompt.system, prompt.user),
                operation=f"generate[{self.generator.model_name}]",
                max_attempts=self.max_attempts,
                backoff_seconds=self.backoff_seconds,
                backoff_max_seconds=self.backoff_max_seconds,
                identifiers=[req_id],
            )
        except (ProviderUnavailable, ProviderRejected) as error:
            emit_exception(module=__name__, error=error, req_id=req_id, session_id=request.session_id)
            raise QueryFailed(GENERATION_FAILED_MESSAGE, stage="generation", cause=error) from error

        self.memory.append_exchange(request.session_id, request.query_text, answer)
        emit_inference_result(
            req_id=req_id,
            session_id=request.session_id,
            duration_ms=(time.perf_counter() - started) * 1000.0,
            model_used=self.generator.model_name,
            answer_preview=answer,
            refused=False,
        )
        return QueryResponse(answer=answer, sources=sources)

    def _retrieve(self, request: QueryRequest, req_id: str) -> List[SearchResult]:
        try:
            results = self.retriever.retrieve(request.query_text)
        except (ProviderUnavailable, ProviderRejected, VectorStoreUnavailableError, ValueError) as error:
            emit_exception(module=__name__, error=error, req_id=req_id, session_id=request.session_id)
            raise QueryFailed(RETRIEVAL_FAILED_MESSAGE, stage="retrieval", cause=error) from error
        if not results:
            raise NoRelevantContext(f"No chunk above threshold for session {request.session_id}")
        return results


__all__ = [
    "GENERATION_FAILED_MESSAGE",
    "QueryOrchestrator",
    "QueryRequest",
    "QueryResponse",
    "REFUSAL_MESSAGE",
    "RETRIEVAL_FAILED_MESSAGE",
    "distinct_sources",
]
