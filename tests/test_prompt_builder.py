from __future__ import annotations

import pytest

from docqa.models import IndexRecord, Role, SearchResult, SessionTurn
from docqa.prompt_builder import SYSTEM_PROMPT, build_prompt


def _result(document_id: str, chunk_index: int, text: str, similarity: float) -> SearchResult:
    record = IndexRecord(document_id=document_id, chunk_index=chunk_index, vector=[1.0], text=text)
    return SearchResult(record=record, similarity=similarity)


def test_system_prompt_forbids_outside_knowledge() -> None:
    prompt = build_prompt("What is covered?", [_result("doc", 0, "Coverage text", 0.9)])

    assert prompt.system == SYSTEM_PROMPT
    assert "ONLY" in prompt.system
    assert "outside" in prompt.system.lower()


def test_context_keeps_retrieval_order_and_numbers_passages() -> None:
    results = [
        _result("doc-b", 2, "Most relevant passage", 0.95),
        _result("doc-a", 0, "Second passage", 0.80),
    ]

    prompt = build_prompt("  What applies?  ", results)

    first = prompt.user.index("[1] (doc-b#2) Most relevant passage")
    second = prompt.user.index("[2] (doc-a#0) Second passage")
    assert first < second
    assert prompt.user.rstrip().endswith("What applies?")


def test_history_is_rendered_oldest_first() -> None:
    history = [
        SessionTurn(session_id="s", turn_index=0, role=Role.USER, content="Earlier question"),
        SessionTurn(session_id="s", turn_index=1, role=Role.ASSISTANT, content="Earlier answer"),
    ]

    prompt = build_prompt("Follow-up?", [_result("doc", 0, "text", 0.9)], history)

    assert "User: Earlier question\nAssistant: Earlier answer" in prompt.user


def test_empty_history_is_marked() -> None:
    prompt = build_prompt("Question?", [_result("doc", 0, "text", 0.9)])

    assert "(no previous turns)" in prompt.user


def test_braces_in_context_are_kept_verbatim() -> None:
    prompt = build_prompt("Q?", [_result("doc", 0, "json {\"a\": 1} {value}", 0.9)])

    assert "json {\"a\": 1} {value}" in prompt.user


def test_none_question_is_rejected() -> None:
    with pytest.raises(ValueError):
        build_prompt(None, [])  # type: ignore[arg-type]
