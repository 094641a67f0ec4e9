"""Utilities for constructing grounded prompts from retrieved context."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List, Sequence

from docqa.models import SearchResult, SessionTurn
from docqa.telemetry import emit_prompt_event

_PROMPTS_DIR = Path(__file__).resolve().parent / "prompts"
_SYSTEM_PROMPT_PATH = _PROMPTS_DIR / "system.txt"
_USER_PROMPT_PATH = _PROMPTS_DIR / "user.md"

_NO_HISTORY = "(no previous turns)"


def _load_template(path: Path) -> str:
    """Read and trim the contents of a template file."""
    return path.read_text(encoding="utf-8").strip()


SYSTEM_PROMPT = _load_template(_SYSTEM_PROMPT_PATH)
_USER_TEMPLATE = _load_template(_USER_PROMPT_PATH)


@dataclass(frozen=True, slots=True)
class Prompt:
    system: str
    user: str


def _format_context(results: Sequence[SearchResult]) -> List[str]:
    sections: List[str] = []
    for result in results:
        content = result.record.text.strip()
        if not content:
            continue
        citation = f"{result.record.document_id}#{result.record.chunk_index}"
        sections.append(f"[{len(sections) + 1}] ({citation}) {content}")
    return sections


def _format_history(history: Sequence[SessionTurn]) -> str:
    if not history:
        return _NO_HISTORY
    return "\n".join(f"{turn.role.value.capitalize()}: {turn.content.strip()}" for turn in history)


def build_prompt(
    question: str,
    results: Sequence[SearchResult],
    history: Sequence[SessionTurn] = (),
) -> Prompt:
    """Compose the system and user messages for a grounded answer.

    Context passages keep the order they were retrieved in, which is
    descending similarity. History turns are rendered oldest first.
    """

    if question is None:
        raise ValueError("question must not be None")

    sections = _format_context(results)
    context_block = "\n\n".join(sections)
    user = _USER_TEMPLATE.format(
        context=context_block,
        history=_format_history(history),
        question=question.strip(),
    )

    emit_prompt_event(
        system_prompt=SYSTEM_PROMPT,
        sources=[result.record.document_id for result in results],
        context_chars=len(context_block),
        history_turns=len(history),
    )
    return Prompt(system=SYSTEM_PROMPT, user=user)


__all__ = ["Prompt", "SYSTEM_PROMPT", "build_prompt"]
