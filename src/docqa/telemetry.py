"""Centralised observability helpers for structured lifecycle logging."""

from __future__ import annotations

import logging
import os
import platform
import sys
import time
import traceback
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterable, Iterator, Optional

LOGGER = logging.getLogger("docqa.telemetry")

_ENV_KEYS_TO_LOG: tuple[str, ...] = (
    "CHUNK_SIZE",
    "CHUNK_OVERLAP",
    "TOP_K",
    "SIMILARITY_THRESHOLD",
    "SESSION_HISTORY_WINDOW",
    "EMBEDDING_PROVIDER",
    "EMBEDDING_ENDPOINT",
    "EMBEDDING_MODEL",
    "EMBEDDING_DIMENSION",
    "LLM_PROVIDER",
    "LLM_ENDPOINT",
    "LLM_MODEL",
    "VECTOR_STORE",
    "CHROMA_PERSIST_DIR",
    "MEMORY_STORE_PATH",
)


def _format_exception(error: BaseException) -> str:
    return "".join(traceback.format_exception(error.__class__, error, error.__traceback__))


def log_event(
    logger: Optional[logging.Logger],
    step: str,
    *,
    level: str = "info",
    req_id: str | None = None,
    session_id: str | None = None,
    document_id: str | None = None,
    duration_ms: float | None = None,
    exc: BaseException | str | None = None,
    details: dict[str, Any] | None = None,
    **payload: Any,
) -> None:
    """Emit a structured log event with the agreed-upon schema."""

    logger = logger or LOGGER
    event: dict[str, Any] = {"step": step, "module": logger.name}
    if req_id:
        event["req_id"] = req_id
    if session_id:
        event["session_id"] = session_id
    if document_id:
        event["document_id"] = document_id
    if duration_ms is not None:
        event["duration_ms"] = round(duration_ms, 3)
    if details is not None:
        event["details"] = details
    event.update(payload)

    exc_info = None
    if exc is not None:
        if isinstance(exc, BaseException):
            event["exc"] = _format_exception(exc)
            exc_info = (exc.__class__, exc, exc.__traceback__)
        else:
            event["exc"] = str(exc)

    log_method = getattr(logger, level.lower(), logger.info)
    log_method(event, exc_info=exc_info)


def emit_app_startup_event() -> None:
    env_values = {key: os.getenv(key) for key in _ENV_KEYS_TO_LOG if os.getenv(key) is not None}
    details = {
        "cwd": str(Path.cwd()),
        "env": env_values,
        "python": sys.version.split()[0],
        "platform": platform.platform(),
    }
    log_event(LOGGER, "app.startup", details=details)


def emit_provider_init(*, kind: str, provider: str, model: str | None, endpoint: str | None) -> None:
    details = {"kind": kind, "provider": provider, "model": model, "endpoint": endpoint}
    log_event(LOGGER, "provider.init", details=details)


def emit_embeddings_event(
    *, model: str, count: int, duration_ms: float, errors: list[str] | None = None
) -> None:
    details = {
        "model": model,
        "count": count,
        "errors": errors or [],
        "per_item_ms": round(duration_ms / count, 3) if count else None,
    }
    level = "warning" if errors else "info"
    log_event(LOGGER, "embeddings.compute", level=level, duration_ms=duration_ms, details=details)


def emit_provider_retry(*, operation: str, attempt: int, error: BaseException, identifiers: Iterable[str]) -> None:
    details = {
        "operation": operation,
        "attempt": attempt,
        "error": str(error),
        "identifiers": list(identifiers)[:20],
    }
    log_event(LOGGER, "provider.retry", level="warning", details=details)


def emit_vectorstore_event(
    step: str,
    *,
    backend: str,
    count: int,
    document_id: str | None = None,
    duration_ms: float | None = None,
    error: BaseException | None = None,
) -> None:
    details = {"backend": backend, "count": count}
    level = "error" if error else "info"
    log_event(
        LOGGER,
        step,
        level=level,
        document_id=document_id,
        duration_ms=duration_ms,
        details=details,
        exc=error,
    )


def emit_retriever_event(
    *,
    query: str,
    top_k: int,
    threshold: float,
    results: list[dict[str, Any]],
    duration_ms: float,
) -> None:
    details = {
        "query_preview": query[:120],
        "top_k": top_k,
        "threshold": threshold,
        "results": results,
    }
    log_event(LOGGER, "retriever.search", duration_ms=duration_ms, details=details)


def emit_prompt_event(
    *,
    system_prompt: str,
    sources: Iterable[str],
    context_chars: int,
    history_turns: int,
) -> None:
    details = {
        "system_prompt_preview": system_prompt[:120],
        "sources": list(sources),
        "context_chars": context_chars,
        "history_turns": history_turns,
    }
    log_event(LOGGER, "prompt.compose", details=details)


def emit_inference_request(
    *,
    req_id: str,
    session_id: str,
    model: str,
    prompt_len: int,
    max_tokens: int | None,
    temperature: float | None,
    sources: Iterable[str],
) -> None:
    details = {
        "model": model,
        "prompt_len": prompt_len,
        "max_tokens": max_tokens,
        "temperature": temperature,
        "sources": list(sources),
    }
    log_event(LOGGER, "inference.request", req_id=req_id, session_id=session_id, details=details)


def emit_inference_result(
    *,
    req_id: str,
    session_id: str,
    duration_ms: float,
    model_used: str,
    answer_preview: str,
    refused: bool,
) -> None:
    details = {
        "model_used": model_used,
        "answer_preview": answer_preview[:120],
        "refused": refused,
    }
    log_event(
        LOGGER,
        "inference.result",
        req_id=req_id,
        session_id=session_id,
        duration_ms=duration_ms,
        details=details,
    )


def emit_ingest_event(
    step: str,
    *,
    document_id: str,
    mime_type: str | None = None,
    state: str | None = None,
    chunks: int | None = None,
    duration_ms: float | None = None,
    reason: str | None = None,
) -> None:
    details = {
        "mime_type": mime_type,
        "state": state,
        "chunks": chunks,
        "reason": reason,
    }
    level = "warning" if reason else "info"
    log_event(LOGGER, step, level=level, document_id=document_id, duration_ms=duration_ms, details=details)


def emit_exception(
    *,
    module: str,
    error: BaseException,
    req_id: str | None = None,
    session_id: str | None = None,
    document_id: str | None = None,
) -> None:
    log_event(
        LOGGER,
        "exception",
        level="error",
        req_id=req_id,
        session_id=session_id,
        document_id=document_id,
        details={"module": module},
        exc=error,
    )


@contextmanager
def traced_duration(step: str, *, logger: Optional[logging.Logger] = None, **fields: Any) -> Iterator[None]:
    start = time.perf_counter()
    log_event(logger or LOGGER, f"{step}.start", level="debug", details=fields)
    try:
        yield
    except Exception as error:
        log_event(logger or LOGGER, f"{step}.error", level="warning", details={**fields, "error": str(error)})
        raise
    finally:
        log_event(
            logger or LOGGER,
            f"{step}.complete",
            level="debug",
            duration_ms=(time.perf_counter() - start) * 1000.0,
            details=fields,
        )


__all__ = [
    "emit_app_startup_event",
    "emit_embeddings_event",
    "emit_exception",
    "emit_inference_request",
    "emit_inference_result",
    "emit_ingest_event",
    "emit_prompt_event",
    "emit_provider_init",
    "emit_provider_retry",
    "emit_retriever_event",
    "emit_vectorstore_event",
    "log_event",
    "traced_duration",
]
