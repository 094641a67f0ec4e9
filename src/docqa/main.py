"""FastAPI application entry point."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, TypeVar

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.responses import PlainTextResponse

from docqa.api import router as rag_router
from docqa.config import get_settings
from docqa.errors import DocQAError
from docqa.logging_config import configure_logging
from docqa.services.rag import RAGService, get_rag_service
from docqa.telemetry import emit_app_startup_event

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


@asynccontextmanager
async def lifespan(application: FastAPI) -> AsyncIterator[None]:
    """Validate configuration and set up logging before serving requests."""

    load_dotenv()
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_dir)
    emit_app_startup_event()
    yield
    if get_rag_service.cache_info().currsize:  # type: ignore[attr-defined]
        get_rag_service().close()


app = FastAPI(title="Document Q&A API", lifespan=lifespan)
app.include_router(rag_router)


def _resolve_dependency(factory: Callable[[], T]) -> T:
    """Resolve a dependency while respecting FastAPI overrides."""

    override: Any | None = app.dependency_overrides.get(factory)
    resolved: Any = override if override is not None else factory
    return resolved() if callable(resolved) else resolved


@app.get("/healthz", response_class=PlainTextResponse)
def healthcheck() -> str:
    """Liveness probe used by container orchestrators."""
    return "ok"


@app.get("/readyz", response_class=PlainTextResponse)
def readiness_probe() -> str:
    """Readiness probe that ensures the vector index can be reached."""

    try:
        service: RAGService = _resolve_dependency(get_rag_service)
        service.vector_index.count()
    except DocQAError as exc:
        LOGGER.warning("Readiness check failed: %s", exc)
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return "ok"


__all__ = ["app", "lifespan"]
