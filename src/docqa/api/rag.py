"""API router exposing document ingestion and question answering endpoints."""
from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from pydantic import BaseModel, ConfigDict, Field

from docqa.errors import IndexWriteFailed, QueryFailed, VectorStoreUnavailableError
from docqa.ingest import guess_mime_type
from docqa.models import IngestionReport, IngestionState
from docqa.services.query import QueryResponse
from docqa.services.rag import RAGService, get_rag_service

router = APIRouter(tags=["rag"])

_GENERIC_CONTENT_TYPES = {"", "application/octet-stream", "binary/octet-stream"}
_FAILURE_STATUS = {
    "ExtractionFailed": 422,
    "ProviderRejected": 502,
    "ProviderUnavailable": 503,
    "IndexWriteFailed": 503,
    "VectorStoreUnavailableError": 503,
}


class IngestReportResponse(BaseModel):
    """Outcome of one ingestion run."""

    document_id: str
    state: str
    chunk_count: int
    reason: Optional[str] = None
    error_type: Optional[str] = None
    transitions: list[str]
    duration_seconds: float


class TextIngestRequest(BaseModel):
    """Pre-extracted document text."""

    text: str
    mime_type: str = Field("text/plain", description="Mime type of the source the text came from.")
    metadata: dict[str, str | int | float | bool] = Field(default_factory=dict)


class DocumentStatusResponse(BaseModel):
    document_id: str
    record_count: int
    last_report: Optional[IngestReportResponse] = None


class DeleteResponse(BaseModel):
    document_id: str
    removed_records: int


class QueryBody(BaseModel):
    """Request body accepted by the query endpoint."""

    query_text: str = Field(..., min_length=1, description="Question to answer from the uploaded documents.")
    session_id: str = Field(..., min_length=1, description="Conversation the question belongs to.")


class ChatBody(BaseModel):
    """Conversational request body as sent by chat front-ends."""

    model_config = ConfigDict(populate_by_name=True)

    chat_input: str = Field(..., alias="chatInput", min_length=1)
    session_id: str = Field(..., alias="sessionId", min_length=1)


class AnswerResponse(BaseModel):
    answer: str
    sources: list[str]


def _report_response(report: IngestionReport) -> IngestReportResponse:
    payload: dict[str, Any] = report.as_dict()
    return IngestReportResponse(**payload)


def _finish_ingest(report: IngestionReport) -> IngestReportResponse:
    response = _report_response(report)
    if report.state is IngestionState.FAILED:
        status_code = _FAILURE_STATUS.get(report.error_type or "", 500)
        raise HTTPException(status_code=status_code, detail=response.model_dump())
    return response


def _resolve_mime_type(upload: UploadFile, explicit: Optional[str]) -> str:
    if explicit and explicit.strip():
        return explicit.strip()
    content_type = (upload.content_type or "").strip().lower()
    if content_type not in _GENERIC_CONTENT_TYPES:
        return content_type
    return guess_mime_type(upload.filename or "")


def _answer(rag_service: RAGService, query_text: str, session_id: str) -> AnswerResponse:
    if not query_text.strip():
        raise HTTPException(status_code=422, detail="Question must not be empty")
    try:
        result: QueryResponse = rag_service.answer(query_text, session_id)
    except QueryFailed as exc:
        status_code = 502 if exc.stage == "generation" else 503
        raise HTTPException(status_code=status_code, detail=exc.user_message) from exc
    return AnswerResponse(answer=result.answer, sources=result.sources)


@router.post("/documents/{document_id}/ingest", response_model=IngestReportResponse)
def ingest_document(
    document_id: str,
    file: UploadFile = File(...),
    mime_type: Optional[str] = Form(None),
    rag_service: RAGService = Depends(get_rag_service),
) -> IngestReportResponse:
    """Extract, chunk, embed and index an uploaded file under *document_id*."""

    raw_bytes = file.file.read()
    resolved = _resolve_mime_type(file, mime_type)
    metadata = {"file_name": file.filename} if file.filename else {}
    report = rag_service.ingest_source(document_id, resolved, raw_bytes, metadata)
    return _finish_ingest(report)


@router.post("/documents/{document_id}/text", response_model=IngestReportResponse)
def ingest_text(
    document_id: str,
    request: TextIngestRequest,
    rag_service: RAGService = Depends(get_rag_service),
) -> IngestReportResponse:
    """Index text that was already extracted upstream."""

    report = rag_service.ingest_text(
        document_id,
        request.text,
        mime_type=request.mime_type,
        metadata=dict(request.metadata),
    )
    return _finish_ingest(report)


@router.get("/documents/{document_id}", response_model=DocumentStatusResponse)
def document_status(
    document_id: str,
    rag_service: RAGService = Depends(get_rag_service),
) -> DocumentStatusResponse:
    try:
        record_count = rag_service.record_count(document_id)
    except VectorStoreUnavailableError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    report = rag_service.status(document_id)
    if report is None and record_count == 0:
        raise HTTPException(status_code=404, detail=f"Unknown document: {document_id}")
    return DocumentStatusResponse(
        document_id=document_id,
        record_count=record_count,
        last_report=_report_response(report) if report is not None else None,
    )


@router.delete("/documents/{document_id}", response_model=DeleteResponse)
def delete_document(
    document_id: str,
    rag_service: RAGService = Depends(get_rag_service),
) -> DeleteResponse:
    try:
        removed = rag_service.delete(document_id)
    except (IndexWriteFailed, VectorStoreUnavailableError) as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return DeleteResponse(document_id=document_id, removed_records=removed)


@router.post("/query", response_model=AnswerResponse)
def query_documents(
    request: QueryBody,
    rag_service: RAGService = Depends(get_rag_service),
) -> AnswerResponse:
    """Answer a question using only the indexed documents."""

    return _answer(rag_service, request.query_text, request.session_id)


@router.post("/chat", response_model=AnswerResponse)
def chat(
    request: ChatBody,
    rag_service: RAGService = Depends(get_rag_service),
) -> AnswerResponse:
    """Conversational variant of :func:`query_documents`."""

    return _answer(rag_service, request.chat_input, request.session_id)
