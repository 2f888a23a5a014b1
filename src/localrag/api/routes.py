"""API router exposing indexing, retrieval and chat endpoints."""
from __future__ import annotations

from typing import Any, Literal, NoReturn

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel, Field

from localrag.engine import LocalRagEngine, get_engine
from localrag.errors import (
    CompletionFailed,
    DimensionMismatch,
    EmbeddingUnavailable,
    LocalRagError,
    Timeout,
    VectorStoreError,
)
from localrag.ingest.models import Document
from localrag.rag_service import ChatTurn
from localrag.retriever import ContextFragment

router = APIRouter(tags=["rag"])


class IndexRequest(BaseModel):
    """Request body accepted by the index endpoint."""

    folder: str = Field(..., min_length=1, description="Folder to index.")
    wait: bool = Field(True, description="Block until the pass finishes.")


class DocumentItem(BaseModel):
    id: str
    path: str
    status: str
    stage: str
    note: str | None
    chunk_count: int
    size: int
    mtime: float


class DocumentsResponse(BaseModel):
    documents: list[DocumentItem]


class RetrieveRequest(BaseModel):
    query: str = Field(..., min_length=1, description="Query text to search for.")
    k: int | None = Field(None, ge=1, le=50, description="Maximum number of fragments.")
    context_budget: int | None = Field(None, ge=1, description="Character budget for all fragments.")


class FragmentItem(BaseModel):
    id: str
    path: str
    offset_start: int
    offset_end: int
    score: float
    text: str


class RetrieveResponse(BaseModel):
    fragments: list[FragmentItem]


class ChatTurnModel(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    query: str = Field(..., min_length=1, description="User question.")
    history: list[ChatTurnModel] = Field(default_factory=list)


class SourceItem(BaseModel):
    path: str
    offset_start: int
    offset_end: int


class ChatResponse(BaseModel):
    answer: str
    sources: list[SourceItem]
    context_found: bool


def _raise_http(exc: LocalRagError) -> NoReturn:
    if isinstance(exc, DimensionMismatch):
        status_code = 409
    elif isinstance(exc, Timeout):
        status_code = 504
    elif isinstance(exc, EmbeddingUnavailable):
        status_code = 503
    elif isinstance(exc, CompletionFailed):
        status_code = 502
    elif isinstance(exc, VectorStoreError):
        status_code = 503
    else:
        status_code = 500
    raise HTTPException(status_code=status_code, detail=str(exc)) from exc


def _serialise_document(document: Document) -> DocumentItem:
    return DocumentItem(
        id=document.id,
        path=document.path,
        status=document.status.value,
        stage=document.stage.value,
        note=document.note,
        chunk_count=document.chunk_count,
        size=document.size,
        mtime=document.mtime,
    )


def _serialise_fragment(fragment: ContextFragment) -> FragmentItem:
    return FragmentItem(
        id=fragment.id,
        path=fragment.path,
        offset_start=fragment.start,
        offset_end=fragment.end,
        score=fragment.score,
        text=fragment.text,
    )


@router.get("/status")
def read_status(engine: LocalRagEngine = Depends(get_engine)) -> dict[str, Any]:
    """Backend, entry count, dimension and the state of the current pass."""

    return engine.status()


@router.post("/index")
def index_folder(
    request: IndexRequest,
    response: Response,
    engine: LocalRagEngine = Depends(get_engine),
) -> dict[str, Any]:
    """Index a folder, or attach to the pass already running for it."""

    try:
        result = engine.index_folder(request.folder, wait=request.wait)
    except FileNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except LocalRagError as exc:
        _raise_http(exc)

    if not request.wait:
        response.status_code = 202
        return engine.coordinator.status()
    return result.to_dict()


@router.get("/documents", response_model=DocumentsResponse)
def list_documents(engine: LocalRagEngine = Depends(get_engine)) -> DocumentsResponse:
    """Every known document, failed ones included with their note."""

    return DocumentsResponse(documents=[_serialise_document(document) for document in engine.documents()])


@router.post("/retrieve", response_model=RetrieveResponse)
def retrieve_fragments(
    request: RetrieveRequest,
    engine: LocalRagEngine = Depends(get_engine),
) -> RetrieveResponse:
    if not request.query.strip():
        raise HTTPException(status_code=422, detail="Query must not be empty")
    try:
        fragments = engine.retrieve(request.query, request.k, request.context_budget)
    except LocalRagError as exc:
        _raise_http(exc)
    return RetrieveResponse(fragments=[_serialise_fragment(fragment) for fragment in fragments])


@router.post("/chat", response_model=ChatResponse)
def chat(request: ChatRequest, engine: LocalRagEngine = Depends(get_engine)) -> ChatResponse:
    """Answer a question grounded in the indexed documents."""

    if not request.query.strip():
        raise HTTPException(status_code=422, detail="Query must not be empty")
    history = tuple(ChatTurn(role=turn.role, content=turn.content) for turn in request.history)
    try:
        result = engine.answer(request.query, history)
    except LocalRagError as exc:
        _raise_http(exc)
    return ChatResponse(
        answer=result.answer,
        sources=[SourceItem(**source.to_dict()) for source in result.sources],
        context_found=result.context_found,
    )


__all__ = ["router"]
