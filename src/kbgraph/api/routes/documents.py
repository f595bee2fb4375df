"""Endpoints de consulta: resolve, related y traverse."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query, Request

from kbgraph.api.schemas import DocumentItem, DocumentListResponse
from kbgraph.knowledge_base import KnowledgeBase
from kbgraph.models import NotFound

router = APIRouter(prefix="/documents")


def _ready_kb(request: Request) -> KnowledgeBase:
    kb: KnowledgeBase = request.app.state.kb
    if not kb.is_ready:
        raise HTTPException(status_code=503, detail="El corpus todavía no fue indexado")
    return kb


def _not_found(result: NotFound) -> HTTPException:
    return HTTPException(status_code=404, detail=f"Documento no encontrado: {result.query}")


@router.get("/resolve", response_model=DocumentItem)
async def resolve(
    request: Request,
    ref: str = Query(..., min_length=1),
    canonical: bool = False,
    include_body: bool = False,
) -> DocumentItem:
    """Resuelve un id o path (case-insensitive, extensión opcional)."""
    result = _ready_kb(request).resolve(ref, canonical=canonical)
    if isinstance(result, NotFound):
        raise _not_found(result)
    return DocumentItem.from_document(result, include_body=include_body)


@router.get("/related", response_model=DocumentListResponse)
async def related(request: Request, ref: str = Query(..., min_length=1)) -> DocumentListResponse:
    """Documentos relacionados y variantes del mismo grupo canónico."""
    result = _ready_kb(request).related_to(ref)
    if isinstance(result, NotFound):
        raise _not_found(result)
    items = [DocumentItem.from_document(doc) for doc in result]
    return DocumentListResponse(documents=items, total=len(items))


@router.get("/traverse", response_model=DocumentListResponse)
async def traverse(
    request: Request,
    ref: str = Query(..., min_length=1),
    max_depth: int = Query(default=2, ge=0, le=10),
    include_body: bool = False,
) -> DocumentListResponse:
    """Documento más todo lo que referencia, hasta ``max_depth`` saltos."""
    result = _ready_kb(request).traverse(ref, max_depth)
    if isinstance(result, NotFound):
        raise _not_found(result)
    items = [DocumentItem.from_document(doc, include_body=include_body) for doc in result]
    return DocumentListResponse(documents=items, total=len(items))
