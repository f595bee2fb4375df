"""Endpoints de indexación y validación."""

from __future__ import annotations

import asyncio

from fastapi import APIRouter, HTTPException, Request

from kbgraph.api.schemas import IndexRequest, IndexResponse, IssueItem, LoadErrorItem, ValidateResponse
from kbgraph.exceptions import KbGraphError
from kbgraph.knowledge_base import KnowledgeBase
from kbgraph.models import Cancelled

router = APIRouter()


@router.post("/index", response_model=IndexResponse)
async def index(body: IndexRequest, request: Request) -> IndexResponse:
    """Reindexa el corpus y reemplaza el snapshot activo."""
    kb: KnowledgeBase = request.app.state.kb

    try:
        result = await asyncio.to_thread(kb.reindex, body.root)
    except (KbGraphError, ValueError) as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    if isinstance(result, Cancelled):
        raise HTTPException(status_code=409, detail=f"Indexación cancelada: {result.reason}")

    snapshot = result.snapshot
    return IndexResponse(
        documents=len(snapshot.documents),
        edges=len(snapshot.graph.edges),
        groups=len(snapshot.groups),
        cycles=len(snapshot.graph.cycles),
        issues=len(snapshot.issues),
        load_errors=[
            LoadErrorItem(path=e.path, kind=e.kind.value, detail=e.detail) for e in snapshot.load_errors
        ],
        fingerprint=snapshot.fingerprint,
        duration_seconds=result.duration_seconds,
    )


@router.get("/validate", response_model=ValidateResponse)
async def validate(request: Request) -> ValidateResponse:
    """Issues de validación del snapshot activo."""
    kb: KnowledgeBase = request.app.state.kb
    if not kb.is_ready:
        raise HTTPException(status_code=503, detail="El corpus todavía no fue indexado")

    issues = [IssueItem.from_issue(i) for i in await asyncio.to_thread(kb.validate)]
    return ValidateResponse(issues=issues, total=len(issues))
