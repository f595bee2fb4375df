"""Endpoint de health check."""

from __future__ import annotations

import asyncio

from fastapi import APIRouter, Request

from kbgraph import __version__
from kbgraph.api.schemas import HealthResponse
from kbgraph.indexer.pipeline import IndexSnapshot

router = APIRouter()


def _fingerprint(snapshot: IndexSnapshot) -> str:
    return snapshot.fingerprint


@router.get("/health", response_model=HealthResponse)
async def health(request: Request) -> HealthResponse:
    """Retorna el estado del servicio y del snapshot activo."""
    kb = request.app.state.kb

    if not kb.is_ready:
        return HealthResponse(status="empty", indexed=False, version=__version__)

    snapshot = kb.snapshot
    # serializar el corpus completo no debe bloquear el event loop
    fingerprint = await asyncio.to_thread(_fingerprint, snapshot)
    return HealthResponse(
        status="ok",
        indexed=True,
        documents=len(snapshot.documents),
        fingerprint=fingerprint,
        version=__version__,
    )
