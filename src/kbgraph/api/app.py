"""FastAPI app factory con lifespan que indexa el corpus configurado."""

from __future__ import annotations

import asyncio
import os
import time
import uuid
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from kbgraph import __version__
from kbgraph.config import Settings, get_settings
from kbgraph.exceptions import KbGraphError
from kbgraph.knowledge_base import KnowledgeBase
from kbgraph.log import configure_logging

logger = structlog.get_logger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Factory que crea la app FastAPI con todos los routers."""
    settings = settings or get_settings()
    configure_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Indexa ``corpus_root`` al arrancar, si está configurado."""
        kb = KnowledgeBase(settings=settings)
        app.state.kb = kb
        if settings.corpus_root:
            try:
                await asyncio.to_thread(kb.reindex, settings.corpus_root)
            except KbGraphError as exc:
                logger.error("startup_index_failed", root=settings.corpus_root, error=str(exc))
        logger.info("app_started", version=__version__, indexed=kb.is_ready)
        yield
        logger.info("app_stopped")

    app = FastAPI(
        title="kbgraph",
        description="Índice y resolvedor de un corpus de conocimiento en markdown",
        version=__version__,
        lifespan=lifespan,
    )

    # --- CORS: permite renderers externos ---
    allowed_origins = os.getenv("KBGRAPH_CORS_ORIGINS", "*").split(",")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # --- Middleware: request_id + timing ---
    @app.middleware("http")
    async def request_logging(request: Request, call_next):
        request_id = str(uuid.uuid4())[:8]
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        t0 = time.time()
        response: Response = await call_next(request)
        duration_ms = round((time.time() - t0) * 1000, 1)

        logger.info(
            "request",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=duration_ms,
        )
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Duration-Ms"] = str(duration_ms)
        return response

    # --- Routers ---
    from kbgraph.api.routes.documents import router as documents_router
    from kbgraph.api.routes.health import router as health_router
    from kbgraph.api.routes.index import router as index_router

    app.include_router(health_router, tags=["health"])
    app.include_router(documents_router, tags=["documents"])
    app.include_router(index_router, tags=["indexer"])

    @app.get("/", include_in_schema=False)
    async def root():
        return {"service": "kbgraph", "version": __version__, "docs": "/docs"}

    return app
