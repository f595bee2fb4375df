"""Punto de acceso a un snapshot indexado, con reemplazo atómico al reindexar."""

from __future__ import annotations

import pathlib
import threading

import structlog

from kbgraph.config import Settings, get_settings
from kbgraph.indexer.pipeline import IndexResult, IndexSnapshot, build_snapshot
from kbgraph.models import Cancelled, Document, NotFound, ValidationIssue
from kbgraph.search import query

logger = structlog.get_logger(__name__)


class KnowledgeBase:
    """Sirve consultas sobre el snapshot activo.

    Cada consulta toma una referencia al snapshot una sola vez, así que nunca
    mezcla datos de dos indexaciones. ``reindex`` construye el snapshot nuevo
    completo antes de reemplazar el activo.
    """

    def __init__(self, snapshot: IndexSnapshot | None = None, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        self._snapshot = snapshot
        self._swap_lock = threading.Lock()
        self._reindex_lock = threading.Lock()

    @classmethod
    def from_root(cls, root: str | pathlib.Path, settings: Settings | None = None) -> KnowledgeBase:
        """Indexa ``root`` y retorna una base lista para consultar."""
        kb = cls(settings=settings)
        result = kb.reindex(root)
        if isinstance(result, Cancelled):
            raise RuntimeError("La indexación inicial fue cancelada")
        return kb

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def is_ready(self) -> bool:
        return self._snapshot is not None

    @property
    def snapshot(self) -> IndexSnapshot:
        """Snapshot activo, o falla rápido si todavía no se indexó nada."""
        snapshot = self._snapshot
        if snapshot is None:
            raise RuntimeError("No hay snapshot cargado. Llama a reindex() primero.")
        return snapshot

    def swap(self, snapshot: IndexSnapshot) -> IndexSnapshot | None:
        """Reemplaza el snapshot activo y retorna el anterior.

        El fingerprint se calcula antes de publicar: un snapshot que no se
        puede serializar no llega a ser el activo.
        """
        fingerprint = snapshot.fingerprint
        with self._swap_lock:
            previous, self._snapshot = self._snapshot, snapshot
        logger.info(
            "snapshot_swapped",
            documents=len(snapshot.documents),
            fingerprint=fingerprint[:12],
        )
        return previous

    def reindex(
        self,
        root: str | pathlib.Path | None = None,
        *,
        cancel_event: threading.Event | None = None,
    ) -> IndexResult | Cancelled:
        """Reindexa y publica el snapshot nuevo sólo si la corrida terminó.

        Una corrida cancelada o fallida deja activo el snapshot anterior.
        """
        if root is None:
            if self._snapshot is not None:
                root = self._snapshot.root
            elif self._settings.corpus_root:
                root = self._settings.corpus_root
            else:
                raise ValueError("No hay raíz de corpus configurada")

        with self._reindex_lock:
            result = build_snapshot(root, self._settings, cancel_event=cancel_event)
            if isinstance(result, Cancelled):
                logger.info("reindex_cancelled", root=str(root), reason=result.reason)
                return result
            self.swap(result.snapshot)
        return result

    def resolve(self, ref: str, *, canonical: bool = False) -> Document | NotFound:
        return query.resolve(self.snapshot, ref, canonical=canonical)

    def related_to(self, ref: str) -> list[Document] | NotFound:
        return query.related_to(self.snapshot, ref)

    def traverse(self, ref: str, max_depth: int = 2) -> list[Document] | NotFound:
        return query.traverse(self.snapshot, ref, max_depth)

    def validate(self) -> list[ValidationIssue]:
        return query.validate(self.snapshot)
