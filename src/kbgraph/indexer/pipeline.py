"""Orquestador de indexación: carga, resuelve links, arma el grafo y agrupa duplicados."""

from __future__ import annotations

import dataclasses
import hashlib
import json
import pathlib
import threading
import time
from collections.abc import Mapping
from dataclasses import dataclass
from functools import cached_property
from typing import Any

import structlog

from kbgraph.config import Settings, get_settings
from kbgraph.exceptions import EmptyCorpusError
from kbgraph.indexer.dedup import annotate_documents, build_groups, find_conflicts
from kbgraph.indexer.graph import DocumentGraph, build_graph
from kbgraph.indexer.issues import cycle_issues, link_issues, orphan_issues, sort_issues
from kbgraph.indexer.loader import load_corpus
from kbgraph.indexer.resolver import resolve_documents
from kbgraph.models import Cancelled, CanonicalGroup, Document, LoadError, ValidationIssue

logger = structlog.get_logger(__name__)


def _plain(value: Any) -> Any:
    """Convierte el frontmatter congelado en dicts y listas para json.dumps."""
    if isinstance(value, Mapping):
        return {key: _plain(item) for key, item in value.items()}
    if isinstance(value, tuple):
        return [_plain(item) for item in value]
    return value


@dataclass(frozen=True)
class IndexSnapshot:
    """Resultado completo e inmutable de una corrida de indexación."""

    root: str
    documents: tuple[Document, ...]
    graph: DocumentGraph
    groups: tuple[CanonicalGroup, ...]
    issues: tuple[ValidationIssue, ...]
    load_errors: tuple[LoadError, ...] = ()
    similarity_threshold: float = 0.6

    @cached_property
    def by_id(self) -> dict[str, Document]:
        return {doc.id: doc for doc in self.documents}

    @cached_property
    def group_of(self) -> dict[str, CanonicalGroup]:
        return {member: group for group in self.groups for member in group.members}

    def collect_issues(self) -> list[ValidationIssue]:
        """Recalcula todos los issues desde el estado del snapshot."""
        return sort_issues(
            link_issues(self.documents)
            + find_conflicts(self.documents, self.groups, self.similarity_threshold)
            + cycle_issues(self.graph.cycles)
            + orphan_issues(self.graph.orphans)
        )

    def to_dict(self) -> dict:
        """Representación JSON determinística (sin timestamps ni paths absolutos)."""
        return {
            "documents": [
                {
                    "id": doc.id,
                    "source_path": doc.source_path,
                    "segment_index": doc.segment_index,
                    "title": doc.title,
                    "part_of": doc.part_of,
                    "content_hash": doc.content_hash,
                    "frontmatter": _plain(doc.frontmatter),
                    "sections": [
                        {"level": s.level, "text": s.text, "byte_offset": s.byte_offset, "slug": s.slug}
                        for s in doc.sections
                    ],
                    "links": [
                        {
                            "raw_target": link.raw_target,
                            "kind": link.kind.value,
                            "anchor": link.anchor,
                            "line": link.line,
                            "related": link.related,
                            "source": link.source,
                            "resolved_id": link.resolved_id,
                            "anchor_missing": link.anchor_missing,
                            "asset_missing": link.asset_missing,
                        }
                        for link in doc.outbound_links
                    ],
                }
                for doc in self.documents
            ],
            "edges": [
                {"from": e.from_id, "to": e.to_id, "kind": e.kind.value} for e in self.graph.edges
            ],
            "cycles": [list(c) for c in self.graph.cycles],
            "groups": [
                {"canonical_id": g.canonical_id, "members": list(g.members), "reason": g.reason}
                for g in self.groups
            ],
            "issues": [issue_to_dict(i) for i in self.issues],
            "load_errors": [
                {"path": e.path, "kind": e.kind.value, "detail": e.detail} for e in self.load_errors
            ],
        }

    def dumps(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, ensure_ascii=False, indent=2)

    @cached_property
    def fingerprint(self) -> str:
        """SHA-256 del JSON serializado: igual corpus, igual fingerprint."""
        return hashlib.sha256(self.dumps().encode("utf-8")).hexdigest()


def issue_to_dict(issue: ValidationIssue) -> dict:
    return {
        "kind": issue.kind.value,
        "document_id": issue.document_id,
        "detail": issue.detail,
        "severity": issue.severity.value,
        "target": issue.target,
    }


@dataclass
class IndexResult:
    """Resultado de una indexación exitosa: el snapshot usable más sus problemas."""

    snapshot: IndexSnapshot
    duration_seconds: float = 0.0
    files_seen: int = 0

    @property
    def issues(self) -> tuple[ValidationIssue, ...]:
        return self.snapshot.issues

    @property
    def load_errors(self) -> tuple[LoadError, ...]:
        return self.snapshot.load_errors

    def __bool__(self) -> bool:
        return True


def _cancelled(cancel_event: threading.Event | None) -> bool:
    return cancel_event is not None and cancel_event.is_set()


def build_snapshot(
    root: str | pathlib.Path,
    settings: Settings | None = None,
    *,
    cancel_event: threading.Event | None = None,
) -> IndexResult | Cancelled:
    """Pipeline completo de indexación de un directorio con archivos .md.

    Carga → resolución de links → grafo → dedup. Corre como una unidad: si
    se cancela, no queda nada parcial y se retorna ``Cancelled``.

    Raises:
        CorpusRootError: la raíz no existe o no es legible.
        EmptyCorpusError: ningún archivo se cargó con éxito.
    """
    settings = settings or get_settings()
    t0 = time.time()
    root_path = pathlib.Path(root)

    loaded = load_corpus(root_path, settings, cancel_event=cancel_event)
    if isinstance(loaded, Cancelled):
        return loaded
    if not loaded.documents:
        logger.error("empty_corpus", root=str(root_path), errors=len(loaded.errors))
        raise EmptyCorpusError(str(root_path), failed=len(loaded.errors))

    resolved, _ = resolve_documents(loaded.documents, assets=loaded.assets)
    if _cancelled(cancel_event):
        return Cancelled(reason="cancelled after load", files_read=loaded.files_seen)

    groups = build_groups(resolved)
    documents = annotate_documents(resolved, groups)
    graph = build_graph(documents)
    if _cancelled(cancel_event):
        return Cancelled(reason="cancelled after graph build", files_read=loaded.files_seen)

    draft = IndexSnapshot(
        root=str(root_path),
        documents=tuple(documents),
        graph=graph,
        groups=tuple(groups),
        issues=(),
        load_errors=tuple(loaded.errors),
        similarity_threshold=settings.similarity_threshold,
    )
    snapshot = dataclasses.replace(draft, issues=tuple(draft.collect_issues()))

    result = IndexResult(
        snapshot=snapshot,
        duration_seconds=round(time.time() - t0, 2),
        files_seen=loaded.files_seen,
    )
    logger.info(
        "index_complete",
        root=str(root_path),
        documents=len(snapshot.documents),
        edges=len(graph.edges),
        groups=len(snapshot.groups),
        cycles=len(graph.cycles),
        issues=len(snapshot.issues),
        load_errors=len(snapshot.load_errors),
        duration=result.duration_seconds,
    )
    return result
