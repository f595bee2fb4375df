"""Consultas sobre un snapshot: resolve, related, traverse y validate."""

from __future__ import annotations

from collections import deque

import structlog

from kbgraph.indexer.loader import document_id
from kbgraph.indexer.markdown import normalize_title
from kbgraph.indexer.pipeline import IndexSnapshot
from kbgraph.indexer.resolver import INDEX_NAMES, canonical_order
from kbgraph.models import Document, EdgeKind, NotFound, ValidationIssue

logger = structlog.get_logger(__name__)


def normalize_ref(ref: str) -> str:
    """Forma de id de una referencia libre: sin ``./``, anchor ni extensión."""
    ref = ref.strip().replace("\\", "/").split("#", 1)[0]
    while ref.startswith("./"):
        ref = ref[2:]
    ref = ref.strip("/")
    if not ref:
        return ""
    return document_id(ref)


def resolve(snapshot: IndexSnapshot, ref: str, *, canonical: bool = False) -> Document | NotFound:
    """Busca un documento por id o path; si no hay coincidencia exacta, aproxima.

    Orden de búsqueda: id exacto, README/index del directorio, sufijo de path
    (``foo`` encuentra ``patterns/foo``) y por último título. Con
    ``canonical=True`` retorna el canónico del grupo del documento encontrado.
    """
    doc = _lookup(snapshot, ref)
    if doc is None:
        logger.debug("resolve_not_found", ref=ref)
        return NotFound(ref)
    if canonical and doc.part_of is not None:
        return snapshot.by_id[doc.part_of]
    return doc


def _lookup(snapshot: IndexSnapshot, ref: str) -> Document | None:
    by_id = snapshot.by_id
    key = normalize_ref(ref)

    if key in by_id:
        return by_id[key]

    for name in INDEX_NAMES:
        candidate = f"{key}/{name}" if key else name
        if candidate in by_id:
            return by_id[candidate]

    if key:
        suffix = "/" + key
        matches = [d for d in snapshot.documents if d.id.endswith(suffix)]
        if matches:
            return min(matches, key=canonical_order)

    wanted = normalize_title(ref)
    if wanted:
        matches = [d for d in snapshot.documents if normalize_title(d.title) == wanted]
        if matches:
            return min(matches, key=canonical_order)
    return None


def related_to(snapshot: IndexSnapshot, ref: str) -> list[Document] | NotFound:
    """Documentos conectados por aristas ``related`` más los miembros de su grupo.

    Primero los vecinos ``related`` (salientes y luego entrantes, por id);
    después los miembros del grupo canónico, con el canónico al frente.
    """
    doc = resolve(snapshot, ref)
    if isinstance(doc, NotFound):
        return doc

    graph = snapshot.graph
    ordered: list[str] = []
    ordered.extend(graph.successors(doc.id, EdgeKind.RELATED))
    ordered.extend(graph.predecessors(doc.id, EdgeKind.RELATED))

    group = snapshot.group_of.get(doc.id)
    if group is not None:
        ordered.append(group.canonical_id)
        ordered.extend(m for m in group.members if m != group.canonical_id)

    seen = {doc.id}
    result: list[Document] = []
    for doc_id in ordered:
        if doc_id in seen:
            continue
        seen.add(doc_id)
        result.append(snapshot.by_id[doc_id])
    return result


def traverse(snapshot: IndexSnapshot, ref: str, max_depth: int) -> list[Document] | NotFound:
    """BFS sobre aristas ``reference`` hasta ``max_depth`` saltos.

    Incluye el documento de partida. Cada documento aparece una sola vez, así
    que los ciclos no provocan recorridos infinitos.
    """
    if max_depth < 0:
        raise ValueError("max_depth debe ser >= 0")

    start = resolve(snapshot, ref)
    if isinstance(start, NotFound):
        return start

    graph = snapshot.graph
    visited = {start.id}
    order = [start.id]
    queue: deque[tuple[str, int]] = deque([(start.id, 0)])

    while queue:
        doc_id, depth = queue.popleft()
        if depth >= max_depth:
            continue
        for nxt in graph.successors(doc_id, EdgeKind.REFERENCE):
            if nxt in visited:
                continue
            visited.add(nxt)
            order.append(nxt)
            queue.append((nxt, depth + 1))

    return [snapshot.by_id[doc_id] for doc_id in order]


def validate(snapshot: IndexSnapshot) -> list[ValidationIssue]:
    """Recalcula los issues del snapshot; no muta nada."""
    return snapshot.collect_issues()
