"""Resolución de links contra los ids del corpus."""

from __future__ import annotations

import dataclasses
import posixpath
from collections.abc import Iterable

import structlog

from kbgraph.indexer.issues import link_issues
from kbgraph.indexer.loader import SEGMENT_ID_SEP, document_id
from kbgraph.indexer.markdown import normalize_title
from kbgraph.models import Document, LinkKind, LinkReference, ValidationIssue

logger = structlog.get_logger(__name__)

INDEX_NAMES = ("readme", "index")


def canonical_order(doc: Document) -> tuple[int, str, int]:
    """Orden de preferencia: path más corto, luego lexicográfico, luego segmento."""
    return (len(doc.source_path), doc.source_path, doc.segment_index)


class Catalog:
    """Índices de búsqueda sobre un conjunto de documentos.

    Se construye desde los documentos ordenados, así que el resultado de una
    búsqueda no depende del orden en que llegaron.
    """

    def __init__(self, documents: Iterable[Document], assets: frozenset[str] | None = None) -> None:
        self.assets = assets
        docs = sorted(documents, key=lambda d: d.id)
        self.by_id: dict[str, Document] = {d.id: d for d in docs}
        self.segments: dict[str, list[Document]] = {}
        self.by_title: dict[str, list[Document]] = {}

        for doc in docs:
            self.segments.setdefault(document_id(doc.source_path), []).append(doc)
            self.by_title.setdefault(normalize_title(doc.title), []).append(doc)

        for group in self.segments.values():
            group.sort(key=lambda d: d.segment_index)
        for group in self.by_title.values():
            group.sort(key=canonical_order)

    def file(self, key: str) -> list[Document] | None:
        """Segmentos del archivo cuyo id es ``key``, o de su README/index si es un directorio."""
        key = key.rstrip("/")
        if key in self.segments:
            return self.segments[key]
        for name in INDEX_NAMES:
            candidate = f"{key}/{name}" if key else name
            if candidate in self.segments:
                return self.segments[candidate]
        return None

    def title(self, title: str) -> Document | None:
        wanted = normalize_title(title)
        if not wanted:
            return None
        matches = self.by_title.get(wanted)
        return matches[0] if matches else None


def _join_target(source_path: str, path: str) -> str | None:
    """Path normalizado respecto de la raíz; ``None`` si sale de ella."""
    path = path.replace("\\", "/")
    if path.startswith("/"):
        joined = path.lstrip("/")
    else:
        joined = posixpath.join(posixpath.dirname(source_path), path)

    normalized = posixpath.normpath(joined) if joined else "."
    if normalized == ".." or normalized.startswith("../"):
        return None
    if normalized == ".":
        return ""
    return normalized


def target_key(source_path: str, path: str) -> str | None:
    """Normaliza un path de link relativo al documento que lo contiene.

    Retorna ``None`` si el path sale de la raíz del corpus.
    """
    normalized = _join_target(source_path, path)
    if not normalized:
        return normalized
    return document_id(normalized)


def asset_exists(source_path: str, path: str, assets: frozenset[str]) -> bool:
    """Si el asset enlazado existe dentro del corpus (sin distinguir mayúsculas)."""
    normalized = _join_target(source_path, path)
    return bool(normalized) and normalized.casefold() in assets


def _find_anchor(segments: list[Document], anchor: str) -> Document | None:
    wanted = anchor.casefold()
    for doc in segments:
        if any(section.slug == wanted for section in doc.sections):
            return doc
    return None


def resolve_link(doc: Document, link: LinkReference, catalog: Catalog) -> LinkReference:
    """Resuelve un link de ``doc``; los externos no se tocan.

    Los assets sólo se verifican si el catálogo conoce los archivos del corpus.
    """
    if link.kind == LinkKind.ANCHOR:
        if link.anchor is None:
            return dataclasses.replace(link, resolved_id=doc.id)
        missing = _find_anchor([doc], link.anchor) is None
        return dataclasses.replace(link, resolved_id=doc.id, anchor_missing=missing)

    if link.kind == LinkKind.ASSET:
        if catalog.assets is None or link.path is None:
            return link
        missing = not asset_exists(doc.source_path, link.path, catalog.assets)
        return dataclasses.replace(link, asset_missing=missing)

    if link.kind != LinkKind.INTERNAL or link.path is None:
        return link

    segments: list[Document] | None = None
    key = target_key(doc.source_path, link.path)
    if key is not None and SEGMENT_ID_SEP not in key:
        segments = catalog.file(key)

    if segments is None and link.source.startswith("frontmatter."):
        by_title = catalog.title(link.path)
        if by_title is not None:
            segments = catalog.segments[document_id(by_title.source_path)]
            segments = [by_title] + [s for s in segments if s.id != by_title.id]

    if not segments:
        return link

    target = segments[0]
    if link.anchor:
        found = _find_anchor(segments, link.anchor)
        if found is None:
            return dataclasses.replace(link, resolved_id=target.id, anchor_missing=True)
        target = found
    return dataclasses.replace(link, resolved_id=target.id)


def resolve_documents(
    documents: Iterable[Document],
    assets: frozenset[str] | None = None,
) -> tuple[list[Document], list[ValidationIssue]]:
    """Resuelve todos los links del corpus.

    Retorna los documentos con ``resolved_id`` asignado (ordenados por id) y
    los issues de links rotos. Con ``assets`` (paths relativos en minúsculas)
    también se reportan los links a imágenes u otros archivos inexistentes.
    """
    catalog = Catalog(documents, assets)
    resolved: list[Document] = []

    for doc in catalog.by_id.values():
        links = tuple(resolve_link(doc, link, catalog) for link in doc.outbound_links)
        resolved.append(dataclasses.replace(doc, outbound_links=links))

    issues = link_issues(resolved)
    logger.debug(
        "links_resolved",
        documents=len(resolved),
        links=sum(len(d.outbound_links) for d in resolved),
        dangling=len(issues),
    )
    return resolved, issues
