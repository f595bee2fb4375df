"""Agrupación de documentos duplicados o variantes y elección del canónico.

Nunca se borra contenido: los miembros no canónicos sólo quedan anotados con
``part_of`` apuntando al canónico de su grupo.
"""

from __future__ import annotations

import dataclasses
import difflib
import re
from collections.abc import Iterable

import structlog

from kbgraph.indexer.issues import sort_issues
from kbgraph.indexer.markdown import mask_frontmatter, normalize_title
from kbgraph.indexer.resolver import canonical_order
from kbgraph.models import CanonicalGroup, Document, IssueKind, Severity, ValidationIssue

logger = structlog.get_logger(__name__)

_WORD_RE = re.compile(r"\w+", re.UNICODE)


class _DisjointSet:
    def __init__(self, items: Iterable[str]) -> None:
        self._parent = {item: item for item in items}

    def find(self, item: str) -> str:
        root = item
        while self._parent[root] != root:
            root = self._parent[root]
        while self._parent[item] != root:
            self._parent[item], item = root, self._parent[item]
        return root

    def union(self, a: str, b: str) -> None:
        ra, rb = self.find(a), self.find(b)
        if ra == rb:
            return
        # la raíz de cada conjunto es siempre su id menor
        if rb < ra:
            ra, rb = rb, ra
        self._parent[rb] = ra


def normalized_words(body: str) -> list[str]:
    """Palabras del body sin frontmatter, en minúsculas."""
    return _WORD_RE.findall(mask_frontmatter(body).casefold())


def similarity(a: Document, b: Document) -> float:
    """Ratio de similitud (0..1) entre los bodies normalizados."""
    words_a, words_b = normalized_words(a.raw_body), normalized_words(b.raw_body)
    if not words_a and not words_b:
        return 1.0
    return difflib.SequenceMatcher(None, words_a, words_b).ratio()


def _group_reason(members: list[Document]) -> str:
    if len(members) == 1:
        return "singleton"
    paths = {d.source_path for d in members}
    if len(paths) == 1:
        return "segments"
    if any(sum(1 for d in members if d.source_path == p) > 1 for p in paths):
        return "segments+title"
    return "title"


def build_groups(documents: Iterable[Document]) -> list[CanonicalGroup]:
    """Particiona los documentos en grupos canónicos.

    Se agrupan los segmentos de un mismo archivo y los documentos de archivos
    distintos con el mismo título normalizado (un título que normaliza a vacío
    no agrupa). El canónico es el de path más corto; a igual largo, el
    lexicográficamente menor.
    """
    docs = sorted(documents, key=lambda d: d.id)
    sets = _DisjointSet(d.id for d in docs)

    first_by_path: dict[str, str] = {}
    first_by_title: dict[str, str] = {}
    for doc in docs:
        path_owner = first_by_path.setdefault(doc.source_path, doc.id)
        sets.union(path_owner, doc.id)
        title_key = normalize_title(doc.title)
        if not title_key:
            continue
        title_owner = first_by_title.setdefault(title_key, doc.id)
        sets.union(title_owner, doc.id)

    members_by_root: dict[str, list[Document]] = {}
    for doc in docs:
        members_by_root.setdefault(sets.find(doc.id), []).append(doc)

    groups: list[CanonicalGroup] = []
    for members in members_by_root.values():
        canonical = min(members, key=canonical_order)
        groups.append(
            CanonicalGroup(
                canonical_id=canonical.id,
                members=tuple(sorted(d.id for d in members)),
                reason=_group_reason(members),
            )
        )

    groups.sort(key=lambda g: g.canonical_id)
    return groups


def annotate_documents(documents: Iterable[Document], groups: Iterable[CanonicalGroup]) -> list[Document]:
    """Asigna ``part_of`` a cada miembro no canónico de un grupo."""
    canonical_of = {member: g.canonical_id for g in groups for member in g.members}
    annotated: list[Document] = []
    for doc in documents:
        canonical = canonical_of.get(doc.id, doc.id)
        part_of = None if canonical == doc.id else canonical
        annotated.append(dataclasses.replace(doc, part_of=part_of))
    return annotated


def find_conflicts(
    documents: Iterable[Document],
    groups: Iterable[CanonicalGroup],
    threshold: float,
) -> list[ValidationIssue]:
    """Issues ``duplicate-title-conflict`` para pares con mismo título y contenido distinto.

    Sólo se comparan documentos de archivos distintos: los segmentos de un
    mismo archivo son variantes por construcción.
    """
    by_id = {d.id: d for d in documents}
    issues: list[ValidationIssue] = []

    for group in groups:
        if len(group.members) < 2:
            continue
        members = sorted((by_id[m] for m in group.members), key=canonical_order)
        for i, preferred in enumerate(members):
            for other in members[i + 1 :]:
                if other.source_path == preferred.source_path:
                    continue
                title_key = normalize_title(preferred.title)
                if not title_key or normalize_title(other.title) != title_key:
                    continue
                ratio = similarity(preferred, other)
                if ratio >= threshold:
                    continue
                issues.append(
                    ValidationIssue(
                        kind=IssueKind.DUPLICATE_TITLE_CONFLICT,
                        document_id=other.id,
                        detail=(
                            f"'{other.title}' duplica el título de {preferred.id} con contenido "
                            f"distinto (similitud {ratio:.2f} < {threshold:.2f})"
                        ),
                        severity=Severity.WARNING,
                        target=preferred.id,
                    )
                )

    if issues:
        logger.info("duplicate_conflicts", count=len(issues))
    return sort_issues(issues)

