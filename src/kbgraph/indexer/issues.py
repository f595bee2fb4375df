"""Recolección de issues de validación a partir del estado indexado.

Todas las funciones son puras: recalcular los issues sobre el mismo snapshot
siempre produce la misma lista.
"""

from __future__ import annotations

from collections.abc import Iterable

from kbgraph.models import Document, IssueKind, Severity, ValidationIssue

_KIND_ORDER = {
    IssueKind.DANGLING_LINK: 0,
    IssueKind.DUPLICATE_TITLE_CONFLICT: 1,
    IssueKind.CYCLE_DETECTED: 2,
    IssueKind.ORPHAN_DOCUMENT: 3,
}


def sort_issues(issues: Iterable[ValidationIssue]) -> list[ValidationIssue]:
    return sorted(
        issues,
        key=lambda i: (_KIND_ORDER[i.kind], i.document_id, i.target or "", i.detail),
    )


def link_issues(documents: Iterable[Document]) -> list[ValidationIssue]:
    """Un issue por link interno sin destino y por anchor inexistente."""
    issues: list[ValidationIssue] = []
    for doc in documents:
        for link in doc.outbound_links:
            if link.dangling:
                issues.append(
                    ValidationIssue(
                        kind=IssueKind.DANGLING_LINK,
                        document_id=doc.id,
                        detail=f"Link roto (línea {link.line}): {link.raw_target}",
                        severity=Severity.ERROR,
                        target=link.raw_target,
                    )
                )
            elif link.anchor_missing:
                issues.append(
                    ValidationIssue(
                        kind=IssueKind.DANGLING_LINK,
                        document_id=doc.id,
                        detail=f"Anchor inexistente '#{link.anchor}' en {link.resolved_id} (línea {link.line})",
                        severity=Severity.WARNING,
                        target=link.raw_target,
                    )
                )
    return sort_issues(issues)


def cycle_issues(cycles: Iterable[tuple[str, ...]]) -> list[ValidationIssue]:
    """Un issue informativo por componente fuertemente conexa."""
    return sort_issues(
        ValidationIssue(
            kind=IssueKind.CYCLE_DETECTED,
            document_id=members[0],
            detail=f"Ciclo de referencias entre {len(members)} documentos: {', '.join(members)}",
            severity=Severity.INFO,
        )
        for members in cycles
    )


def orphan_issues(orphans: Iterable[str]) -> list[ValidationIssue]:
    return sort_issues(
        ValidationIssue(
            kind=IssueKind.ORPHAN_DOCUMENT,
            document_id=doc_id,
            detail="Documento sin links entrantes ni salientes",
            severity=Severity.INFO,
        )
        for doc_id in orphans
    )


def filter_by_severity(issues: Iterable[ValidationIssue], minimum: Severity) -> list[ValidationIssue]:
    return [issue for issue in issues if issue.severity.rank >= minimum.rank]
