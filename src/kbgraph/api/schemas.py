"""Modelos Pydantic v2 para request/response de la API."""

from __future__ import annotations

from pydantic import BaseModel, Field

from kbgraph.models import Document, ValidationIssue


# ---------- Documentos ----------

class SectionItem(BaseModel):
    level: int
    text: str
    byte_offset: int
    slug: str


class LinkItem(BaseModel):
    raw_target: str
    kind: str
    anchor: str | None
    line: int
    related: bool
    resolved_id: str | None


class DocumentItem(BaseModel):
    id: str
    source_path: str
    segment_index: int
    title: str
    part_of: str | None
    sections: list[SectionItem]
    links: list[LinkItem]
    body: str | None = None

    @classmethod
    def from_document(cls, doc: Document, *, include_body: bool = False) -> DocumentItem:
        return cls(
            id=doc.id,
            source_path=doc.source_path,
            segment_index=doc.segment_index,
            title=doc.title,
            part_of=doc.part_of,
            sections=[
                SectionItem(level=s.level, text=s.text, byte_offset=s.byte_offset, slug=s.slug)
                for s in doc.sections
            ],
            links=[
                LinkItem(
                    raw_target=link.raw_target,
                    kind=link.kind.value,
                    anchor=link.anchor,
                    line=link.line,
                    related=link.related,
                    resolved_id=link.resolved_id,
                )
                for link in doc.outbound_links
            ],
            body=doc.raw_body if include_body else None,
        )


class DocumentListResponse(BaseModel):
    documents: list[DocumentItem]
    total: int


# ---------- /validate ----------

class IssueItem(BaseModel):
    kind: str
    document_id: str
    detail: str
    severity: str
    target: str | None

    @classmethod
    def from_issue(cls, issue: ValidationIssue) -> IssueItem:
        return cls(
            kind=issue.kind.value,
            document_id=issue.document_id,
            detail=issue.detail,
            severity=issue.severity.value,
            target=issue.target,
        )


class ValidateResponse(BaseModel):
    issues: list[IssueItem]
    total: int


# ---------- /index ----------

class IndexRequest(BaseModel):
    root: str | None = None


class LoadErrorItem(BaseModel):
    path: str
    kind: str
    detail: str


class IndexResponse(BaseModel):
    documents: int
    edges: int
    groups: int
    cycles: int
    issues: int
    load_errors: list[LoadErrorItem]
    fingerprint: str
    duration_seconds: float


# ---------- /health ----------

class HealthResponse(BaseModel):
    status: str
    indexed: bool
    documents: int = Field(default=0, ge=0)
    fingerprint: str | None = None
    version: str
