"""Registros inmutables del corpus: documentos, links, aristas, grupos e issues."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any


class LinkKind(str, Enum):
    """Clasificación de un link según su destino."""

    INTERNAL = "internal"
    ANCHOR = "anchor"
    EXTERNAL = "external"
    ASSET = "asset"


class EdgeKind(str, Enum):
    REFERENCE = "reference"
    RELATED = "related"


class IssueKind(str, Enum):
    DANGLING_LINK = "dangling-link"
    CYCLE_DETECTED = "cycle-detected"
    DUPLICATE_TITLE_CONFLICT = "duplicate-title-conflict"
    ORPHAN_DOCUMENT = "orphan-document"


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {Severity.INFO: 0, Severity.WARNING: 1, Severity.ERROR: 2}


class LoadErrorKind(str, Enum):
    IO = "io"
    ENCODING = "encoding"
    ID_COLLISION = "id-collision"


@dataclass(frozen=True)
class Section:
    """Un heading dentro de un documento."""

    level: int
    text: str
    byte_offset: int
    slug: str


@dataclass(frozen=True)
class LinkReference:
    """Un link tal como aparece en el body, más su resolución.

    ``resolved_id`` es ``None`` mientras no se resuelva o si el destino no
    existe dentro del corpus.
    """

    raw_target: str
    kind: LinkKind
    text: str = ""
    path: str | None = None
    anchor: str | None = None
    line: int = 1
    related: bool = False
    source: str = "body"
    resolved_id: str | None = None
    anchor_missing: bool = False
    asset_missing: bool = False

    @property
    def dangling(self) -> bool:
        """Link interno sin destino dentro del corpus, o asset local inexistente."""
        if self.kind == LinkKind.ASSET:
            return self.asset_missing
        return self.kind == LinkKind.INTERNAL and self.resolved_id is None


@dataclass(frozen=True)
class Document:
    """Un documento lógico: un archivo .md completo o uno de sus segmentos."""

    id: str
    source_path: str
    segment_index: int
    title: str
    raw_body: str
    outbound_links: tuple[LinkReference, ...] = ()
    sections: tuple[Section, ...] = ()
    frontmatter: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}), compare=False, hash=False)
    content_hash: str = ""
    part_of: str | None = None


@dataclass(frozen=True, order=True)
class Edge:
    """Arista dirigida entre dos documentos resueltos."""

    from_id: str
    to_id: str
    kind: EdgeKind


@dataclass(frozen=True)
class CanonicalGroup:
    """Conjunto de documentos que representan un mismo tema lógico."""

    canonical_id: str
    members: tuple[str, ...]
    reason: str = "singleton"


@dataclass(frozen=True)
class ValidationIssue:
    kind: IssueKind
    document_id: str
    detail: str
    severity: Severity = Severity.ERROR
    target: str | None = None


@dataclass(frozen=True, order=True)
class LoadError:
    """Fallo al cargar un archivo; no aborta el resto de la carga."""

    path: str
    kind: LoadErrorKind
    detail: str


@dataclass(frozen=True)
class NotFound:
    """Resultado esperado de una búsqueda sin coincidencias."""

    query: str

    def __bool__(self) -> bool:
        return False


@dataclass(frozen=True)
class Cancelled:
    """Indexación cancelada cooperativamente; no hay snapshot parcial."""

    reason: str = "cancelled"
    files_read: int = 0

    def __bool__(self) -> bool:
        return False


@dataclass
class LoadResult:
    """Resultado del loader: documentos cargados y errores por archivo."""

    documents: list[Document] = field(default_factory=list)
    errors: list[LoadError] = field(default_factory=list)
    files_seen: int = 0
    assets: frozenset[str] = frozenset()
