"""Extracción de links desde el body markdown y el frontmatter."""

from __future__ import annotations

import pathlib
import re
from collections.abc import Mapping
from typing import Any
from urllib.parse import unquote

from kbgraph.indexer.markdown import LineIndex, blank, iter_headings, normalize_title
from kbgraph.models import LinkKind, LinkReference

_INLINE_LINK_RE = re.compile(
    r"(?<!!)\[(?P<text>(?:[^\[\]\n]|\[[^\]\n]*\])*)\]"
    r"\(\s*(?P<target><[^>\n]*>|[^\s)]+)(?:\s+(?:\"[^\"]*\"|'[^']*'|\([^)]*\)))?\s*\)"
)
_IMAGE_RE = re.compile(
    r"!\[(?P<text>(?:[^\[\]\n]|\[[^\]\n]*\])*)\]"
    r"\(\s*(?P<target><[^>\n]*>|[^\s)]*)[^)\n]*\)"
)
_REFERENCE_DEF_RE = re.compile(r"^ {0,3}\[(?P<label>[^\]\n^][^\]\n]*)\]:[ \t]*(?P<target><[^>\n]*>|\S+)", re.MULTILINE)
_AUTOLINK_RE = re.compile(r"<(?P<target>[A-Za-z][A-Za-z0-9+.-]*:[^\s<>]+)>")
_BARE_URL_RE = re.compile(r"\b(?:https?|ftp)://\S+")
_BARE_PATH_RE = re.compile(
    r"(?<![\w/.\-\[\]()<>:@#])"
    r"(?P<target>(?:\.{1,2}/)*[\w\-]+(?:[./][\w\-]+)*\.md(?:#[\w\-]+)?)"
    r"(?![\w/])"
)
_SCHEME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*:")

MARKDOWN_SUFFIXES = (".md", ".markdown")

# Claves de frontmatter que generan links: (clave, es_related)
FRONTMATTER_LINK_KEYS = (("related", True), ("depends_on", False))


def classify_target(raw_target: str) -> tuple[LinkKind, str | None, str | None]:
    """Clasifica un destino y lo separa en ``(kind, path, anchor)``.

    Los destinos con esquema (``https:``, ``mailto:``...) son externos; los
    archivos con extensión distinta de markdown son assets.
    """
    target = raw_target.strip()
    if target.startswith("<") and target.endswith(">"):
        target = target[1:-1].strip()

    if _SCHEME_RE.match(target) or target.startswith("//"):
        return LinkKind.EXTERNAL, None, None

    path, _, anchor = target.partition("#")
    path = unquote(path.split("?", 1)[0])
    anchor_value = unquote(anchor) or None

    if not path:
        return LinkKind.ANCHOR, None, anchor_value

    suffix = pathlib.PurePosixPath(path.rstrip("/")).suffix.lower()
    if suffix and suffix not in MARKDOWN_SUFFIXES:
        return LinkKind.ASSET, path, anchor_value

    return LinkKind.INTERNAL, path, anchor_value


def _related_spans(raw: str, masked: str, related_headings: set[str]) -> list[tuple[int, int]]:
    """Rangos de texto que caen bajo un heading tipo "Related Documents".

    El rango abarca los subheadings y termina en el siguiente heading de
    nivel igual o superior.
    """
    spans: list[tuple[int, int]] = []
    open_start: int | None = None
    open_level = 0

    for pos, level, text in iter_headings(raw, masked):
        if open_start is not None and level <= open_level:
            spans.append((open_start, pos))
            open_start = None
        if open_start is None and normalize_title(text) in related_headings:
            open_start = pos
            open_level = level

    if open_start is not None:
        spans.append((open_start, len(masked)))
    return spans


def _in_spans(pos: int, spans: list[tuple[int, int]]) -> bool:
    return any(start <= pos < end for start, end in spans)


def _make_link(raw_target: str, text: str, line: int, related: bool, source: str) -> LinkReference:
    kind, path, anchor = classify_target(raw_target)
    return LinkReference(
        raw_target=raw_target,
        kind=kind,
        text=text,
        path=path,
        anchor=anchor,
        line=line,
        related=related,
        source=source,
    )


def extract_body_links(
    raw: str,
    masked: str,
    related_headings: set[str] | None = None,
) -> list[LinkReference]:
    """Extrae imágenes, links inline, definiciones de referencia, autolinks y paths sueltos.

    Trabaja sobre ``masked`` (sin código ni frontmatter) para no confundir
    ejemplos de código con links reales; los resultados quedan ordenados por
    posición en el texto.
    """
    related_headings = related_headings or set()
    spans = _related_spans(raw, masked, related_headings)
    lines = LineIndex(masked)
    found: list[tuple[int, LinkReference]] = []

    def add(pos: int, target: str, text: str, source: str) -> None:
        found.append((pos, _make_link(target, text, lines.line_of(pos), _in_spans(pos, spans), source)))

    for match in _IMAGE_RE.finditer(masked):
        if match.group("target"):
            add(match.start(), match.group("target"), match.group("text").strip(), "image")
    scan = _IMAGE_RE.sub(lambda m: blank(m.group(0)), masked)

    for match in _INLINE_LINK_RE.finditer(scan):
        add(match.start(), match.group("target"), match.group("text").strip(), "body")
    scan = _INLINE_LINK_RE.sub(lambda m: blank(m.group(0)), scan)

    for match in _REFERENCE_DEF_RE.finditer(scan):
        add(match.start(), match.group("target"), match.group("label").strip(), "reference")
    scan = _REFERENCE_DEF_RE.sub(lambda m: blank(m.group(0)), scan)

    for match in _AUTOLINK_RE.finditer(scan):
        add(match.start(), match.group("target"), "", "autolink")
    scan = _AUTOLINK_RE.sub(lambda m: blank(m.group(0)), scan)
    scan = _BARE_URL_RE.sub(lambda m: blank(m.group(0)), scan)

    for match in _BARE_PATH_RE.finditer(scan):
        add(match.start(), match.group("target"), "", "bare")

    found.sort(key=lambda item: item[0])
    return [link for _, link in found]


def extract_frontmatter_links(fm: Mapping[str, Any]) -> list[LinkReference]:
    """Links declarados en frontmatter (``related``, ``depends_on``)."""
    links: list[LinkReference] = []
    for key, related in FRONTMATTER_LINK_KEYS:
        values = fm.get(key) or []
        if isinstance(values, str):
            values = [values]
        if not isinstance(values, (list, tuple)):
            continue
        for target in values:
            if target is None or not str(target).strip():
                continue
            links.append(_make_link(str(target), "", 1, related, f"frontmatter.{key}"))
    return links
