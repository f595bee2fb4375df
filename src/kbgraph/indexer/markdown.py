"""Utilidades de texto markdown: enmascarado de código, headings y slugs."""

from __future__ import annotations

import bisect
import pathlib
import re
from collections.abc import Iterator, Mapping
from typing import Any

from kbgraph.models import Section

_FRONTMATTER_RE = re.compile(r"\A---[ \t]*\r?\n.*?^(?:---|\.\.\.)[ \t]*\r?$\n?", re.MULTILINE | re.DOTALL)
_FENCE_RE = re.compile(r"^ {0,3}(`{3,}|~{3,})")
_INLINE_CODE_RE = re.compile(r"(?<!`)(`+)(?!`)([^\n]+?)(?<!`)\1(?!`)")
_HEADING_RE = re.compile(r"^ {0,3}(#{1,6})(?:[ \t]+(.*?))?(?:[ \t]+#+)?[ \t]*$")
_INLINE_LINK_RE = re.compile(r"!?\[([^\]]*)\]\([^)]*\)")
_EMPHASIS_RE = re.compile(r"[*`]+|~~")
_SLUG_DROP_RE = re.compile(r"[^\w\- ]", re.UNICODE)


def split_lines(text: str) -> list[str]:
    """Como ``splitlines(keepends=True)`` pero cortando sólo en ``\\n``."""
    return [line for line in re.split(r"(?<=\n)", text) if line]


def blank(text: str) -> str:
    """Reemplaza todo menos los saltos de línea por espacios."""
    return re.sub(r"[^\n]", " ", text)


def mask_frontmatter(text: str) -> str:
    match = _FRONTMATTER_RE.match(text)
    if not match:
        return text
    return blank(match.group(0)) + text[match.end():]


def mask_code(text: str) -> str:
    """Enmascara bloques de código cercados y spans de código inline.

    El resultado conserva la longitud y las posiciones de línea del texto
    original, así que los offsets calculados sobre él valen para el original.
    """
    out: list[str] = []
    fence: str | None = None

    for line in split_lines(text):
        if fence is None:
            match = _FENCE_RE.match(line)
            if match:
                fence = match.group(1)
                out.append(blank(line))
            else:
                out.append(line)
            continue

        stripped = line.strip()
        if stripped and set(stripped) == {fence[0]} and len(stripped) >= len(fence):
            fence = None
        out.append(blank(line))

    masked = "".join(out)
    return _INLINE_CODE_RE.sub(lambda m: blank(m.group(0)), masked)


def mask_markdown(text: str) -> str:
    """Frontmatter y código enmascarados: sólo queda prosa analizable."""
    return mask_code(mask_frontmatter(text))


class LineIndex:
    """Convierte offsets de caracter en número de línea."""

    def __init__(self, text: str) -> None:
        self._starts = [0]
        for match in re.finditer("\n", text):
            self._starts.append(match.end())

    def line_of(self, pos: int) -> int:
        return bisect.bisect_right(self._starts, pos)


def clean_heading_text(text: str) -> str:
    """Quita marcado inline de un heading: links, énfasis y código."""
    text = _INLINE_LINK_RE.sub(lambda m: m.group(1), text)
    text = _EMPHASIS_RE.sub("", text)
    return " ".join(text.split())


def slugify_heading(text: str) -> str:
    """Slug estilo GitHub: minúsculas, sin puntuación, espacios a guiones."""
    slug = _SLUG_DROP_RE.sub("", clean_heading_text(text).lower())
    return slug.replace(" ", "-")


def iter_headings(raw: str, masked: str) -> Iterator[tuple[int, int, str]]:
    """Genera ``(char_offset, nivel, texto)`` por cada heading ATX fuera de código."""
    pos = 0
    for masked_line in split_lines(masked):
        match = _HEADING_RE.match(masked_line.rstrip("\r\n"))
        if match:
            raw_line = raw[pos : pos + len(masked_line)].rstrip("\r\n")
            raw_match = _HEADING_RE.match(raw_line)
            text = (raw_match.group(2) if raw_match else None) or ""
            yield pos, len(match.group(1)), clean_heading_text(text)
        pos += len(masked_line)


def extract_sections(raw: str, masked: str | None = None) -> list[Section]:
    """Lista los headings del texto con su offset en bytes.

    Headings repetidos reciben sufijos ``-1``, ``-2``... en el slug, igual que
    los anchors que genera GitHub.
    """
    if masked is None:
        masked = mask_markdown(raw)

    sections: list[Section] = []
    seen: dict[str, int] = {}
    for pos, level, text in iter_headings(raw, masked):
        base = slugify_heading(text)
        count = seen.get(base, 0)
        seen[base] = count + 1
        sections.append(
            Section(
                level=level,
                text=text,
                byte_offset=len(raw[:pos].encode("utf-8")),
                slug=base if count == 0 else f"{base}-{count}",
            )
        )
    return sections


def infer_title(fm: Mapping[str, Any], sections: list[Section], source_path: str) -> str:
    """Título desde frontmatter, el primer heading ``#``/``##`` o el nombre de archivo."""
    if "title" in fm and fm["title"]:
        return str(fm["title"]).strip()
    for section in sections:
        if section.level <= 2 and section.text:
            return section.text
    return pathlib.PurePosixPath(source_path).stem


def normalize_title(title: str) -> str:
    """Forma comparable de un título para detectar duplicados."""
    text = clean_heading_text(title).casefold()
    return " ".join(re.sub(r"[^\w\s-]", " ", text).split())
