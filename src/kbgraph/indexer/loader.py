"""Carga del corpus: descubre .md, separa segmentos y produce ``Document``."""

from __future__ import annotations

import datetime
import fnmatch
import hashlib
import pathlib
import posixpath
import re
import threading
from collections.abc import Iterator, Mapping
from concurrent.futures import Future, ThreadPoolExecutor
from types import MappingProxyType
from typing import Any

import frontmatter
import structlog
import yaml

from kbgraph.config import Settings
from kbgraph.exceptions import CorpusRootError
from kbgraph.indexer.links import MARKDOWN_SUFFIXES, extract_body_links, extract_frontmatter_links
from kbgraph.indexer.markdown import extract_sections, infer_title, mask_code, mask_markdown, normalize_title
from kbgraph.models import Cancelled, Document, LoadError, LoadErrorKind, LoadResult

logger = structlog.get_logger(__name__)

SEGMENT_ID_SEP = "@"


def _content_hash(raw: str) -> str:
    """SHA-256 del texto del segmento."""
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def document_id(rel_path: str, segment_index: int = 0) -> str:
    """Id estable: path relativo en minúsculas, sin extensión markdown.

    Los segmentos posteriores al primero llevan el sufijo ``@<n>``.
    """
    base = posixpath.normpath(rel_path.replace("\\", "/")).lstrip("/").casefold()
    for suffix in MARKDOWN_SUFFIXES:
        if base.endswith(suffix):
            base = base[: -len(suffix)]
            break
    if segment_index == 0:
        return base
    return f"{base}{SEGMENT_ID_SEP}{segment_index}"


def _separator_re(token: str) -> re.Pattern[str]:
    escaped = re.escape(token)
    return re.compile(
        rf"^[ \t]*(?:<!--[ \t]*{escaped}[ \t]*-->|{escaped})[ \t]*\r?(?:\n|\Z)",
        re.MULTILINE,
    )


def split_segments(text: str, separator: str) -> list[str]:
    """Divide un archivo en segmentos lógicos según la línea separadora.

    Un separador es una línea que contiene sólo el token, opcionalmente
    envuelto en un comentario HTML. Las líneas dentro de bloques de código no
    cuentan. Los segmentos vacíos se descartan.
    """
    if not separator or separator not in text:
        return [text]

    # mask_code conserva offsets: los cortes valen para el texto original
    parts: list[str] = []
    start = 0
    for match in _separator_re(separator).finditer(mask_code(text)):
        parts.append(text[start : match.start()])
        start = match.end()
    parts.append(text[start:])

    segments = [part for part in parts if part.strip()]
    return segments or [text]


def _is_excluded(rel_path: str, exclude_globs: list[str]) -> bool:
    return any(fnmatch.fnmatch(rel_path, pattern) for pattern in exclude_globs)


def _iter_corpus_files(root: pathlib.Path) -> Iterator[tuple[pathlib.Path, str]]:
    """Genera ``(path, path relativo posix)`` de cada archivo fuera de carpetas ocultas."""
    for p in root.rglob("*"):
        if not p.is_file():
            continue
        rel = p.relative_to(root)
        if any(part.startswith(".") for part in rel.parts):
            continue
        yield p, rel.as_posix()


def discover_markdown_files(root: pathlib.Path, exclude_globs: list[str] | None = None) -> list[pathlib.Path]:
    """Lista todos los .md excluyendo carpetas ocultas y los globs configurados."""
    exclude_globs = exclude_globs or []
    results = [
        p
        for p, rel in _iter_corpus_files(root)
        if p.suffix.lower() in MARKDOWN_SUFFIXES and not _is_excluded(rel, exclude_globs)
    ]
    return sorted(results, key=lambda p: p.relative_to(root).as_posix())


def discover_assets(root: pathlib.Path) -> frozenset[str]:
    """Paths relativos (en minúsculas) de los archivos no markdown del corpus."""
    return frozenset(
        rel.casefold() for p, rel in _iter_corpus_files(root) if p.suffix.lower() not in MARKDOWN_SUFFIXES
    )


def _metadata_key(key: object) -> str:
    if isinstance(key, (datetime.date, datetime.datetime)):
        return key.isoformat()
    return str(key)


def freeze_metadata(value: Any) -> Any:
    """Copia inmutable y serializable a JSON de un valor de frontmatter.

    Los mapas quedan como ``MappingProxyType`` con claves ``str``, las
    secuencias como tuplas y las fechas como texto ISO.
    """
    if isinstance(value, Mapping):
        return MappingProxyType({_metadata_key(k): freeze_metadata(v) for k, v in value.items()})
    if isinstance(value, (list, tuple, set, frozenset)):
        items = sorted(value, key=str) if isinstance(value, (set, frozenset)) else value
        return tuple(freeze_metadata(v) for v in items)
    if isinstance(value, (datetime.date, datetime.datetime)):
        return value.isoformat()
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


def _parse_metadata(segment: str, rel_path: str) -> Mapping[str, Any]:
    try:
        post = frontmatter.loads(segment)
    except (yaml.YAMLError, ValueError, TypeError) as exc:
        # TypeError: claves no string en el YAML (``1: uno``)
        logger.warning("frontmatter_invalid", path=rel_path, error=str(exc))
        return MappingProxyType({})
    return freeze_metadata(post.metadata)


def parse_segments(text: str, rel_path: str, settings: Settings) -> list[Document]:
    """Convierte el texto de un archivo en uno o más ``Document``."""
    related = {normalize_title(h) for h in settings.related_headings}
    documents: list[Document] = []

    for index, segment in enumerate(split_segments(text, settings.doc_separator)):
        fm = _parse_metadata(segment, rel_path)
        masked = mask_markdown(segment)
        sections = extract_sections(segment, masked)
        links = extract_frontmatter_links(fm) + extract_body_links(segment, masked, related)

        documents.append(
            Document(
                id=document_id(rel_path, index),
                source_path=rel_path,
                segment_index=index,
                title=infer_title(fm, sections, rel_path),
                raw_body=segment,
                outbound_links=tuple(links),
                sections=tuple(sections),
                frontmatter=fm,
                content_hash=_content_hash(segment),
            )
        )
    return documents


def _read_markdown(file_path: pathlib.Path, rel_path: str) -> str | LoadError:
    try:
        data = file_path.read_bytes()
    except OSError as exc:
        return LoadError(path=rel_path, kind=LoadErrorKind.IO, detail=str(exc))
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as exc:
        return LoadError(path=rel_path, kind=LoadErrorKind.ENCODING, detail=str(exc))


def _load_file(
    file_path: pathlib.Path,
    rel_path: str,
    settings: Settings,
    cancel_event: threading.Event | None,
) -> list[Document] | LoadError | None:
    """Lee y parsea un archivo. ``None`` si la corrida fue cancelada antes de leer."""
    if cancel_event is not None and cancel_event.is_set():
        return None
    text = _read_markdown(file_path, rel_path)
    if isinstance(text, LoadError):
        return text
    return parse_segments(text, rel_path, settings)


def _check_root(root: pathlib.Path) -> None:
    if not root.exists():
        raise CorpusRootError(str(root), "no existe")
    if not root.is_dir():
        raise CorpusRootError(str(root), "no es un directorio")
    try:
        next(root.iterdir(), None)
    except OSError as exc:
        raise CorpusRootError(str(root), str(exc)) from exc


def _drop_id_collisions(documents: list[Document], errors: list[LoadError]) -> list[Document]:
    """Descarta archivos cuyo id colisiona (p.ej. ``Foo.md`` y ``foo.md``).

    Gana el primero en orden de ``source_path``; el resto se reporta.
    """
    owner: dict[str, str] = {}
    kept: list[Document] = []
    rejected: set[str] = set()

    for doc in documents:
        if doc.source_path in rejected:
            continue
        current = owner.get(doc.id)
        if current is not None and current != doc.source_path:
            rejected.add(doc.source_path)
            errors.append(
                LoadError(
                    path=doc.source_path,
                    kind=LoadErrorKind.ID_COLLISION,
                    detail=f"el id '{doc.id}' ya pertenece a {current}",
                )
            )
            logger.warning("document_id_collision", path=doc.source_path, id=doc.id, owner=current)
            continue
        owner[doc.id] = doc.source_path
        kept.append(doc)

    return [doc for doc in kept if doc.source_path not in rejected]


def load_corpus(
    root: str | pathlib.Path,
    settings: Settings,
    *,
    cancel_event: threading.Event | None = None,
    files: list[pathlib.Path] | None = None,
) -> LoadResult | Cancelled:
    """Carga todos los documentos bajo ``root`` en paralelo.

    Los errores por archivo se acumulan en el resultado sin abortar la carga.
    El orden de finalización de los workers no afecta la salida: todo se
    ordena por ``source_path`` antes de asignar ids.

    Args:
        root: Directorio raíz del corpus.
        settings: Configuración (separador, workers, exclusiones).
        cancel_event: Si se activa, la carga termina y retorna ``Cancelled``.
        files: Lista explícita de archivos a cargar (por defecto se descubren).
    """
    root_path = pathlib.Path(root)
    _check_root(root_path)

    md_files = files if files is not None else discover_markdown_files(root_path, settings.exclude_globs)
    result = LoadResult(files_seen=len(md_files), assets=discover_assets(root_path))
    logger.info("load_started", root=str(root_path), files=len(md_files))

    by_path: dict[str, list[Document]] = {}
    workers = max(1, settings.loader_workers)

    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="kbgraph-load") as executor:
        futures: list[tuple[str, Future]] = []
        for file_path in md_files:
            rel_path = file_path.relative_to(root_path).as_posix()
            futures.append(
                (rel_path, executor.submit(_load_file, file_path, rel_path, settings, cancel_event))
            )

        files_read = 0
        for rel_path, future in futures:
            if cancel_event is not None and cancel_event.is_set():
                for _, pending in futures:
                    pending.cancel()
                logger.info("load_cancelled", files_read=files_read)
                return Cancelled(reason="cancelled during load", files_read=files_read)

            outcome = future.result()
            if outcome is None:
                continue
            files_read += 1
            if isinstance(outcome, LoadError):
                logger.warning("load_error", path=outcome.path, kind=outcome.kind.value, error=outcome.detail)
                result.errors.append(outcome)
                continue
            by_path[rel_path] = outcome

    if cancel_event is not None and cancel_event.is_set():
        return Cancelled(reason="cancelled during load", files_read=files_read)

    documents = [doc for path in sorted(by_path) for doc in by_path[path]]
    result.documents = _drop_id_collisions(documents, result.errors)
    result.errors.sort(key=lambda e: (e.path, e.kind.value))

    logger.info(
        "load_complete",
        documents=len(result.documents),
        files=len(by_path),
        errors=len(result.errors),
    )
    return result
