"""Fixtures compartidas para tests."""

from __future__ import annotations

import pathlib
import textwrap

import pytest
import structlog

from kbgraph.config import Settings


def _write_corpus(root: pathlib.Path, files: dict[str, str]) -> pathlib.Path:
    """Escribe un corpus de prueba: ``{path relativo: contenido}``."""
    for rel_path, content in files.items():
        target = root / rel_path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(textwrap.dedent(content), encoding="utf-8")
    return root


def _make_settings(**overrides) -> Settings:
    """Crea settings de prueba sin depender de env vars reales."""
    defaults = {
        "corpus_root": None,
        "doc_separator": "RELATED_DOC_SEP",
        "similarity_threshold": 0.6,
        "loader_workers": 4,
        "log_level": "WARNING",
    }
    defaults.update(overrides)
    return Settings(**defaults)


@pytest.fixture(autouse=True)
def _reset_structlog():
    yield
    structlog.reset_defaults()


@pytest.fixture
def settings() -> Settings:
    return _make_settings()


@pytest.fixture
def make_corpus(tmp_path: pathlib.Path):
    """Factory para corpus ad hoc: ``make_corpus("nombre", {path: contenido})``."""

    def _make(name: str, files: dict[str, str]) -> pathlib.Path:
        return _write_corpus(tmp_path / name, files)

    return _make


@pytest.fixture
def cycle_corpus(tmp_path: pathlib.Path) -> pathlib.Path:
    """Tres documentos que se referencian en ciclo: A → B → C → A."""
    return _write_corpus(
        tmp_path / "cycle",
        {
            "a.md": """\
                # A

                Empieza en A y sigue en [B](b.md).
            """,
            "b.md": """\
                # B

                De B pasamos a [C](./c.md).
            """,
            "c.md": """\
                # C

                C vuelve a [A](a.md#a).
            """,
        },
    )


@pytest.fixture
def segmented_corpus(tmp_path: pathlib.Path) -> pathlib.Path:
    """Un archivo con dos documentos separados por el marcador."""
    return _write_corpus(
        tmp_path / "segmented",
        {
            "patterns.md": """\
                # Continuous Architecture Pattern

                Versión corta del patrón.

                <!-- RELATED_DOC_SEP -->

                # Continuous Architecture Pattern (detallado)

                Versión extendida con más detalle sobre decisiones y trade-offs.
            """,
            "index.md": """\
                # Índice

                Ver [patrones](patterns.md).
            """,
        },
    )


@pytest.fixture
def dangling_corpus(tmp_path: pathlib.Path) -> pathlib.Path:
    """Un documento con un link a un archivo inexistente."""
    return _write_corpus(
        tmp_path / "dangling",
        {
            "guide.md": """\
                # Guide

                Ver [texto](./missing-file.md) y [externo](https://example.com/doc.md).
            """,
            "other.md": """\
                # Other

                Volver a la [guía](guide.md).
            """,
        },
    )


@pytest.fixture
def knowledge_corpus(tmp_path: pathlib.Path) -> pathlib.Path:
    """Corpus más completo: carpetas, frontmatter, duplicados y secciones related."""
    return _write_corpus(
        tmp_path / "kb",
        {
            "README.md": """\
                # Knowledge Base

                - [Arquitectura](architecture/README.md)
                - [Seguridad](security/checklist.md#secrets)
            """,
            "architecture/README.md": """\
                # Architecture

                Patrones en [continuous](continuous.md) y [event sourcing](./event-sourcing.md).

                ## Related Documents

                - [Checklist de seguridad](../security/checklist.md)
            """,
            "architecture/continuous.md": """\
                ---
                title: Continuous Architecture
                related:
                  - event-sourcing.md
                ---

                # Continuous Architecture

                Decisiones pequeñas, reversibles y documentadas en ADRs.
            """,
            "architecture/event-sourcing.md": """\
                # Event Sourcing

                Cada cambio de estado se guarda como evento inmutable.
            """,
            "legacy/continuous.md": """\
                # Continuous Architecture

                Texto antiguo sobre otro tema: despliegues manuales y ventanas de mantenimiento.
            """,
            "security/checklist.md": """\
                # Security Checklist

                ## Secrets

                Nunca commitear credenciales.
            """,
        },
    )
