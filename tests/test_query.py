"""Tests para las consultas: resolve, related_to, traverse y validate."""

from __future__ import annotations

import pathlib

import pytest

from kbgraph.config import Settings
from kbgraph.indexer.pipeline import IndexSnapshot, build_snapshot
from kbgraph.models import IssueKind, NotFound
from kbgraph.search.query import normalize_ref, related_to, resolve, traverse, validate


def _snapshot(root: pathlib.Path) -> IndexSnapshot:
    return build_snapshot(root, Settings(doc_separator="RELATED_DOC_SEP")).snapshot


@pytest.fixture
def snapshot(make_corpus) -> IndexSnapshot:
    root = make_corpus(
        "query",
        {
            "a.md": """\
                # A

                Sigue en [B](b.md).

                ## See Also

                - [Tema](a/b.md)
            """,
            "b.md": "# B\n\nLuego [C](c.md).\n",
            "c.md": "# C\n\nVolver a [A](a.md) y a [D](d.md).\n",
            "d.md": "# D\n",
            "a/b.md": "# Tema\n\nContenido del tema compartido.\n",
            "a/bb.md": "# Tema\n\nContenido del tema compartido.\n",
            "patterns/continuous.md": """\
                # Continuous

                Corta.

                RELATED_DOC_SEP

                # Continuous (extendido)

                Larga.
            """,
        },
    )
    return _snapshot(root)


@pytest.mark.parametrize(
    "ref, expected",
    [
        ("./Docs/Guide.md#setup", "docs/guide"),
        ("docs\\guide", "docs/guide"),
        ("/x/", "x"),
        ("#solo-anchor", ""),
    ],
)
def test_normalize_ref(ref, expected):
    assert normalize_ref(ref) == expected


@pytest.mark.parametrize("ref", ["a", "A", "a.md", "./a.md", "A.MD#see-also"])
def test_resolve_exact_id_variants(snapshot: IndexSnapshot, ref: str):
    doc = resolve(snapshot, ref)
    assert doc.id == "a"


def test_resolve_suffix_and_title(snapshot: IndexSnapshot):
    """Sin coincidencia exacta se busca por sufijo de path y luego por título."""
    assert resolve(snapshot, "continuous").id == "patterns/continuous"
    assert resolve(snapshot, "continuous@1").id == "patterns/continuous@1"
    assert resolve(snapshot, "Continuous (extendido)").id == "patterns/continuous@1"
    assert resolve(snapshot, "bb").id == "a/bb"


def test_resolve_not_found(snapshot: IndexSnapshot):
    result = resolve(snapshot, "no/existe.md")
    assert isinstance(result, NotFound)
    assert not result
    assert result.query == "no/existe.md"


def test_resolve_canonical(snapshot: IndexSnapshot):
    """El canónico de "Tema" es a/b.md (path más corto que a/bb.md)."""
    assert resolve(snapshot, "a/bb").part_of == "a/b"
    assert resolve(snapshot, "a/bb", canonical=True).id == "a/b"
    assert resolve(snapshot, "a/b", canonical=True).id == "a/b"


def test_traverse_cycle(snapshot: IndexSnapshot):
    """traverse(A, 2) visita A, sus vecinos y los vecinos de éstos, sin repetir."""
    assert [d.id for d in traverse(snapshot, "a", 0)] == ["a"]
    assert [d.id for d in traverse(snapshot, "a", 1)] == ["a", "a/b", "b"]
    assert [d.id for d in traverse(snapshot, "a", 2)] == ["a", "a/b", "b", "c"]
    assert [d.id for d in traverse(snapshot, "b", 10)] == ["b", "c", "a", "d", "a/b"]


def test_traverse_invalid(snapshot: IndexSnapshot):
    assert isinstance(traverse(snapshot, "zzz", 2), NotFound)
    with pytest.raises(ValueError):
        traverse(snapshot, "a", -1)


def test_related_to_includes_related_edges_and_group(snapshot: IndexSnapshot):
    assert [d.id for d in related_to(snapshot, "a")] == ["a/b"]
    # a/b: entrante related desde a, luego su grupo (a/bb)
    assert [d.id for d in related_to(snapshot, "a/b")] == ["a", "a/bb"]
    # a/bb: sin aristas related; el canónico primero
    assert [d.id for d in related_to(snapshot, "a/bb")] == ["a/b"]


def test_related_to_includes_other_segments(snapshot: IndexSnapshot):
    assert [d.id for d in related_to(snapshot, "patterns/continuous")] == ["patterns/continuous@1"]
    assert [d.id for d in related_to(snapshot, "patterns/continuous@1")] == ["patterns/continuous"]
    assert isinstance(related_to(snapshot, "zzz"), NotFound)


def test_validate_is_pure(snapshot: IndexSnapshot):
    first = validate(snapshot)
    second = validate(snapshot)

    assert first == second
    assert tuple(first) == snapshot.issues
    assert {i.kind for i in first} == {IssueKind.CYCLE_DETECTED, IssueKind.ORPHAN_DOCUMENT}
