"""Tests para el grafo de documentos: aristas, ciclos y huérfanos."""

from __future__ import annotations

import textwrap

import pytest

from kbgraph.config import Settings
from kbgraph.indexer.graph import build_graph, strongly_connected_components
from kbgraph.indexer.loader import parse_segments
from kbgraph.indexer.resolver import resolve_documents
from kbgraph.models import Document, Edge, EdgeKind, LinkKind, LinkReference


def _resolved(files: dict[str, str]) -> list[Document]:
    settings = Settings(doc_separator="RELATED_DOC_SEP")
    docs = []
    for rel_path, content in files.items():
        docs.extend(parse_segments(textwrap.dedent(content), rel_path, settings))
    resolved, _ = resolve_documents(docs)
    return resolved


def test_strongly_connected_components():
    # 0 → 1 → 2 → 0, 2 → 3, 4 aislado
    adjacency = [[1], [2], [0, 3], [], []]
    components = sorted(sorted(c) for c in strongly_connected_components(adjacency))
    assert components == [[0, 1, 2], [3], [4]]


def test_strongly_connected_components_deep_chain():
    """Una cadena larga no revienta la pila (Tarjan iterativo)."""
    n = 5000
    adjacency = [[i + 1] for i in range(n - 1)] + [[0]]
    components = strongly_connected_components(adjacency)
    assert len(components) == 1
    assert len(components[0]) == n


def test_build_graph_edges_and_cycle():
    docs = _resolved(
        {
            "a.md": "# A\n\n[B](b.md) [B otra vez](b.md#b) [yo](a.md) [ext](https://x.org)\n",
            "b.md": "# B\n\n[C](c.md)\n",
            "c.md": "# C\n\n[A](a.md)\n",
        }
    )
    graph = build_graph(docs)

    assert graph.edges == (
        Edge("a", "b", EdgeKind.REFERENCE),
        Edge("b", "c", EdgeKind.REFERENCE),
        Edge("c", "a", EdgeKind.REFERENCE),
    )
    assert graph.cycles == (("a", "b", "c"),)
    assert graph.cycle_of("b") == ("a", "b", "c")
    assert graph.orphans == ()
    assert graph.successors("a") == ("b",)
    assert graph.predecessors("a") == ("c",)


def test_related_section_produces_related_edges():
    """Links bajo "Related Documents" generan además una arista related."""
    docs = _resolved(
        {
            "a.md": """\
                # A

                Texto con [B](b.md).

                ## Related Documents

                - [C](c.md)
            """,
            "b.md": "# B\n",
            "c.md": "# C\n",
            "solo.md": "# Solo\n",
        }
    )
    graph = build_graph(docs)

    assert graph.successors("a", EdgeKind.REFERENCE) == ("b", "c")
    assert graph.successors("a", EdgeKind.RELATED) == ("c",)
    assert graph.predecessors("c", EdgeKind.RELATED) == ("a",)
    assert graph.cycles == ()
    assert graph.orphans == ("solo",)


def test_self_links_do_not_create_edges_or_cycles():
    docs = _resolved({"a.md": "# A\n\n[arriba](#a) [yo](./a.md)\n"})
    graph = build_graph(docs)

    assert graph.edges == ()
    assert graph.cycles == ()
    assert graph.orphans == ("a",)


def test_unknown_node_lookups_are_empty():
    graph = build_graph(_resolved({"a.md": "# A\n"}))
    assert graph.index_of("zzz") is None
    assert graph.successors("zzz") == ()
    assert graph.cycle_of("a") is None


def test_build_graph_rejects_edges_to_unknown_documents():
    """Un link resuelto hacia un id ausente es un error de programación."""
    link = LinkReference(raw_target="x.md", kind=LinkKind.INTERNAL, path="x.md", resolved_id="x")
    doc = Document(id="a", source_path="a.md", segment_index=0, title="A", raw_body="", outbound_links=(link,))

    with pytest.raises(ValueError):
        build_graph([doc])
