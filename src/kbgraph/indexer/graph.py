"""Construcción del grafo de documentos: aristas, ciclos y huérfanos."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

import structlog

from kbgraph.models import Document, Edge, EdgeKind, LinkKind

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class DocumentGraph:
    """Grafo inmutable con índices enteros por documento.

    ``ids[i]`` es el documento del nodo ``i``; las listas de adyacencia están
    ordenadas por id de destino.
    """

    ids: tuple[str, ...]
    edges: tuple[Edge, ...]
    outbound: dict[EdgeKind, tuple[tuple[int, ...], ...]]
    inbound: dict[EdgeKind, tuple[tuple[int, ...], ...]]
    cycles: tuple[tuple[str, ...], ...]
    orphans: tuple[str, ...]
    index: dict[str, int] = field(default_factory=dict, compare=False, repr=False)

    def index_of(self, doc_id: str) -> int | None:
        return self.index.get(doc_id)

    def successors(self, doc_id: str, kind: EdgeKind = EdgeKind.REFERENCE) -> tuple[str, ...]:
        i = self.index_of(doc_id)
        if i is None:
            return ()
        return tuple(self.ids[j] for j in self.outbound[kind][i])

    def predecessors(self, doc_id: str, kind: EdgeKind = EdgeKind.REFERENCE) -> tuple[str, ...]:
        i = self.index_of(doc_id)
        if i is None:
            return ()
        return tuple(self.ids[j] for j in self.inbound[kind][i])

    def cycle_of(self, doc_id: str) -> tuple[str, ...] | None:
        for members in self.cycles:
            if doc_id in members:
                return members
        return None


def edges_from_documents(documents: Iterable[Document]) -> list[Edge]:
    """Aristas a partir de los links resueltos.

    Cada link resuelto produce una arista ``reference``; los que vienen de una
    sección "related" o del frontmatter ``related`` producen además una
    ``related``. Los links a sí mismo no generan aristas.
    """
    edges: set[Edge] = set()
    for doc in documents:
        for link in doc.outbound_links:
            if link.kind != LinkKind.INTERNAL or link.resolved_id is None:
                continue
            if link.resolved_id == doc.id:
                continue
            edges.add(Edge(doc.id, link.resolved_id, EdgeKind.REFERENCE))
            if link.related:
                edges.add(Edge(doc.id, link.resolved_id, EdgeKind.RELATED))
    return sorted(edges, key=lambda e: (e.from_id, e.to_id, e.kind.value))


def strongly_connected_components(adjacency: Sequence[Sequence[int]]) -> list[list[int]]:
    """Tarjan iterativo; retorna las componentes en orden de descubrimiento."""
    n = len(adjacency)
    index_of = [-1] * n
    lowlink = [0] * n
    on_stack = [False] * n
    stack: list[int] = []
    components: list[list[int]] = []
    counter = 0

    for start in range(n):
        if index_of[start] != -1:
            continue
        work: list[tuple[int, int]] = [(start, 0)]
        while work:
            node, child = work.pop()
            if child == 0:
                index_of[node] = lowlink[node] = counter
                counter += 1
                stack.append(node)
                on_stack[node] = True

            recurse = False
            neighbours = adjacency[node]
            while child < len(neighbours):
                nxt = neighbours[child]
                child += 1
                if index_of[nxt] == -1:
                    work.append((node, child))
                    work.append((nxt, 0))
                    recurse = True
                    break
                if on_stack[nxt]:
                    lowlink[node] = min(lowlink[node], index_of[nxt])
            if recurse:
                continue

            if lowlink[node] == index_of[node]:
                component: list[int] = []
                while True:
                    member = stack.pop()
                    on_stack[member] = False
                    component.append(member)
                    if member == node:
                        break
                components.append(component)

            if work:
                parent = work[-1][0]
                lowlink[parent] = min(lowlink[parent], lowlink[node])

    return components


def build_graph(documents: Iterable[Document]) -> DocumentGraph:
    """Arma el grafo a partir de documentos con links ya resueltos.

    Un ciclo no es un error: se registra para reportes y para cortar
    recursiones en consumidores que aplanan el grafo. Un documento sin
    aristas entrantes ni salientes queda marcado como huérfano.
    """
    docs = sorted(documents, key=lambda d: d.id)
    ids = tuple(d.id for d in docs)
    index = {doc_id: i for i, doc_id in enumerate(ids)}
    edges = edges_from_documents(docs)

    out_lists: dict[EdgeKind, list[list[int]]] = {kind: [[] for _ in ids] for kind in EdgeKind}
    in_lists: dict[EdgeKind, list[list[int]]] = {kind: [[] for _ in ids] for kind in EdgeKind}
    for edge in edges:
        if edge.from_id not in index or edge.to_id not in index:
            raise ValueError(f"Arista hacia un documento inexistente: {edge.from_id} -> {edge.to_id}")
        src, dst = index[edge.from_id], index[edge.to_id]
        out_lists[edge.kind][src].append(dst)
        in_lists[edge.kind][dst].append(src)

    outbound = {kind: tuple(tuple(sorted(adj)) for adj in lists) for kind, lists in out_lists.items()}
    inbound = {kind: tuple(tuple(sorted(adj)) for adj in lists) for kind, lists in in_lists.items()}

    cycles = sorted(
        tuple(sorted(ids[i] for i in component))
        for component in strongly_connected_components(outbound[EdgeKind.REFERENCE])
        if len(component) > 1
    )

    orphans = tuple(
        doc_id
        for i, doc_id in enumerate(ids)
        if not any(outbound[kind][i] or inbound[kind][i] for kind in EdgeKind)
    )

    logger.debug("graph_built", nodes=len(ids), edges=len(edges), cycles=len(cycles), orphans=len(orphans))
    return DocumentGraph(
        ids=ids,
        edges=tuple(edges),
        outbound=outbound,
        inbound=inbound,
        cycles=tuple(cycles),
        orphans=orphans,
        index=index,
    )
