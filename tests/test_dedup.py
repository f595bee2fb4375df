"""Tests para la agrupación de duplicados y la elección del canónico."""

from __future__ import annotations

from kbgraph.indexer.dedup import annotate_documents, build_groups, find_conflicts, similarity
from kbgraph.models import Document, IssueKind, Severity


def _doc(source_path: str, title: str, body: str, segment_index: int = 0) -> Document:
    base = source_path.rsplit(".", 1)[0].lower()
    doc_id = base if segment_index == 0 else f"{base}@{segment_index}"
    return Document(
        id=doc_id,
        source_path=source_path,
        segment_index=segment_index,
        title=title,
        raw_body=f"# {title}\n\n{body}\n",
    )


def test_canonical_is_shortest_path():
    """Con mismo título, el canónico es el de path más corto."""
    docs = [
        _doc("a/bb.md", "Tema", "contenido compartido del tema"),
        _doc("a/b.md", "Tema", "contenido compartido del tema"),
    ]
    groups = build_groups(docs)

    assert len(groups) == 1
    assert groups[0].canonical_id == "a/b"
    assert groups[0].members == ("a/b", "a/bb")
    assert groups[0].reason == "title"


def test_canonical_tie_breaks_lexicographically():
    docs = [_doc("z/x.md", "Tema", "uno"), _doc("a/x.md", "Tema", "uno")]
    assert build_groups(docs)[0].canonical_id == "a/x"


def test_segments_of_one_file_share_a_group():
    docs = [
        _doc("patterns.md", "Continuous Architecture", "corta"),
        _doc("patterns.md", "Continuous Architecture (detallado)", "larga", segment_index=1),
        _doc("otro.md", "Otro", "nada"),
    ]
    groups = build_groups(docs)

    assert [(g.canonical_id, g.members, g.reason) for g in groups] == [
        ("otro", ("otro",), "singleton"),
        ("patterns", ("patterns", "patterns@1"), "segments"),
    ]


def test_groups_are_transitive_across_files_and_segments():
    """Segmentos de un archivo más otro archivo con el título de uno de ellos forman un grupo."""
    docs = [
        _doc("patterns.md", "Alpha", "a"),
        _doc("patterns.md", "Beta", "b", segment_index=1),
        _doc("beta.md", "Beta", "b"),
    ]
    groups = build_groups(docs)

    assert len(groups) == 1
    assert groups[0].canonical_id == "beta"
    assert groups[0].reason == "segments+title"


def test_annotate_documents_sets_part_of():
    docs = [_doc("a/bb.md", "Tema", "x"), _doc("a/b.md", "Tema", "x")]
    annotated = {d.id: d for d in annotate_documents(docs, build_groups(docs))}

    assert annotated["a/b"].part_of is None
    assert annotated["a/bb"].part_of == "a/b"


def test_similarity_ignores_case_and_punctuation():
    a = _doc("a.md", "T", "Hola, Mundo!")
    b = _doc("b.md", "T", "hola mundo")
    assert similarity(a, b) == 1.0


def test_conflict_when_same_title_and_different_content():
    docs = [
        _doc("architecture/continuous.md", "Continuous Architecture", "decisiones pequeñas y reversibles con ADRs"),
        _doc("legacy/continuous.md", "Continuous Architecture", "ventanas de mantenimiento y despliegues manuales"),
    ]
    issues = find_conflicts(docs, build_groups(docs), threshold=0.6)

    assert len(issues) == 1
    issue = issues[0]
    assert issue.kind == IssueKind.DUPLICATE_TITLE_CONFLICT
    assert issue.severity == Severity.WARNING
    assert issue.document_id == "architecture/continuous"
    assert issue.target == "legacy/continuous"


def test_no_conflict_for_similar_content_or_zero_threshold():
    docs = [
        _doc("a.md", "Tema", "el mismo texto de siempre sobre el tema"),
        _doc("docs/a.md", "Tema", "el mismo texto de siempre sobre el tema!"),
    ]
    assert find_conflicts(docs, build_groups(docs), threshold=0.6) == []

    different = [_doc("a.md", "Tema", "uno dos"), _doc("b.md", "Tema", "tres cuatro")]
    assert find_conflicts(different, build_groups(different), threshold=0.0) == []


def test_segments_never_conflict():
    """Los segmentos de un mismo archivo son variantes, no conflictos."""
    docs = [
        _doc("patterns.md", "Tema", "texto uno"),
        _doc("patterns.md", "Tema", "algo completamente distinto", segment_index=1),
    ]
    assert find_conflicts(docs, build_groups(docs), threshold=0.9) == []


def test_annotation_keeps_every_document():
    """Dedup nunca borra documentos: sólo anota."""
    docs = [
        _doc("a/bb.md", "Tema", "uno"),
        _doc("a/b.md", "Tema", "otro"),
        _doc("c.md", "C", "tres"),
    ]
    groups = build_groups(docs)
    annotated = annotate_documents(docs, groups)
    conflicts = find_conflicts(annotated, groups, threshold=0.6)

    assert sorted(d.id for d in annotated) == ["a/b", "a/bb", "c"]
    assert [g.canonical_id for g in groups] == ["a/b", "c"]
    assert [i.document_id for i in conflicts] == ["a/bb"]


def test_symbol_only_titles_do_not_group():
    """Títulos que normalizan a vacío (sólo emoji) no agrupan ni conflictúan."""
    docs = [_doc("deploy.md", "🚀", "pasos de despliegue"), _doc("checklist.md", "✅", "lista de control")]
    groups = build_groups(docs)

    assert [(g.canonical_id, g.members) for g in groups] == [
        ("checklist", ("checklist",)),
        ("deploy", ("deploy",)),
    ]
    assert find_conflicts(docs, groups, threshold=0.6) == []
    assert [d.part_of for d in annotate_documents(docs, groups)] == [None, None]
