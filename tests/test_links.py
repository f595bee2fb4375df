"""Tests para la extracción y clasificación de links."""

from __future__ import annotations

import textwrap

import pytest

from kbgraph.indexer.links import classify_target, extract_body_links, extract_frontmatter_links
from kbgraph.indexer.markdown import mask_markdown
from kbgraph.models import LinkKind

RELATED = {"related documents", "see also"}


def _links(body: str):
    body = textwrap.dedent(body)
    return extract_body_links(body, mask_markdown(body), RELATED)


@pytest.mark.parametrize(
    "target, expected",
    [
        ("https://example.com/x.md", (LinkKind.EXTERNAL, None, None)),
        ("mailto:team@example.com", (LinkKind.EXTERNAL, None, None)),
        ("//cdn.example.com/a.md", (LinkKind.EXTERNAL, None, None)),
        ("#setup", (LinkKind.ANCHOR, None, "setup")),
        ("img/diagram.png", (LinkKind.ASSET, "img/diagram.png", None)),
        ("../x.md#y", (LinkKind.INTERNAL, "../x.md", "y")),
        ("guides/", (LinkKind.INTERNAL, "guides/", None)),
        ("Mi%20Doc.md?plain=1", (LinkKind.INTERNAL, "Mi Doc.md", None)),
        ("<a b.md>", (LinkKind.INTERNAL, "a b.md", None)),
    ],
)
def test_classify_target(target, expected):
    assert classify_target(target) == expected


def test_extract_body_links_kinds_and_order():
    """Detecta links inline, imágenes, referencias, autolinks y paths sueltos, en orden."""
    links = _links("""\
        # Title

        Intro con [uno](uno.md) y ![img](diagram.png).

        ```python
        x = "[falso](falso.md)"
        ```

        Inline `[codigo](codigo.md)` no cuenta. Ver también docs/bare.md para más.

        [ref]: ./ref.md
        <https://example.com>

        ## Related Documents

        - [Dos](dos.md "Segundo")
    """)

    assert [(l.raw_target, l.source, l.line) for l in links] == [
        ("uno.md", "body", 3),
        ("diagram.png", "image", 3),
        ("docs/bare.md", "bare", 9),
        ("./ref.md", "reference", 11),
        ("https://example.com", "autolink", 12),
        ("dos.md", "body", 16),
    ]
    assert [l.related for l in links] == [False, False, False, False, False, True]
    assert links[0].text == "uno"
    assert (links[1].kind, links[1].text) == (LinkKind.ASSET, "img")
    assert links[4].kind == LinkKind.EXTERNAL


def test_extract_body_links_ignores_urls_ending_in_md():
    """Una URL que termina en .md es externa, no un path suelto."""
    links = _links("Ver https://github.com/org/repo/blob/main/README.md ahora.\n")
    assert links == []


def test_related_span_covers_subheadings_until_next_section():
    """La sección related incluye sus subheadings y termina en el siguiente heading del mismo nivel."""
    links = _links("""\
        # Doc

        ## See Also

        [a](a.md)

        ### Más

        [b](b.md)

        ## Otra sección

        [c](c.md)
    """)

    assert {l.raw_target: l.related for l in links} == {"a.md": True, "b.md": True, "c.md": False}


def test_footnotes_are_not_reference_links():
    links = _links("Texto[^1].\n\n[^1]: nota al pie\n")
    assert links == []


def test_extract_frontmatter_links():
    """``related`` marca los links como related; ``depends_on`` no."""
    links = extract_frontmatter_links(
        {"related": ["a.md", "Ticket API"], "depends_on": "b.md", "owner": "team"}
    )

    assert [(l.raw_target, l.related, l.source) for l in links] == [
        ("a.md", True, "frontmatter.related"),
        ("Ticket API", True, "frontmatter.related"),
        ("b.md", False, "frontmatter.depends_on"),
    ]
    assert all(l.kind == LinkKind.INTERNAL for l in links)


def test_extract_frontmatter_links_ignores_empty_values():
    assert extract_frontmatter_links({"related": None, "depends_on": ["", None]}) == []
