"""
Notes Kernel — HTML Tree Helpers

The static export pipeline and the hydrator work on BeautifulSoup trees.
Transforms run as tree-to-tree rewrites; only the final step turns the tree
into an HTML string.

A `BeautifulSoup` object doubles as a fragment: appending one into a tag
moves its children in, so exporters can return several siblings at once.
"""

from __future__ import annotations

from bs4 import BeautifulSoup, NavigableString, Tag

PARSER = "html.parser"

# Tags built outside of a parse still need a tree builder so void elements
# and multi-valued attributes (class) behave the same as parsed ones.
_factory = BeautifulSoup("", PARSER)


def parse_html(html: str) -> BeautifulSoup:
    """Parse an HTML string. Comments, doctypes and script bodies are kept."""
    return BeautifulSoup(html, PARSER)


def fragment(*children: Tag | str) -> BeautifulSoup:
    soup = BeautifulSoup("", PARSER)
    _append(soup, children)
    return soup


def el(tag: str, attrs: dict[str, str] | None = None, *children: Tag | str) -> Tag:
    """Shorthand constructor. Empty strings are skipped."""
    node = _factory.new_tag(tag, attrs=dict(attrs or {}))
    _append(node, children)
    return node


def _append(node: Tag, children) -> None:
    for child in children:
        if isinstance(child, BeautifulSoup):
            node.extend(list(child.contents))
        elif isinstance(child, str) and not child:
            continue
        else:
            node.append(child)


def to_html(node: Tag | str) -> str:
    """Serialize a tag, fragment or bare text to HTML."""
    if isinstance(node, Tag):
        return node.decode()
    if not isinstance(node, NavigableString):
        node = NavigableString(node)
    return node.output_ready()


# -- class helpers --


def classes(node: Tag) -> list[str]:
    value = node.get("class")
    if value is None:
        return []
    if isinstance(value, str):
        return value.split()
    return list(value)


def has_class(node: Tag, name: str) -> bool:
    return name in classes(node)


def add_class(node: Tag, *names: str) -> Tag:
    current = classes(node)
    for name in names:
        if name not in current:
            current.append(name)
    node["class"] = current
    return node


def element_children(node: Tag) -> list[Tag]:
    return [c for c in node.children if isinstance(c, Tag)]
