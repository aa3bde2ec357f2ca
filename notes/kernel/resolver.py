"""
Notes Kernel — Recovery/Fallback Resolver

Decides what an incoming notes payload is and turns it into a safe initial
document. Checks run in order and short-circuit:

  None                      → prepopulated template (brand-new note)
  empty / whitespace        → empty document
  JSON object               → canonical document
  HTML with embedded JSON   → canonical document from the embedded tag
  HTML without it           → template (raw kept for inspection)
  anything else             → the raw text, verbatim, as one paragraph

Existing notes must never silently vanish, so plain text is preserved as-is
and is never parsed into rich nodes.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum

from notes.kernel.document import Document, heading, paragraph, text
from notes.kernel.serializer import from_dict, parse_canonical
from notes.kernel.types import DEFAULT_TEMPLATE_HEADING, EMBEDDED_JSON_TYPE

logger = logging.getLogger(__name__)

_EMBEDDED_RE = re.compile(
    r'<script[^>]*type=["\']' + re.escape(EMBEDDED_JSON_TYPE) + r'["\'][^>]*>(.*?)</script>',
    re.DOTALL | re.IGNORECASE,
)

_HTML_START_RE = re.compile(r"^\s*<(!doctype|!--|[a-z][a-z0-9-]*)[\s>/]", re.IGNORECASE)


class ResolvedKind(str, Enum):
    EMPTY = "empty"
    CANONICAL = "canonical"
    EMBEDDED = "embedded"
    PLAIN_TEXT = "plain_text"
    TEMPLATE = "template"


@dataclass
class InitialDocumentState:
    """What the editor starts from, and how it was obtained."""

    kind: ResolvedKind
    document: Document
    raw: str | None = None

    @property
    def is_template(self) -> bool:
        return self.kind is ResolvedKind.TEMPLATE


def template_document(heading_text: str = DEFAULT_TEMPLATE_HEADING) -> Document:
    """Prepopulated template for brand-new notes: a single heading."""
    return Document([heading(heading_text, tag="h1")])


def plain_text_document(raw: str) -> Document:
    """The raw string, unchanged, as the only paragraph."""
    return Document([paragraph(text(raw))])


def looks_like_html(raw: str) -> bool:
    return bool(_HTML_START_RE.match(raw)) or bool(_EMBEDDED_RE.search(raw))


def extract_embedded_json(html: str) -> str | None:
    """
    Return the canonical JSON carried by the last embedded
    application/lexical+json script tag, or None.
    """
    matches = _EMBEDDED_RE.findall(html)
    for body in reversed(matches):
        candidate = body.strip().replace("<\\/", "</")
        if parse_canonical(candidate) is not None:
            return candidate
    return None


def resolve(raw: str | None, *, template_heading: str = DEFAULT_TEMPLATE_HEADING) -> InitialDocumentState:
    """Resolve a stored notes value to an initial document state."""
    if raw is None:
        return InitialDocumentState(ResolvedKind.TEMPLATE, template_document(template_heading))

    if not raw.strip():
        return InitialDocumentState(ResolvedKind.EMPTY, Document(), raw=raw)

    payload = parse_canonical(raw)
    if payload is not None:
        return InitialDocumentState(ResolvedKind.CANONICAL, from_dict(payload), raw=raw)

    if looks_like_html(raw):
        embedded = extract_embedded_json(raw)
        if embedded is not None:
            payload = parse_canonical(embedded)
            return InitialDocumentState(ResolvedKind.EMBEDDED, from_dict(payload), raw=raw)  # type: ignore[arg-type]
        logger.warning("resolver: HTML payload without embedded JSON, using template")
        return InitialDocumentState(ResolvedKind.TEMPLATE, template_document(template_heading), raw=raw)

    return InitialDocumentState(ResolvedKind.PLAIN_TEXT, plain_text_document(raw), raw=raw)
