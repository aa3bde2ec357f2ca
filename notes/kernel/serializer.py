"""
Notes Kernel — Canonical Serializer

Converts a Document to and from canonical JSON, the single source of truth
for persistence and recovery:

    {"root": {"type": "root", "children": [...]},
     "__meta": {"attributions": {key: record}, "defaultAttribution": record}}

`__meta` is present only when there is attribution to record.

Deserialization is permissive: any JSON object is accepted and
node shapes are not deep-validated. Missing fields take registry defaults and
unknown node types are kept as-is.
"""

from __future__ import annotations

import json
from typing import Any

from notes.kernel.document import Document, Node
from notes.kernel.registry import get_kind
from notes.kernel.types import ROOT_TYPE, AttributionMeta, AttributionRecord

# Keys that are structure, not node content
_STRUCTURAL_KEYS = {"type", "children", "attribution", "key"}


class DeserializationError(Exception):
    """Raw input is not JSON, or is JSON but not an object."""
    pass


# ---------------------------------------------------------------------------
# Encode
# ---------------------------------------------------------------------------


def node_to_dict(node: Node) -> dict[str, Any]:
    kind = get_kind(node.type)
    data = kind.encode_fields(node.fields)
    data["type"] = node.type
    if node.children is not None:
        data["children"] = [node_to_dict(c) for c in node.children]
    if node.attribution is not None:
        data["attribution"] = node.attribution.to_dict()
    return data


def to_dict(document: Document, meta: AttributionMeta | None = None) -> dict[str, Any]:
    """Build the canonical payload as a plain dict."""
    payload: dict[str, Any] = {"root": node_to_dict(document.root)}

    attributions = {
        child.key: child.attribution.to_dict()
        for child in document.children
        if child.attribution is not None
    }
    default = None
    if meta is not None and meta.default_attribution is not None:
        default = meta.default_attribution
    elif document.default_attribution is not None:
        default = document.default_attribution

    if attributions or default is not None:
        payload["__meta"] = {
            "attributions": attributions,
            "defaultAttribution": (default or AttributionRecord()).to_dict(),
        }
    return payload


def serialize(document: Document, meta: AttributionMeta | None = None) -> str:
    """Document → canonical JSON string. Deterministic for equal documents."""
    return json.dumps(to_dict(document, meta), ensure_ascii=False, sort_keys=True)


# ---------------------------------------------------------------------------
# Decode
# ---------------------------------------------------------------------------


def parse_canonical(raw: str | bytes | None) -> dict[str, Any] | None:
    """
    Return the parsed payload if `raw` is JSON and a non-null object,
    else None. This is the canonical-format check used before any fallback.
    """
    if raw is None:
        return None
    try:
        parsed = json.loads(raw)
    except (json.JSONDecodeError, TypeError, ValueError):
        return None
    if not isinstance(parsed, dict):
        return None
    return parsed


def node_from_dict(data: dict[str, Any]) -> Node:
    node_type = data.get("type")
    if not isinstance(node_type, str) or not node_type:
        node_type = "paragraph" if isinstance(data.get("children"), list) else "text"

    kind = get_kind(node_type)
    raw_fields = {k: v for k, v in data.items() if k not in _STRUCTURAL_KEYS}
    node = Node(type=node_type, fields=kind.decode_fields(raw_fields))

    raw_children = data.get("children")
    if isinstance(raw_children, list):
        node.children = [node_from_dict(c) for c in raw_children if isinstance(c, dict)]
    elif kind.container:
        node.children = []

    node.attribution = AttributionRecord.from_dict(data.get("attribution"))
    return node


def from_dict(payload: dict[str, Any]) -> Document:
    """Canonical payload dict → Document."""
    # Some callers persisted the editor wrapper instead of the bare state
    if "root" not in payload and isinstance(payload.get("editorState"), dict):
        payload = payload["editorState"]

    raw_root = payload.get("root")
    children: list[Node] = []
    root_fields: dict[str, Any] = {}
    if isinstance(raw_root, dict):
        raw_children = raw_root.get("children")
        if isinstance(raw_children, list):
            children = [node_from_dict(c) for c in raw_children if isinstance(c, dict)]
        root_fields = {k: v for k, v in raw_root.items() if k not in _STRUCTURAL_KEYS}

    document = Document(children)
    document.root.fields.update(get_kind(ROOT_TYPE).decode_fields(root_fields))

    meta = payload.get("__meta")
    if isinstance(meta, dict):
        document.default_attribution = AttributionRecord.from_dict(meta.get("defaultAttribution"))
    return document


def deserialize(raw: str | bytes) -> Document:
    """
    Canonical JSON → Document.
    Raises DeserializationError unless `raw` parses to a JSON object.
    """
    payload = parse_canonical(raw)
    if payload is None:
        raise DeserializationError("Input is not a canonical JSON object")
    return from_dict(payload)
