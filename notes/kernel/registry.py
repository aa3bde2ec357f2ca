"""
Notes Kernel — Node Type Registry

One table maps every node `type` to its contract: field defaults, whether it
holds children, how wire fields decode into memory and back, and how the node
exports to the baseline element tree.

Node kinds are a closed tagged union keyed by `type` and dispatched through
this table. Unknown types fall back to a passthrough kind that
keeps their fields and children intact.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from bs4 import Tag

from notes.kernel.dom import add_class, el, fragment
from notes.kernel.types import (
    FORMAT_BOLD,
    FORMAT_CODE,
    FORMAT_ITALIC,
    FORMAT_STRIKETHROUGH,
    FORMAT_UNDERLINE,
    ROOT_TYPE,
    PollOption,
)

if TYPE_CHECKING:
    from notes.kernel.document import Node

ChildRenderer = Callable[["Node"], list[Tag | str]]
Exporter = Callable[["Node", ChildRenderer], Tag | str | None]

THEME = "PlaygroundEditorTheme"

# Marker classes and attributes read by the export transforms and the hydrator
HASHTAG_CLASS = f"{THEME}__hashtag"
QUOTE_CLASS = f"{THEME}__quote"
CHECKED_CLASS = f"{THEME}__listItemChecked"
UNCHECKED_CLASS = f"{THEME}__listItemUnchecked"
POLL_QUESTION_ATTR = "data-lexical-poll-question"
POLL_OPTIONS_ATTR = "data-lexical-poll-options"
MENTION_ATTR = "data-lexical-mention"
MENTION_NAME_ATTR = "data-lexical-mention-name"
DATETIME_ATTR = "data-lexical-datetime"

_ELEMENT_DEFAULTS: dict[str, Any] = {"direction": None, "format": "", "indent": 0, "version": 1}


@dataclass(frozen=True)
class NodeKind:
    type: str
    container: bool = False
    block: bool = False
    defaults: Mapping[str, Any] = field(default_factory=dict)
    decode: Callable[[dict[str, Any]], dict[str, Any]] | None = None
    encode: Callable[[dict[str, Any]], dict[str, Any]] | None = None
    export: Exporter | None = None

    def decode_fields(self, raw: Mapping[str, Any]) -> dict[str, Any]:
        """Wire fields → in-memory fields. Missing fields take defaults."""
        fields = {k: v for k, v in self.defaults.items()}
        fields.update(raw)
        if self.decode is not None:
            fields = self.decode(fields)
        return fields

    def encode_fields(self, fields: Mapping[str, Any]) -> dict[str, Any]:
        """In-memory fields → wire fields."""
        out = dict(fields)
        if self.encode is not None:
            out = self.encode(out)
        return out


_KINDS: dict[str, NodeKind] = {}


def register_kind(kind: NodeKind) -> NodeKind:
    """Add or replace a node kind."""
    _KINDS[kind.type] = kind
    return kind


def get_kind(node_type: str) -> NodeKind:
    """Look up a kind. Unknown types get a passthrough kind."""
    kind = _KINDS.get(node_type)
    if kind is None:
        return NodeKind(type=node_type, container=False, export=_export_unknown)
    return kind


def is_known(node_type: str) -> bool:
    return node_type in _KINDS


def registered_types() -> list[str]:
    return sorted(_KINDS)


# ---------------------------------------------------------------------------
# Field codecs
# ---------------------------------------------------------------------------


def _decode_poll(fields: dict[str, Any]) -> dict[str, Any]:
    question = fields.get("question")
    fields["question"] = question if isinstance(question, str) else ""
    raw_options = fields.get("options")
    options: list[PollOption] = []
    if isinstance(raw_options, (list, tuple)):
        for row in raw_options:
            if isinstance(row, PollOption):
                options.append(row)
                continue
            opt = PollOption.from_dict(row)
            if opt is not None:
                options.append(opt)
    fields["options"] = tuple(options)
    return fields


def _encode_poll(fields: dict[str, Any]) -> dict[str, Any]:
    fields["options"] = [o.to_dict() for o in fields.get("options", ())]
    return fields


def _decode_datetime(fields: dict[str, Any]) -> dict[str, Any]:
    resolved = fields.get("dateTime")
    fields["dateTime"] = resolved if isinstance(resolved, str) and resolved else None
    if not isinstance(fields.get("text"), str):
        fields["text"] = fields["dateTime"] or ""
    return fields


def _decode_mention(fields: dict[str, Any]) -> dict[str, Any]:
    name = fields.get("mentionName")
    fields["mentionName"] = name if isinstance(name, str) else ""
    if not isinstance(fields.get("text"), str):
        fields["text"] = fields["mentionName"]
    return fields


def _decode_text(fields: dict[str, Any]) -> dict[str, Any]:
    if not isinstance(fields.get("text"), str):
        fields["text"] = ""
    if not isinstance(fields.get("format"), int):
        fields["format"] = 0
    return fields


def _decode_youtube(fields: dict[str, Any]) -> dict[str, Any]:
    # Older payloads spelled the id "videoId"
    if "videoID" not in fields and isinstance(fields.get("videoId"), str):
        fields["videoID"] = fields.pop("videoId")
    return fields


# ---------------------------------------------------------------------------
# Exporters
# ---------------------------------------------------------------------------


def _export_unknown(node: Node, render_children: ChildRenderer) -> Tag | str | None:
    if node.children:
        return fragment(*render_children(node))
    # Leaves such as emoji or keyword nodes carry their content in "text"
    leaf_text = node.fields.get("text")
    if isinstance(leaf_text, str) and leaf_text:
        return leaf_text
    return None


def _export_root(node: Node, render_children: ChildRenderer) -> Tag:
    return fragment(*render_children(node))


def _attribution_title(node: Node) -> str | None:
    rec = node.attribution
    if rec is None or (rec.last_edited_by is None and not rec.last_edited_at):
        return None
    name = rec.last_edited_by.name if rec.last_edited_by else ""
    at = rec.last_edited_at or ""
    return f"By {name}" + (f" • {at}" if at else "")


def _export_paragraph(node: Node, render_children: ChildRenderer) -> Tag:
    p = el("p", {"class": f"{THEME}__paragraph"}, *render_children(node))
    if node.type != "paragraph":
        add_class(p, node.type)
    title = _attribution_title(node)
    if title:
        p["title"] = title
    return p


def _export_heading(node: Node, render_children: ChildRenderer) -> Tag:
    tag = node.fields.get("tag")
    if tag not in {"h1", "h2", "h3", "h4", "h5", "h6"}:
        tag = "h1"
    return el(tag, {"class": f"{THEME}__{tag}"}, *render_children(node))


def _export_list(node: Node, render_children: ChildRenderer) -> Tag:
    list_type = node.fields.get("listType", "bullet")
    if list_type == "number":
        attrs: dict[str, str] = {"class": f"{THEME}__ol1"}
        start = node.fields.get("start", 1)
        if isinstance(start, int) and start != 1:
            attrs["start"] = str(start)
        return el("ol", attrs, *render_children(node))
    ul = el("ul", {"class": f"{THEME}__ul"}, *render_children(node))
    if list_type == "check":
        add_class(ul, f"{THEME}__checklist")
    return ul


def _export_listitem(node: Node, render_children: ChildRenderer) -> Tag:
    li = el("li", {"class": f"{THEME}__listItem"}, *render_children(node))
    value = node.fields.get("value")
    if isinstance(value, int):
        li["value"] = str(value)
    checked = node.fields.get("checked")
    if isinstance(checked, bool):
        li["role"] = "checkbox"
        li["aria-checked"] = "true" if checked else "false"
        li["tabindex"] = "-1"
        add_class(li, CHECKED_CLASS if checked else UNCHECKED_CLASS)
    return li


def _export_quote(node: Node, render_children: ChildRenderer) -> Tag:
    return el("blockquote", {"class": QUOTE_CLASS}, *render_children(node))


def _export_text(node: Node, render_children: ChildRenderer) -> Tag | str:
    text = node.fields.get("text", "")
    fmt = node.fields.get("format", 0) or 0
    style = node.fields.get("style") or ""

    out: Tag | str = text
    if style:
        out = el("span", {"style": style}, out)
    if fmt & FORMAT_CODE:
        out = el("code", {}, out)
    if fmt & FORMAT_STRIKETHROUGH:
        out = el("s", {}, out)
    if fmt & FORMAT_UNDERLINE:
        out = el("u", {}, out)
    if fmt & FORMAT_ITALIC:
        out = el("em", {}, out)
    if fmt & FORMAT_BOLD:
        out = el("strong", {}, out)
    return out


def _export_linebreak(node: Node, render_children: ChildRenderer) -> Tag:
    return el("br")


def _export_mention(node: Node, render_children: ChildRenderer) -> Tag:
    name = node.fields.get("mentionName", "")
    return el(
        "span",
        {MENTION_ATTR: "true", MENTION_NAME_ATTR: name},
        node.fields.get("text") or name,
    )


def _export_hashtag(node: Node, render_children: ChildRenderer) -> Tag:
    return el("span", {"class": HASHTAG_CLASS}, node.fields.get("text", ""))


def _export_datetime(node: Node, render_children: ChildRenderer) -> Tag:
    raw = node.fields.get("text", "")
    value = node.fields.get("dateTime") or raw
    return el("span", {DATETIME_ATTR: value}, raw)


def _export_poll(node: Node, render_children: ChildRenderer) -> Tag:
    options = [o.to_dict() for o in node.fields.get("options", ())]
    return el(
        "span",
        {
            POLL_QUESTION_ATTR: node.fields.get("question", ""),
            POLL_OPTIONS_ATTR: json.dumps(options, ensure_ascii=False),
        },
    )


def _export_youtube(node: Node, render_children: ChildRenderer) -> Tag:
    video_id = str(node.fields.get("videoID") or "")
    return el(
        "iframe",
        {
            "data-lexical-youtube": video_id,
            "width": "560",
            "height": "315",
            "src": f"https://www.youtube-nocookie.com/embed/{video_id}",
            "frameborder": "0",
            "allowfullscreen": "true",
            "title": "YouTube video",
        },
    )


def _export_tweet(node: Node, render_children: ChildRenderer) -> Tag:
    tweet_id = str(node.fields.get("id") or "")
    return el(
        "div",
        {"data-lexical-tweet-id": tweet_id},
        el("a", {"href": f"https://x.com/i/web/status/{tweet_id}"}, f"https://x.com/i/web/status/{tweet_id}"),
    )


def _export_figma(node: Node, render_children: ChildRenderer) -> Tag:
    doc_id = str(node.fields.get("documentID") or "")
    url = f"https://www.figma.com/file/{doc_id}"
    return el(
        "iframe",
        {
            "data-lexical-figma": doc_id,
            "width": "560",
            "height": "315",
            "src": f"https://www.figma.com/embed?embed_host=lexical&url={url}",
            "allowfullscreen": "true",
        },
    )


def _export_attribution(node: Node, render_children: ChildRenderer) -> Tag:
    author = node.fields.get("author")
    small = el(
        "small",
        {"class": "attribution", "data-lexical-attribution": "true"},
        f"Last edited by: {author}" if author else "Last edited",
    )
    timestamp = node.fields.get("timestamp")
    if timestamp:
        small.append(" ")
        small.append(el("time", {"class": "attribution-time", "datetime": timestamp}, timestamp))
    return small


# ---------------------------------------------------------------------------
# Built-in kinds
# ---------------------------------------------------------------------------

register_kind(NodeKind(ROOT_TYPE, container=True, defaults=_ELEMENT_DEFAULTS, export=_export_root))
register_kind(NodeKind("paragraph", container=True, block=True, defaults=_ELEMENT_DEFAULTS, export=_export_paragraph))
register_kind(NodeKind("attributed-paragraph", container=True, block=True, defaults=_ELEMENT_DEFAULTS, export=_export_paragraph))
register_kind(NodeKind("user-paragraph", container=True, block=True, defaults=_ELEMENT_DEFAULTS, export=_export_paragraph))
register_kind(NodeKind("heading", container=True, block=True, defaults={**_ELEMENT_DEFAULTS, "tag": "h1"}, export=_export_heading))
register_kind(
    NodeKind(
        "list",
        container=True,
        block=True,
        defaults={**_ELEMENT_DEFAULTS, "listType": "bullet", "start": 1, "tag": "ul"},
        export=_export_list,
    )
)
register_kind(NodeKind("listitem", container=True, defaults={**_ELEMENT_DEFAULTS, "value": 1}, export=_export_listitem))
register_kind(NodeKind("quote", container=True, block=True, defaults=_ELEMENT_DEFAULTS, export=_export_quote))
register_kind(
    NodeKind(
        "text",
        defaults={"detail": 0, "format": 0, "mode": "normal", "style": "", "text": "", "version": 1},
        decode=_decode_text,
        export=_export_text,
    )
)
register_kind(NodeKind("linebreak", defaults={"version": 1}, export=_export_linebreak))
register_kind(NodeKind("mention", defaults={"version": 1}, decode=_decode_mention, export=_export_mention))
register_kind(
    NodeKind(
        "hashtag",
        defaults={"detail": 0, "format": 0, "mode": "normal", "style": "", "text": "", "version": 1},
        decode=_decode_text,
        export=_export_hashtag,
    )
)
register_kind(NodeKind("datetime", defaults={"version": 1}, decode=_decode_datetime, export=_export_datetime))
register_kind(
    NodeKind(
        "poll",
        block=True,
        defaults={"question": "", "options": (), "version": 1},
        decode=_decode_poll,
        encode=_encode_poll,
        export=_export_poll,
    )
)
register_kind(NodeKind("youtube", block=True, defaults={"format": "", "version": 1}, decode=_decode_youtube, export=_export_youtube))
register_kind(NodeKind("tweet", block=True, defaults={"format": "", "version": 1}, export=_export_tweet))
register_kind(NodeKind("figma", block=True, defaults={"format": "", "version": 1}, export=_export_figma))
register_kind(NodeKind("attribution", defaults={"author": None, "timestamp": None, "version": 1}, export=_export_attribution))


# ---------------------------------------------------------------------------
# Baseline export
# ---------------------------------------------------------------------------


def export_node(node: Node) -> Tag | str | None:
    """Run a node's exporter, recursing through its children."""

    def render_children(parent: Node) -> list[Tag | str]:
        out: list[Tag | str] = []
        for child in parent.children or []:
            rendered = export_node(child)
            if rendered is not None:
                out.append(rendered)
        return out

    kind = get_kind(node.type)
    exporter = kind.export or _export_unknown
    return exporter(node, render_children)
