"""
Notes Kernel — Static Export Pipeline

Pure function: canonical JSON → standalone HTML + attribution summary.
No IO. Same input → same output.

Steps:
  1. Deserialize into a headless document.
  2. Generate the baseline BeautifulSoup tree from the registry's exporters.
  3. Run the per-kind transforms below, in order. Each one only touches
     elements carrying its own marker and skips its own output, so every
     transform is idempotent and they do not interfere with each other.
  4. Serialize the tree and prepend the stylesheet link.
  5. Append the canonical JSON in a <script type="application/lexical+json">
     tag so HTML-only consumers can recover the full document later.
  6. Summarize attribution for display.

If anything in steps 1-5 raises, the result is a fallback signal instead of
partial HTML. The caller then shows the read-only view.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing import Any
from urllib.parse import quote

import chevron
from bs4 import BeautifulSoup, NavigableString, Tag

from notes.kernel.document import Document
from notes.kernel.dom import add_class, el, element_children, fragment, has_class, to_html
from notes.kernel.registry import (
    CHECKED_CLASS,
    DATETIME_ATTR,
    HASHTAG_CLASS,
    MENTION_ATTR,
    MENTION_NAME_ATTR,
    POLL_OPTIONS_ATTR,
    POLL_QUESTION_ATTR,
    QUOTE_CLASS,
    UNCHECKED_CLASS,
    export_node,
)
from notes.kernel.serializer import DeserializationError, from_dict, parse_canonical
from notes.kernel.types import (
    EMBEDDED_JSON_TYPE,
    AttributionRecord,
    AttributionSummaryEntry,
    ExportOptions,
    ExportResult,
    PollOption,
)

logger = logging.getLogger(__name__)


class ExportError(Exception):
    """Baseline generation or a transform failed."""
    pass


# ---------------------------------------------------------------------------
# Output shell
# ---------------------------------------------------------------------------

LIST_STYLE = """<style>
/* Minimal ordered-list styles for exported/static HTML */
ol { margin: 0 0 1em 1.6em; padding-left: 0; }
ol li { margin: 0.1em 0; }
ol li::marker { font-weight: 500; color: #444; }
ol li { list-style: decimal; }
</style>
"""

EXPORT_TEMPLATE = (
    '<link rel="stylesheet" href="{{stylesheet_url}}">\n'
    "{{{list_style}}}"
    "{{{body}}}"
    "{{#embed}}\n"
    '<script type="{{script_type}}">{{{canonical}}}</script>'
    "{{/embed}}"
)

CHECKLIST_ITEM_CLASS = "ChecklistItem__html"
NORMALIZED_ATTR = "data-checklist-normalized"
POLL_CONTAINER_CLASS = "PollNode__container"
MENTION_CLASS = "MentionNode__html"
HASHTAG_HTML_CLASS = "HashtagNode__html"
QUOTE_HTML_CLASS = "QuoteNode__html"

# Single-character check marks and whether they mean "checked"
CHECK_MARKS: dict[str, bool] = {
    "☐": False,
    "□": False,
    "☑": True,
    "☒": True,
    "✓": True,
    "✔": True,
    "✅": True,
}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def export_static(canonical_json: str | None, options: ExportOptions | None = None) -> ExportResult:
    """
    Render canonical JSON to static HTML.
    Never raises: failures come back as `ExportResult(fallback=True)`.
    """
    opts = options or ExportOptions()
    if canonical_json is None or not canonical_json.strip():
        return ExportResult(html="")

    summary: list[AttributionSummaryEntry] = []
    try:
        payload = parse_canonical(canonical_json)
        if payload is None:
            raise DeserializationError("Input is not a canonical JSON object")
        summary = summarize_attributions(payload)

        document = from_dict(payload)
        summary = summarize_attributions(payload, document)

        tree = generate_tree(document)
        apply_transforms(tree, opts)
        html = _assemble(tree, canonical_json.strip(), opts)
    except Exception as e:
        logger.warning("export: static render failed, using read-only fallback: %s", e)
        return ExportResult(attributions_summary=summary, fallback=True, error=str(e))

    return ExportResult(html=html, attributions_summary=summary)


def generate_tree(document: Document) -> BeautifulSoup:
    """Baseline tree for a document (before transforms)."""
    try:
        out = export_node(document.root)
    except Exception as e:
        raise ExportError(f"baseline generation failed: {e}") from e
    if isinstance(out, BeautifulSoup):
        return out
    return fragment(out) if out else fragment()


def apply_transforms(tree: Tag, options: ExportOptions | None = None) -> Tag:
    """Run every transform over `tree`, in order. Mutates and returns it."""
    opts = options or ExportOptions()
    for name, transform in TRANSFORMS:
        try:
            transform(tree, opts)
        except Exception as e:
            raise ExportError(f"{name} transform failed: {e}") from e
    return tree


def embed_json(canonical_json: str) -> str:
    """The recovery tag appended to exported HTML."""
    return f'<script type="{EMBEDDED_JSON_TYPE}">{_escape_script(canonical_json)}</script>'


def _escape_script(text: str) -> str:
    # Keeps "</script>" inside the payload from closing the tag.
    # "<\/" decodes back to "</" so the JSON value is unchanged.
    return text.replace("</", "<\\/")


def _assemble(tree: Tag, canonical_json: str, opts: ExportOptions) -> str:
    return chevron.render(
        EXPORT_TEMPLATE,
        {
            "stylesheet_url": opts.stylesheet_url,
            "list_style": LIST_STYLE if opts.include_list_style else "",
            "body": to_html(tree),
            "embed": {
                "canonical": _escape_script(canonical_json),
                "script_type": EMBEDDED_JSON_TYPE,
            }
            if opts.embed_json
            else False,
        },
    )


# ---------------------------------------------------------------------------
# Attribution summary
# ---------------------------------------------------------------------------


def _summary_entry(key: str, record: AttributionRecord | None) -> AttributionSummaryEntry:
    name = "unknown"
    at = ""
    if record is not None:
        if record.last_edited_by is not None and record.last_edited_by.name:
            name = record.last_edited_by.name
        at = record.last_edited_at or ""
    return AttributionSummaryEntry(key=key, name=name, at=at)


def summarize_attributions(
    payload: dict[str, Any],
    document: Document | None = None,
) -> list[AttributionSummaryEntry]:
    """
    Resolve attribution records to display pairs. Per-node `attribution`
    fields win when the document has any; otherwise `__meta.attributions`.
    """
    if document is not None:
        per_node = [
            _summary_entry(child.key, child.attribution)
            for child in document.children
            if child.attribution is not None
        ]
        if per_node:
            return per_node

    meta = payload.get("__meta")
    if not isinstance(meta, dict):
        return []
    attributions = meta.get("attributions")
    if not isinstance(attributions, dict):
        return []
    return [
        _summary_entry(str(key), AttributionRecord.from_dict(record))
        for key, record in attributions.items()
    ]


# ---------------------------------------------------------------------------
# Transform: checklist normalization
# ---------------------------------------------------------------------------


def _is_check_marked(node: Tag) -> bool:
    return (
        node.get("role") == "checkbox"
        or node.has_attr("aria-checked")
        or node.has_attr("data-lexical-check")
        or node.has_attr("data-checked")
        or has_class(node, CHECKED_CLASS)
        or has_class(node, UNCHECKED_CLASS)
    )


def _is_checkbox_input(node: Tag) -> bool:
    return node.name == "input" and node.get("type") == "checkbox"


def _mark_char(node: Tag) -> str | None:
    if node.find(True) is not None:
        return None
    txt = node.get_text().strip()
    return txt if txt in CHECK_MARKS else None


def _take_leading_mark(node: Tag) -> str | None:
    """Remove and return a check mark that opens an <li>'s content."""
    if not node.contents:
        return None
    first = node.contents[0]
    if isinstance(first, Tag):
        mark = _mark_char(first)
        if mark is not None:
            first.extract()
        return mark
    if type(first) is not NavigableString:
        return None
    stripped = first.lstrip()
    if not stripped or stripped[0] not in CHECK_MARKS:
        return None
    rest = stripped[1:].lstrip()
    if rest:
        first.replace_with(rest)
    else:
        first.extract()
    return stripped[0]


def _is_checked(node: Tag) -> bool:
    if node.get("aria-checked") == "true":
        return True
    if node.get("data-checked") in ("", "true"):
        return True
    if node.get("data-lexical-check") == "true":
        return True
    if has_class(node, CHECKED_CLASS):
        return True
    return any(child.has_attr("checked") for child in node.find_all("input", recursive=False))


def _checkbox(checked: bool) -> Tag:
    box = el("input", {"type": "checkbox", "class": "ChecklistItem__checkbox", "disabled": ""})
    if checked:
        box["checked"] = ""
    return box


def _normalize_in_place(node: Tag, checked: bool) -> None:
    label = el("label", {"class": "ChecklistItem__label"})
    trailing: list[Tag] = []
    for child in list(node.contents):
        child.extract()
        if isinstance(child, Tag):
            if _is_checkbox_input(child):
                continue
            if child.name in ("ul", "ol"):
                trailing.append(child)
                continue
        label.append(child)

    for attr in ("role", "aria-checked", "tabindex", "data-checked", "data-lexical-check"):
        node.attrs.pop(attr, None)
    add_class(node, CHECKLIST_ITEM_CLASS)
    node[NORMALIZED_ATTR] = "true"
    node.append(_checkbox(checked))
    node.append(label)
    for child in trailing:
        node.append(child)


def _normalize_one(node: Tag) -> Tag | None:
    """
    Normalize one element. Returns the element to descend into next, or
    None when the node was replaced by a finished checkbox.
    """
    if node.has_attr(NORMALIZED_ATTR):
        return node

    if node.name == "li":
        has_box = any(_is_checkbox_input(c) for c in element_children(node))
        if _is_check_marked(node) or has_box:
            _normalize_in_place(node, _is_checked(node))
        else:
            mark = _take_leading_mark(node)
            if mark is not None:
                _normalize_in_place(node, CHECK_MARKS[mark])
        return node

    if node.name == "input":
        parent = node.parent
        if (
            _is_checkbox_input(node)
            and not node.has_attr("disabled")
            and not (parent is not None and parent.has_attr(NORMALIZED_ATTR))
        ):
            node["disabled"] = ""
            node[NORMALIZED_ATTR] = "true"
        return node

    if _is_check_marked(node):
        _normalize_in_place(node, _is_checked(node))
        return node

    mark = _mark_char(node)
    if mark is not None and node.name in ("span", "div"):
        box = _checkbox(CHECK_MARKS[mark])
        box[NORMALIZED_ATTR] = "true"
        node.replace_with(box)
        return None
    return node


def _count_normalized(tree: Tag) -> int:
    return len(tree.find_all(attrs={NORMALIZED_ATTR: True}))


def normalize_checklists(tree: Tag, opts: ExportOptions | None = None) -> int:
    """
    Rewrite checkbox-like markup into a disabled checkbox + label pair.
    <li> items are rewritten in place so the parent list keeps its
    numbering and markers.
    """
    before = _count_normalized(tree)

    def walk(parent: Tag) -> None:
        for child in element_children(parent):
            nxt = _normalize_one(child)
            if nxt is not None:
                walk(nxt)

    walk(tree)
    return _count_normalized(tree) - before


# ---------------------------------------------------------------------------
# Transform: list repair
# ---------------------------------------------------------------------------


def repair_lists(tree: Tag, opts: ExportOptions | None = None) -> int:
    """A checklist <div> sitting directly in a <ul>/<ol> becomes an <li>."""
    items = tree.select(f"ul > div.{CHECKLIST_ITEM_CLASS}, ol > div.{CHECKLIST_ITEM_CLASS}")
    for node in items:
        node.name = "li"
    return len(items)


# ---------------------------------------------------------------------------
# Transform: polls
# ---------------------------------------------------------------------------


def _vote_label(count: int) -> str:
    if count <= 0:
        return ""
    return "1 vote" if count == 1 else f"{count} votes"


def poll_markup(
    question: str,
    options: list[PollOption],
    *,
    interactive: bool = False,
    voter_id: str | None = None,
) -> Tag:
    """
    Inner markup of a poll, mirroring the interactive widget's classes.
    Static polls get disabled checkboxes; hydrated ones get live inputs
    carrying the option uid.
    """
    total = sum(o.vote_count for o in options)
    inner = el("div", {"class": "PollNode__inner"}, el("h2", {"class": "PollNode__heading"}, question))

    for opt in options:
        box = el("input", {"type": "checkbox", "class": "PollNode__optionCheckbox"})
        if interactive:
            box["data-poll-option-uid"] = opt.uid
            if voter_id is not None and voter_id in opt.votes:
                box["checked"] = ""
        else:
            box["disabled"] = ""

        pct = (opt.vote_count / total) * 100 if total else 0
        row = el(
            "div",
            {"class": "PollNode__optionContainer"},
            el("div", {"class": "PollNode__optionCheckboxWrapper"}, box),
            el(
                "div",
                {"class": "PollNode__optionInputWrapper"},
                el("div", {"class": "PollNode__optionInputVotes", "style": f"width: {pct:g}%"}),
                el("span", {"class": "PollNode__optionInputVotesCount"}, _vote_label(opt.vote_count)),
                el("span", {"class": "PollNode__optionInput"}, opt.text),
            ),
        )
        inner.append(row)

    inner.append(el("div", {"class": "PollNode__footer"}))
    return inner


def parse_poll_options(raw: str) -> list[PollOption]:
    """Decode a data-attribute option list. Raises ValueError on bad JSON."""
    data = json.loads(raw or "[]")
    if not isinstance(data, list):
        raise ValueError("poll options must be a JSON array")
    return [opt for opt in (PollOption.from_dict(row) for row in data) if opt is not None]


def render_polls(tree: Tag, opts: ExportOptions | None = None) -> int:
    """Replace each poll placeholder span with static poll markup."""
    count = 0
    for node in tree.select(f"span[{POLL_QUESTION_ATTR}]"):
        question = node.get(POLL_QUESTION_ATTR) or ""
        raw_options = node.get(POLL_OPTIONS_ATTR) or "[]"
        try:
            options = parse_poll_options(raw_options)
        except ValueError as e:
            logger.warning("export: leaving malformed poll placeholder as-is: %s", e)
            continue

        container = el(
            "div",
            {
                "class": POLL_CONTAINER_CLASS,
                POLL_QUESTION_ATTR: question,
                POLL_OPTIONS_ATTR: json.dumps([o.to_dict() for o in options], ensure_ascii=False),
            },
            poll_markup(question, options),
        )
        node.replace_with(container)
        count += 1
    return count


# ---------------------------------------------------------------------------
# Transform: mentions
# ---------------------------------------------------------------------------


def render_mentions(tree: Tag, opts: ExportOptions | None = None) -> int:
    count = 0
    for node in tree.find_all("span", attrs={MENTION_ATTR: True}):
        if has_class(node, MENTION_CLASS):
            continue
        name = (node.get(MENTION_NAME_ATTR) or node.get_text()).strip()
        wrapper = el("span", {"class": f"{MENTION_CLASS} mention", MENTION_ATTR: "true"})
        if name:
            wrapper[MENTION_NAME_ATTR] = name
        wrapper.append(f"@{name}")
        node.replace_with(wrapper)
        count += 1
    return count


# ---------------------------------------------------------------------------
# Transform: datetimes
# ---------------------------------------------------------------------------

_DATE_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y/%m/%d %H:%M",
    "%Y/%m/%d",
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y %I:%M %p",
    "%m/%d/%Y",
    "%B %d, %Y %H:%M",
    "%B %d, %Y",
    "%b %d, %Y",
    "%d %B %Y",
    "%d %b %Y",
)


def parse_datetime(raw: str | None) -> str | None:
    """
    Best-effort parse of a user-entered date/time into an ISO-8601 UTC
    instant (millisecond precision, `Z` suffix). Naive values are taken as
    UTC. Returns None when nothing matches; never raises.
    """
    if not raw or not isinstance(raw, str):
        return None
    value = raw.strip()
    if not value:
        return None

    parsed: datetime | None = None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00") if value.endswith("Z") else value)
    except ValueError:
        parsed = None

    if parsed is None:
        for fmt in _DATE_FORMATS:
            try:
                parsed = datetime.strptime(value, fmt)
                break
            except ValueError:
                continue

    if parsed is None:
        try:
            parsed = parsedate_to_datetime(value)
        except (TypeError, ValueError, IndexError):
            parsed = None

    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    try:
        # Offsets can push an instant near year 1 or 9999 out of range
        parsed = parsed.astimezone(UTC)
    except (OverflowError, ValueError):
        return None
    return parsed.strftime("%Y-%m-%dT%H:%M:%S.") + f"{parsed.microsecond // 1000:03d}Z"


def render_datetimes(tree: Tag, opts: ExportOptions | None = None) -> int:
    count = 0
    for node in tree.select(f"span[{DATETIME_ATTR}]"):
        raw = node.get(DATETIME_ATTR) or ""
        time_el = el("time", {"class": "DateTimeNode__time"})
        iso = parse_datetime(raw)
        if iso:
            time_el["datetime"] = iso
        time_el.append(node.get_text() or raw)
        node.replace_with(time_el)
        count += 1
    return count


# ---------------------------------------------------------------------------
# Transform: hashtags
# ---------------------------------------------------------------------------


def _is_hashtag(node: Tag) -> bool:
    if has_class(node, HASHTAG_HTML_CLASS):
        return False
    if node.name == "span" and (has_class(node, "hashtag") or node.has_attr("data-lexical-hashtag")):
        return True
    return node.name in ("span", "a") and has_class(node, HASHTAG_CLASS)


def render_hashtags(tree: Tag, opts: ExportOptions | None = None) -> int:
    """Hashtags become anchors to a synthetic tag path, for styling only."""
    base = (opts or ExportOptions()).tag_base_path.rstrip("/")
    count = 0
    for node in tree.find_all(_is_hashtag):
        txt = node.get_text().strip()
        if not txt:
            continue
        tag = txt[1:] if txt.startswith("#") else txt
        anchor = el(
            "a",
            {"class": f"{HASHTAG_HTML_CLASS} {HASHTAG_CLASS}", "href": f"{base}/{quote(tag, safe='')}"},
            txt,
        )
        node.replace_with(anchor)
        count += 1
    return count


# ---------------------------------------------------------------------------
# Transform: quotes
# ---------------------------------------------------------------------------


def _is_quote(node: Tag) -> bool:
    if has_class(node, QUOTE_HTML_CLASS):
        return False
    return (
        node.name == "blockquote"
        or has_class(node, QUOTE_CLASS)
        or node.has_attr("data-lexical-quote")
        or (node.name == "div" and has_class(node, "quote"))
    )


def render_quotes(tree: Tag, opts: ExportOptions | None = None) -> int:
    """Blockquote-like containers become one canonical <blockquote>."""
    quotes = tree.find_all(_is_quote)
    for node in quotes:
        # Renamed in place, so nested formatting survives untouched
        node.name = "blockquote"
        node.attrs = {}
        add_class(node, QUOTE_HTML_CLASS, QUOTE_CLASS)
    return len(quotes)


TRANSFORMS: list[tuple[str, Callable[[Tag, ExportOptions], int]]] = [
    ("checklist", normalize_checklists),
    ("list-repair", repair_lists),
    ("poll", render_polls),
    ("mention", render_mentions),
    ("datetime", render_datetimes),
    ("hashtag", render_hashtags),
    ("quote", render_quotes),
]


# ---------------------------------------------------------------------------
# Read-only fallback
# ---------------------------------------------------------------------------


def render_readonly(document: Document) -> str:
    """
    Plain, guaranteed-safe rendering of a document, used when the static
    export falls back. One block per top-level node, text only.
    """
    view = el("div", {"class": "ReadOnlyEditor"})
    for child in document.children:
        body = child.text_content()
        if child.type == "heading":
            tag = child.fields.get("tag") if child.fields.get("tag") in {"h1", "h2", "h3", "h4", "h5", "h6"} else "h1"
            view.append(el(tag, {}, body))
        elif child.type == "poll":
            rows = el("ul")
            for o in child.fields.get("options", ()):
                rows.append(el("li", {}, f"{o.text} ({_vote_label(o.vote_count) or '0 votes'})"))
            view.append(el("p", {}, child.fields.get("question", "")))
            view.append(rows)
        elif body:
            view.append(el("p", {}, body))
    return to_html(view)
