"""
Notes Kernel — Editing Surface

Ties the kernel together for one notes field:

  load    initial_value → resolver → Document (+ AttributionTracker)
  edit    document commands, each one marking its top-level block dirty
  save    await attribution → serialize → on_save(serialized), exactly once

The hosting application supplies the last saved value, the current user and
the save callback. Nothing here reaches for a global editor handle; the
document and tracker are owned by the NotesEditor instance.

`NotesView` is the display path for saved notes: the static export (or the
read-only fallback) plus the attribution summary.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from notes.kernel.attribution import AttributionTracker
from notes.kernel.document import Document, make_node, paragraph, poll, poll_option, text
from notes.kernel.exporter import export_static, render_readonly
from notes.kernel.resolver import InitialDocumentState, ResolvedKind, extract_embedded_json, resolve
from notes.kernel.serializer import serialize
from notes.kernel.types import (
    DEFAULT_TEMPLATE_HEADING,
    EMPTY_NOTES_PLACEHOLDER,
    AttributionSummaryEntry,
    ExportOptions,
    UserRef,
)

logger = logging.getLogger(__name__)

SaveCallback = Callable[[str], Awaitable[None] | None]

_PARAGRAPH_TYPES = {"paragraph", "attributed-paragraph", "user-paragraph"}


class NotesEditor:
    """One editing session over a single notes value."""

    def __init__(
        self,
        initial_value: str | None,
        current_user: UserRef | dict[str, Any] | None = None,
        on_save: SaveCallback | None = None,
        *,
        template_heading: str = DEFAULT_TEMPLATE_HEADING,
        inline_attribution: bool = False,
    ) -> None:
        self.initial: InitialDocumentState = resolve(initial_value, template_heading=template_heading)
        self.document: Document = self.initial.document
        self.tracker = AttributionTracker(self.document)
        self.tracker.set_current_user(current_user)
        self._on_save = on_save
        self._inline_attribution = inline_attribution

    @property
    def kind(self) -> ResolvedKind:
        return self.initial.kind

    # -- commands --

    def _current_paragraph_key(self) -> str | None:
        """The paragraph the caret is in, else the last top-level paragraph."""
        doc = self.document
        if doc.selection is not None and doc.has_node(doc.selection.anchor_key):
            top = doc.top_level_key(doc.selection.anchor_key)
            if top is not None and doc.get_node(top).type in _PARAGRAPH_TYPES:
                return top
        if doc.children and doc.children[-1].type in _PARAGRAPH_TYPES:
            return doc.children[-1].key
        return None

    def type_text(self, value: str) -> str:
        """
        Insert text at the end of the current paragraph, starting a new
        paragraph when there is none. Returns the paragraph key.
        """
        doc = self.document
        key = self._current_paragraph_key()
        if key is None:
            key = doc.append(paragraph())

        block = doc.get_node(key)
        last = block.children[-1] if block.children else None
        if last is not None and last.type == "text" and not last.fields.get("format"):
            doc.set_text(last.key, last.fields.get("text", "") + value)
            doc.select(last.key, len(last.fields["text"]))
        else:
            leaf_key = doc.append(text(value), parent_key=key)
            doc.select(leaf_key, len(value))
        return key

    def insert_paragraph(self, value: str = "") -> str:
        doc = self.document
        node = paragraph(value) if value else paragraph()
        key = self._current_paragraph_key()
        if key is not None and key != doc.children[-1].key:
            new_key = doc.insert_after(key, node)
        else:
            new_key = doc.append(node)
        doc.select(new_key)
        return new_key

    def insert_linebreak(self) -> None:
        key = self._current_paragraph_key()
        if key is None:
            key = self.insert_paragraph()
        leaf_key = self.document.append(make_node("linebreak"), parent_key=key)
        self.document.select(leaf_key)

    def insert_poll(self, question: str, options: list[str] | None = None) -> str:
        """Insert a poll block with fresh option uids and no votes."""
        opts = [poll_option(o) for o in (options or ["", ""])]
        return self.document.append(poll(question, opts))

    def toggle_check(self, key: str) -> bool:
        return self.document.toggle_check(key)

    async def handle_key(self, key: str, shift: bool = False) -> bool:
        """
        Enter without Shift saves. Shift+Enter inserts a line break.
        Returns True when the key was handled.
        """
        if key != "Enter":
            return False
        if shift:
            self.insert_linebreak()
            return True
        await self.save()
        return True

    # -- save --

    async def save(self) -> str:
        """
        Stamp attribution on dirty blocks, serialize and hand the result to
        `on_save`. Attribution failures are logged and never block the save.
        """
        try:
            await self.tracker.apply_attribution_lines(inline_marker=self._inline_attribution)
        except Exception:
            logger.exception("editor: attribution failed, saving without it")

        serialized = serialize(self.document, self.tracker.get_meta())
        if self._on_save is not None:
            result = self._on_save(serialized)
            if inspect.isawaitable(result):
                await result
        return serialized

    def close(self) -> None:
        self.tracker.close()


@dataclass
class NotesView:
    """What the display surface shows for one stored notes value."""

    html: str = ""
    placeholder: str | None = None
    attributions_summary: list[AttributionSummaryEntry] = field(default_factory=list)
    fallback: bool = False
    raw: str | None = None

    @classmethod
    def from_notes(
        cls,
        notes: str | None,
        options: ExportOptions | None = None,
        *,
        template_heading: str = DEFAULT_TEMPLATE_HEADING,
    ) -> NotesView:
        if notes is None or not notes.strip():
            return cls(placeholder=EMPTY_NOTES_PLACEHOLDER)

        state = resolve(notes, template_heading=template_heading)
        if state.kind is ResolvedKind.CANONICAL:
            result = export_static(notes, options)
            if not result.fallback:
                return cls(html=result.html, attributions_summary=result.attributions_summary, raw=notes)
            return cls(
                html=render_readonly(state.document),
                attributions_summary=result.attributions_summary,
                fallback=True,
                raw=notes,
            )

        # Not canonical: embedded, template or plain text. Shown read-only
        # from the resolved document so the stored text is never lost.
        if state.kind is ResolvedKind.EMBEDDED:
            result = export_static(extract_embedded_json(notes), options)
            if not result.fallback:
                return cls(html=result.html, attributions_summary=result.attributions_summary, raw=notes)
        return cls(html=render_readonly(state.document), fallback=state.kind is not ResolvedKind.PLAIN_TEXT, raw=notes)
