"""
Notes Kernel — Attribution Tracker

Watches document updates and records which top-level blocks changed since
the last save. Just before serialization the save path awaits
`apply_attribution_lines()`, which stamps the current user and time onto
every dirty block and then clears the dirty set. Several edits to one block
between saves therefore produce a single stamp.

Attribution is best-effort annotation. A block that cannot be stamped (for
example because it was deleted after being marked) is logged and skipped;
nothing here ever blocks a save.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from notes.kernel.document import Document, NodeNotFound, UpdateNotice, make_node
from notes.kernel.types import (
    ATTRIBUTION_UPDATE_TAG,
    AttributionMeta,
    AttributionRecord,
    UserRef,
    now_iso,
)

logger = logging.getLogger(__name__)


class AttributionStampError(Exception):
    """A single dirty key could not be stamped."""
    pass


class AttributionTracker:
    """Per-document dirty set plus the identity edits are attributed to."""

    def __init__(self, document: Document, user: UserRef | None = None) -> None:
        self._document = document
        self._user = user
        self._dirty: set[str] = set()
        self._default: AttributionRecord | None = document.default_attribution
        self._unsubscribe = document.register_update_listener(self._on_update)

    # -- identity --

    @property
    def current_user(self) -> UserRef | None:
        return self._user

    def set_current_user(self, user: UserRef | dict[str, Any] | None) -> None:
        """Set the identity attributed to subsequent edits."""
        if isinstance(user, dict):
            user = UserRef.from_dict(user)
        self._user = user

    # -- dirty tracking --

    def _on_update(self, notice: UpdateNotice) -> None:
        if ATTRIBUTION_UPDATE_TAG in notice.tags:
            return
        self._dirty.update(notice.dirty_keys)

    def mark_dirty(self, keys: str | Iterable[str]) -> None:
        """Record keys as changed. Also fed automatically by document updates."""
        if isinstance(keys, str):
            keys = [keys]
        for key in keys:
            if isinstance(key, str) and key:
                self._dirty.add(key)

    def get_meta(self) -> AttributionMeta:
        per_node = {
            child.key: child.attribution
            for child in self._document.children
            if child.attribution is not None
        }
        return AttributionMeta(
            dirty_keys=set(self._dirty),
            last_edited_by=self._user,
            per_node_attribution=per_node,
            default_attribution=self._default,
        )

    def load_meta(self, meta: dict[str, Any] | None) -> None:
        """Seed the default attribution from a loaded payload's `__meta`."""
        if not isinstance(meta, dict):
            return
        default = AttributionRecord.from_dict(meta.get("defaultAttribution"))
        if default is not None:
            self._default = default

    # -- stamping --

    async def apply_attribution_lines(
        self,
        user_name: str | None = None,
        *,
        inline_marker: bool = False,
    ) -> list[str]:
        """
        Stamp every dirty block with the current user and time, then clear
        the dirty set. Returns the keys that were stamped.

        With `inline_marker`, a "Last edited by: NAME" marker is also placed
        at the end of each stamped block, replacing an earlier one.
        """
        editor = self._user
        if editor is None and user_name:
            editor = UserRef(id="", name=user_name)
        display_name = user_name or (editor.name if editor else "") or "unknown"
        stamped_at = now_iso()
        stamped: list[str] = []

        with self._document.update(tag=ATTRIBUTION_UPDATE_TAG):
            for key in sorted(self._dirty):
                try:
                    self._stamp(key, AttributionRecord(editor, stamped_at), display_name, inline_marker)
                except AttributionStampError as e:
                    logger.warning("attribution: skipping key %s: %s", key, e)
                    continue
                stamped.append(key)

        if stamped:
            self._default = AttributionRecord(editor, stamped_at)
        self._dirty.clear()
        return stamped

    def _stamp(self, key: str, record: AttributionRecord, display_name: str, inline_marker: bool) -> None:
        doc = self._document
        if not doc.has_node(key):
            raise AttributionStampError("node no longer exists")
        if doc.top_level_key(key) != key:
            raise AttributionStampError("not a top-level block")

        try:
            doc.set_attribution(key, record)
        except NodeNotFound as e:
            raise AttributionStampError(str(e)) from e

        node = doc.get_node(key)
        if not inline_marker or node.children is None:
            return
        if not node.text_content().strip():
            return

        for child in list(node.children):
            if child.type == "attribution":
                doc.remove(child.key)
        marker = make_node("attribution", author=display_name, timestamp=record.last_edited_at)
        doc.append(marker, parent_key=key)

    def close(self) -> None:
        """Stop listening to the document."""
        self._unsubscribe()
