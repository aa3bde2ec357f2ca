"""
Notes Kernel -- Attribution Tracker Tests

Edits mark their top-level block dirty. Saving stamps every dirty block
with the current user and time exactly once, then clears the dirty set.

This verifies:
  - dirty tracking is driven by document updates
  - repeated edits coalesce into one stamp
  - stamping itself never re-dirties anything
  - a key that cannot be stamped is skipped, never raised
  - the optional inline "Last edited by" marker replaces older markers
"""

import json

import pytest

from notes.kernel.attribution import AttributionTracker
from notes.kernel.document import Document, paragraph
from notes.kernel.serializer import serialize
from notes.kernel.types import AttributionRecord, UserRef

# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def document():
    return Document([paragraph("first"), paragraph("second")])


@pytest.fixture
def tracker(document, alice):
    t = AttributionTracker(document, alice)
    yield t
    t.close()


def leaf_key(document, index):
    return document.children[index].children[0].key


# ============================================================================
# Dirty tracking
# ============================================================================


class TestDirtyTracking:
    def test_edit_marks_top_level_block(self, document, tracker):
        document.set_text(leaf_key(document, 1), "edited")
        assert tracker.get_meta().dirty_keys == {document.children[1].key}

    def test_untouched_document_is_clean(self, tracker):
        assert tracker.get_meta().dirty_keys == set()

    def test_mark_dirty_accepts_one_or_many(self, document, tracker):
        tracker.mark_dirty(document.children[0].key)
        tracker.mark_dirty([document.children[1].key])
        assert tracker.get_meta().dirty_keys == {c.key for c in document.children}

    def test_meta_reports_current_user(self, tracker, alice):
        assert tracker.get_meta().last_edited_by == alice

    def test_set_current_user_from_dict(self, tracker):
        tracker.set_current_user({"id": "u2", "name": "Bo"})
        assert tracker.current_user == UserRef(id="u2", name="Bo")

    def test_closed_tracker_stops_listening(self, document, alice):
        t = AttributionTracker(document, alice)
        t.close()
        document.set_text(leaf_key(document, 0), "x")
        assert t.get_meta().dirty_keys == set()


# ============================================================================
# Stamping
# ============================================================================


class TestApplyAttribution:
    @pytest.mark.asyncio
    async def test_stamps_dirty_block(self, document, tracker, alice):
        document.set_text(leaf_key(document, 0), "edited")

        stamped = await tracker.apply_attribution_lines()

        block = document.children[0]
        assert stamped == [block.key]
        assert block.attribution.last_edited_by == alice
        assert block.attribution.last_edited_at
        assert document.children[1].attribution is None

    @pytest.mark.asyncio
    async def test_repeated_edits_coalesce(self, document, tracker):
        for value in ("a", "ab", "abc"):
            document.set_text(leaf_key(document, 0), value)
        assert await tracker.apply_attribution_lines() == [document.children[0].key]

    @pytest.mark.asyncio
    async def test_dirty_set_cleared_and_not_refilled(self, document, tracker):
        document.set_text(leaf_key(document, 0), "edited")
        await tracker.apply_attribution_lines()
        assert tracker.get_meta().dirty_keys == set()
        assert await tracker.apply_attribution_lines() == []

    @pytest.mark.asyncio
    async def test_deleted_key_skipped(self, document, tracker):
        tracker.mark_dirty("999")
        document.set_text(leaf_key(document, 1), "edited")

        stamped = await tracker.apply_attribution_lines()

        assert stamped == [document.children[1].key]
        assert tracker.get_meta().dirty_keys == set()

    @pytest.mark.asyncio
    async def test_nested_key_skipped(self, document, tracker):
        tracker.mark_dirty(leaf_key(document, 0))
        assert await tracker.apply_attribution_lines() == []
        assert document.children[0].attribution is None

    @pytest.mark.asyncio
    async def test_serialized_meta_carries_stamp(self, document, tracker):
        document.set_text(leaf_key(document, 1), "edited")
        await tracker.apply_attribution_lines()

        payload = json.loads(serialize(document, tracker.get_meta()))

        key = document.children[1].key
        assert payload["__meta"]["attributions"][key]["lastEditedBy"]["name"] == "Alice"
        assert payload["__meta"]["defaultAttribution"]["lastEditedBy"]["id"] == "user_alice"

    @pytest.mark.asyncio
    async def test_user_name_without_identity(self, document):
        t = AttributionTracker(document)
        document.set_text(leaf_key(document, 0), "edited")
        await t.apply_attribution_lines("Walk-in")
        assert document.children[0].attribution.last_edited_by.name == "Walk-in"


class TestInlineMarker:
    @pytest.mark.asyncio
    async def test_marker_appended(self, document, tracker):
        document.set_text(leaf_key(document, 0), "edited")
        await tracker.apply_attribution_lines(inline_marker=True)

        markers = [c for c in document.children[0].children if c.type == "attribution"]
        assert len(markers) == 1
        assert markers[0].fields["author"] == "Alice"
        assert document.children[0].text_content() == "edited"

    @pytest.mark.asyncio
    async def test_marker_replaced_not_duplicated(self, document, tracker):
        document.set_text(leaf_key(document, 0), "one")
        await tracker.apply_attribution_lines(inline_marker=True)
        document.set_text(leaf_key(document, 0), "two")
        await tracker.apply_attribution_lines(inline_marker=True)

        markers = [c for c in document.children[0].children if c.type == "attribution"]
        assert len(markers) == 1

    @pytest.mark.asyncio
    async def test_empty_block_gets_no_marker(self, document, tracker):
        document.set_text(leaf_key(document, 0), "   ")
        await tracker.apply_attribution_lines(inline_marker=True)
        assert all(c.type != "attribution" for c in document.children[0].children)
        assert document.children[0].attribution is not None


class TestLoadMeta:
    def test_default_attribution_seeded(self, tracker):
        tracker.load_meta(
            {"defaultAttribution": {"lastEditedBy": {"id": "u7", "name": "Lee"}, "lastEditedAt": "2026-01-01T00:00:00Z"}}
        )
        assert tracker.get_meta().default_attribution == AttributionRecord(
            UserRef("u7", "Lee"), "2026-01-01T00:00:00Z"
        )

    def test_non_dict_ignored(self, tracker):
        tracker.load_meta(None)
        tracker.load_meta("junk")
        assert tracker.get_meta().default_attribution is None
