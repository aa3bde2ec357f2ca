"""
Notes Export -- Transform Tests

Each transform rewrites only elements carrying its own marker and skips its
own output, so running the whole chain twice changes nothing.
"""

from notes.kernel.document import (
    Document,
    datetime_node,
    hashtag,
    list_item,
    list_node,
    mention,
    paragraph,
    poll,
    quote,
    text,
)
from notes.kernel.dom import element_children, has_class, parse_html, to_html
from notes.kernel.exporter import (
    CHECKLIST_ITEM_CLASS,
    POLL_CONTAINER_CLASS,
    apply_transforms,
    export_static,
    generate_tree,
    normalize_checklists,
    parse_datetime,
    render_polls,
    repair_lists,
)
from notes.kernel.serializer import serialize
from notes.kernel.types import FORMAT_BOLD, ExportOptions, PollOption

# ============================================================================
# Helpers
# ============================================================================


def transformed(*blocks, options=None):
    tree = generate_tree(Document(list(blocks)))
    return apply_transforms(tree, options)


def find(tree, predicate):
    return tree.find_all(predicate)


# ============================================================================
# Checklists
# ============================================================================


class TestChecklists:
    def test_items_become_checkbox_and_label(self):
        tree = transformed(
            list_node(list_item("Chain", checked=True), list_item("Wheels", checked=False), list_type="check")
        )
        items = find(tree, lambda n: n.name == "li")
        assert len(items) == 2
        for li in items:
            assert has_class(li, CHECKLIST_ITEM_CLASS)
            assert not li.has_attr("role")
            box, label = element_children(li)[:2]
            assert box.name == "input"
            assert box.has_attr("disabled")
            assert label.name == "label"
        assert element_children(items[0])[0].has_attr("checked")
        assert not element_children(items[1])[0].has_attr("checked")
        assert element_children(items[0])[1].get_text() == "Chain"

    def test_list_keeps_its_tag(self):
        tree = transformed(list_node(list_item("a", checked=True), list_type="check"))
        assert element_children(tree)[0].name == "ul"

    def test_leading_mark_in_plain_item(self):
        tree = transformed(list_node(list_item("☑ Done"), list_item("☐ Todo")))
        items = find(tree, lambda n: n.name == "li")
        assert element_children(items[0])[0].has_attr("checked")
        assert element_children(items[0])[1].get_text() == "Done"
        assert not element_children(items[1])[0].has_attr("checked")

    def test_mark_span_becomes_checkbox(self):
        tree = parse_html("<p><span>✔</span> tightened</p>")
        normalize_checklists(tree)
        box = element_children(element_children(tree)[0])[0]
        assert box.name == "input"
        assert box.has_attr("checked")

    def test_idempotent(self):
        tree = transformed(list_node(list_item("Chain", checked=True), list_type="check"))
        before = to_html(tree)
        assert normalize_checklists(tree) == 0
        assert to_html(tree) == before

    def test_div_item_repaired_to_li(self):
        tree = parse_html(f'<ul><div class="{CHECKLIST_ITEM_CLASS}">x</div></ul>')
        assert repair_lists(tree) == 1
        assert element_children(element_children(tree)[0])[0].name == "li"
        assert repair_lists(tree) == 0


# ============================================================================
# Polls
# ============================================================================


class TestPolls:
    def make_poll(self):
        return poll(
            "Which saddle?",
            [
                PollOption(uid="a", text="Brooks", votes=frozenset({"u1", "u2"})),
                PollOption(uid="b", text="Fizik", votes=frozenset({"u3"})),
                PollOption(uid="c", text="Stock"),
            ],
        )

    def test_static_poll_markup(self):
        html = to_html(transformed(self.make_poll()))
        assert POLL_CONTAINER_CLASS in html
        assert "data-lexical-poll-options" in html
        assert "Which saddle?" in html
        assert "2 votes" in html
        assert "1 vote<" in html
        assert "disabled" in html

    def test_vote_bar_widths(self):
        tree = transformed(self.make_poll())
        bars = find(tree, lambda n: has_class(n, "PollNode__optionInputVotes"))
        assert [b.get("style") for b in bars] == [
            "width: 66.6667%",
            "width: 33.3333%",
            "width: 0%",
        ]

    def test_malformed_placeholder_left_alone(self):
        tree = parse_html('<span data-lexical-poll-question="Q" data-lexical-poll-options="{bad"></span>')
        assert render_polls(tree) == 0
        assert element_children(tree)[0].name == "span"

    def test_idempotent(self):
        tree = transformed(self.make_poll())
        assert render_polls(tree) == 0


# ============================================================================
# Mentions, datetimes, hashtags, quotes
# ============================================================================


class TestInlineKinds:
    def test_mention(self):
        html = to_html(transformed(paragraph(mention("Alice"))))
        assert ">@Alice</span>" in html
        assert "MentionNode__html" in html

    def test_datetime_parsed(self):
        html = to_html(transformed(paragraph(datetime_node("2024-03-05 14:30"))))
        assert '<time class="DateTimeNode__time" datetime="2024-03-05T14:30:00.000Z">2024-03-05 14:30</time>' in html

    def test_datetime_unparseable_keeps_text(self):
        tree = transformed(paragraph(datetime_node("after the rain")))
        times = find(tree, lambda n: n.name == "time")
        assert len(times) == 1
        assert not times[0].has_attr("datetime")
        assert times[0].get_text() == "after the rain"

    def test_hashtag_link(self):
        html = to_html(transformed(paragraph(hashtag("warranty"))))
        assert 'href="/tags/warranty"' in html
        assert ">#warranty</a>" in html

    def test_hashtag_base_path_option(self):
        html = to_html(transformed(paragraph(hashtag("tune up")), options=ExportOptions(tag_base_path="/t/")))
        assert 'href="/t/tune%20up"' in html

    def test_quote_keeps_inner_markup(self):
        tree = transformed(quote(text("Gently", format=FORMAT_BOLD)))
        block = element_children(tree)[0]
        assert block.name == "blockquote"
        assert has_class(block, "QuoteNode__html")
        assert to_html(element_children(block)[0]) == "<strong>Gently</strong>"


class TestParseDatetime:
    def test_iso_with_zone(self):
        assert parse_datetime("2024-03-05T14:30:00+02:00") == "2024-03-05T12:30:00.000Z"

    def test_long_month(self):
        assert parse_datetime("March 5, 2024") == "2024-03-05T00:00:00.000Z"

    def test_rfc_2822(self):
        assert parse_datetime("Tue, 05 Mar 2024 14:30:00 +0000") == "2024-03-05T14:30:00.000Z"

    def test_garbage(self):
        assert parse_datetime("soonish") is None
        assert parse_datetime("") is None
        assert parse_datetime(None) is None

    def test_offset_past_year_one_is_unresolved(self):
        assert parse_datetime("0001-01-01T00:00:00+05:00") is None

    def test_out_of_range_date_does_not_break_export(self):
        doc = Document([paragraph("Picked up"), paragraph(datetime_node("0001-01-01T00:00:00+05:00"))])
        result = export_static(serialize(doc))
        assert not result.fallback
        assert "Picked up" in result.html
        assert '<time class="DateTimeNode__time">0001-01-01T00:00:00+05:00</time>' in result.html


# ============================================================================
# Whole chain
# ============================================================================


class TestChainIdempotence:
    def test_second_pass_changes_nothing(self, rich_document):
        tree = generate_tree(rich_document)
        apply_transforms(tree)
        once = to_html(tree)
        apply_transforms(tree)
        assert to_html(tree) == once

    def test_full_export_contains_every_kind(self, rich_document):
        html = export_static(serialize(rich_document)).html
        assert "<h2" in html
        assert "<strong><em>cracked</em></strong>" in html
        assert "font-size: 15px" in html
        assert CHECKLIST_ITEM_CLASS in html
        assert "<ol" in html
        assert "QuoteNode__html" in html
        assert "@Sam" in html
        assert 'href="/tags/warranty"' in html
        assert 'datetime="2024-03-05T14:30:00.000Z"' in html
        assert POLL_CONTAINER_CLASS in html
        assert "youtube-nocookie.com/embed/dQw4w9WgXcQ" in html
