"""
Notes kernel test configuration.

Shared document builders. Kernel tests are IO free and use function-scoped
event loops.
"""

import pytest

from notes.kernel.document import (
    Document,
    datetime_node,
    hashtag,
    heading,
    list_item,
    list_node,
    mention,
    paragraph,
    poll,
    quote,
    text,
    youtube,
)
from notes.kernel.types import FORMAT_BOLD, FORMAT_ITALIC, PollOption, UserRef


@pytest.fixture
def alice():
    return UserRef(id="user_alice", name="Alice")


@pytest.fixture
def rich_document():
    """One of every node kind the Notes field produces."""
    return Document(
        [
            heading("Inspection", tag="h2"),
            paragraph(
                text("Frame is "),
                text("cracked", format=FORMAT_BOLD | FORMAT_ITALIC),
                text(" near the dropout", style="font-size: 15px; color: #d00;"),
            ),
            list_node(
                list_item("Replace chain", checked=True),
                list_item("True wheels", checked=False),
                list_type="check",
            ),
            list_node(list_item("Brakes"), list_item("Cables"), list_type="number"),
            quote(text("Ride it gently", format=FORMAT_BOLD)),
            paragraph(mention("Sam"), text(" approved "), hashtag("warranty")),
            paragraph(datetime_node("2024-03-05 14:30", "2024-03-05T14:30:00.000Z")),
            poll(
                "Which tyre?",
                [
                    PollOption(uid="opt_a", text="Road", votes=frozenset({"u1", "u2"})),
                    PollOption(uid="opt_b", text="Gravel", votes=frozenset({"u3"})),
                ],
            ),
            youtube("dQw4w9WgXcQ"),
        ]
    )
