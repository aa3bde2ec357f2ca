"""
Notes Kernel — Shared Types

Data classes used across the registry, document model, attribution tracker,
serializer, exporter, resolver and hydrator. These are the contracts that bind
the kernel together.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

ROOT_TYPE = "root"

# Text format bitmask (same bits as the Lexical wire format)
FORMAT_BOLD = 1
FORMAT_ITALIC = 1 << 1
FORMAT_STRIKETHROUGH = 1 << 2
FORMAT_UNDERLINE = 1 << 3
FORMAT_CODE = 1 << 4

# Update tag for mutations made while stamping attribution. The tracker
# ignores notifications carrying it.
ATTRIBUTION_UPDATE_TAG = "notes-attribution-update"

# Script tag that carries canonical JSON inside exported HTML
EMBEDDED_JSON_TYPE = "application/lexical+json"

# Voter id used by hydrated polls on static pages
VISITOR_ID = "visitor"

EMPTY_NOTES_PLACEHOLDER = "No notes yet. Click 'Add Notes' to get started."

DEFAULT_TEMPLATE_HEADING = "Repair Inspection & Approved Repairs"


# ---------------------------------------------------------------------------
# Identity and attribution
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class UserRef:
    """Identity attributed to edits. Supplied by the hosting application."""

    id: str
    name: str

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "name": self.name}

    @classmethod
    def from_dict(cls, d: Any) -> UserRef | None:
        if not isinstance(d, dict):
            return None
        return cls(id=str(d.get("id") or ""), name=str(d.get("name") or ""))


@dataclass
class AttributionRecord:
    """Last editor and edit time of one top-level node."""

    last_edited_by: UserRef | None = None
    last_edited_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "lastEditedBy": self.last_edited_by.to_dict() if self.last_edited_by else None,
            "lastEditedAt": self.last_edited_at,
        }

    @classmethod
    def from_dict(cls, d: Any) -> AttributionRecord | None:
        if not isinstance(d, dict):
            return None
        at = d.get("lastEditedAt")
        return cls(
            last_edited_by=UserRef.from_dict(d.get("lastEditedBy")),
            last_edited_at=at if isinstance(at, str) else None,
        )


@dataclass
class AttributionMeta:
    """Document-level attribution state as seen at one moment."""

    dirty_keys: set[str] = field(default_factory=set)
    last_edited_by: UserRef | None = None
    per_node_attribution: dict[str, AttributionRecord] = field(default_factory=dict)
    default_attribution: AttributionRecord | None = None


@dataclass
class AttributionSummaryEntry:
    """One line of the attribution list shown beside a static render."""

    key: str
    name: str
    at: str

    def to_dict(self) -> dict[str, str]:
        return {"key": self.key, "name": self.name, "at": self.at}


# ---------------------------------------------------------------------------
# Polls
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PollOption:
    """
    One poll option. Votes are a set of voter ids; the count is always
    derived from it and never stored.
    """

    uid: str
    text: str = ""
    votes: frozenset[str] = frozenset()

    @property
    def vote_count(self) -> int:
        return len(self.votes)

    def toggle_vote(self, voter_id: str) -> PollOption:
        """Return a copy with `voter_id` added or removed."""
        if voter_id in self.votes:
            votes = self.votes - {voter_id}
        else:
            votes = self.votes | {voter_id}
        return PollOption(uid=self.uid, text=self.text, votes=votes)

    def to_dict(self) -> dict[str, Any]:
        return {"uid": self.uid, "text": self.text, "votes": sorted(self.votes)}

    @classmethod
    def from_dict(cls, d: Any) -> PollOption | None:
        """Parse one wire option. Rows with the wrong shape are dropped."""
        if not isinstance(d, dict):
            return None
        uid, text, votes = d.get("uid"), d.get("text"), d.get("votes")
        if not isinstance(uid, str) or not isinstance(text, str) or not isinstance(votes, list):
            return None
        if not all(isinstance(v, str) for v in votes):
            return None
        return cls(uid=uid, text=text, votes=frozenset(votes))


# ---------------------------------------------------------------------------
# Pipeline results
# ---------------------------------------------------------------------------


@dataclass
class ExportOptions:
    """Options controlling what the static exporter emits."""

    stylesheet_url: str = "/static/notes.css"
    tag_base_path: str = "/tags"
    include_list_style: bool = True
    embed_json: bool = True


@dataclass
class ExportResult:
    """
    Result of a static export. When `fallback` is set, `html` is empty and
    the caller renders a read-only editor view instead.
    """

    html: str = ""
    attributions_summary: list[AttributionSummaryEntry] = field(default_factory=list)
    fallback: bool = False
    error: str | None = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def now_iso() -> str:
    """Current UTC time as ISO 8601 string."""
    return datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")
