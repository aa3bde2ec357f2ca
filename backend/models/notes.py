"""Notes models for the resolve / export / save endpoints."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

from notes.kernel.types import AttributionSummaryEntry, UserRef


class CurrentUser(BaseModel):
    """Identity edits are attributed to."""

    model_config = {"extra": "forbid"}

    id: str = Field(min_length=1)
    name: str = Field(min_length=1, max_length=200)

    def to_ref(self) -> UserRef:
        return UserRef(id=self.id, name=self.name)


class ResolveNotesRequest(BaseModel):
    """What the client sends to POST /api/notes/resolve."""

    model_config = {"extra": "forbid"}

    notes: str | None = None


class ResolveNotesResponse(BaseModel):
    """The safe initial document for a stored notes value."""

    kind: Literal["empty", "canonical", "embedded", "plain_text", "template"]
    document: dict[str, Any]
    text: str


class ExportNotesRequest(BaseModel):
    """What the client sends to POST /api/notes/export."""

    model_config = {"extra": "forbid"}

    notes: str | None = None
    hydrate: bool = False


class AttributionSummaryItem(BaseModel):
    key: str
    name: str
    at: str

    @classmethod
    def from_entry(cls, entry: AttributionSummaryEntry) -> AttributionSummaryItem:
        return cls(**entry.to_dict())


class ExportNotesResponse(BaseModel):
    """Static HTML (or the read-only fallback) plus attribution lines."""

    html: str
    placeholder: str | None = None
    fallback: bool = False
    raw: str | None = None  # stored value, set when the fallback view is shown
    attributions_summary: list[AttributionSummaryItem] = Field(default_factory=list)


class SaveNotesRequest(BaseModel):
    """
    What the client sends to POST /api/notes/save.

    `dirty_keys` name the top-level blocks changed since the last save,
    using the keys assigned when `notes` is loaded.
    """

    model_config = {"extra": "forbid"}

    notes: str = Field(min_length=1)
    current_user: CurrentUser
    dirty_keys: list[str] = Field(default_factory=list)
    inline_attribution: bool = False


class SaveNotesResponse(BaseModel):
    """What the save endpoint returns."""

    notes: str
    stamped_keys: list[str]
