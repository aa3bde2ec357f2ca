"""Notes routes — resolve, export, save."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException

from backend.config import settings
from backend.models.notes import (
    AttributionSummaryItem,
    ExportNotesRequest,
    ExportNotesResponse,
    ResolveNotesRequest,
    ResolveNotesResponse,
    SaveNotesRequest,
    SaveNotesResponse,
)
from notes.kernel.attribution import AttributionTracker
from notes.kernel.editor import NotesView
from notes.kernel.hydration import hydrate_html
from notes.kernel.resolver import resolve
from notes.kernel.serializer import DeserializationError, deserialize, serialize, to_dict
from notes.kernel.types import ExportOptions

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/notes", tags=["notes"])


def export_options() -> ExportOptions:
    return ExportOptions(
        stylesheet_url=settings.NOTES_STYLESHEET_URL,
        tag_base_path=settings.NOTES_TAG_BASE_PATH,
        embed_json=settings.NOTES_EMBED_JSON,
    )


@router.get("/health", status_code=200)
async def notes_health() -> dict[str, str]:
    return {"status": "ok"}


@router.post("/resolve", status_code=200)
async def resolve_notes(req: ResolveNotesRequest) -> ResolveNotesResponse:
    """
    Turn any stored notes value into a safe initial document.

    Never fails on content: unrecognized input becomes plain text or the
    template rather than an error.
    """
    state = resolve(req.notes, template_heading=settings.NOTES_TEMPLATE_HEADING)
    return ResolveNotesResponse(
        kind=state.kind.value,
        document=to_dict(state.document),
        text=state.document.text_content(),
    )


@router.post("/export", status_code=200)
async def export_notes(req: ExportNotesRequest) -> ExportNotesResponse:
    """Render stored notes for display, optionally with live polls."""
    view = NotesView.from_notes(
        req.notes,
        export_options(),
        template_heading=settings.NOTES_TEMPLATE_HEADING,
    )
    html = view.html
    if req.hydrate and html and not view.fallback:
        html = hydrate_html(html)
    return ExportNotesResponse(
        html=html,
        placeholder=view.placeholder,
        fallback=view.fallback,
        raw=view.raw if view.fallback else None,
        attributions_summary=[AttributionSummaryItem.from_entry(e) for e in view.attributions_summary],
    )


@router.post("/save", status_code=200)
async def save_notes(req: SaveNotesRequest) -> SaveNotesResponse:
    """
    Stamp the current user on the changed blocks and return the canonical
    document to persist. Only canonical JSON is accepted here.
    """
    try:
        document = deserialize(req.notes)
    except DeserializationError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e

    tracker = AttributionTracker(document, req.current_user.to_ref())
    tracker.mark_dirty(req.dirty_keys)
    try:
        stamped = await tracker.apply_attribution_lines(inline_marker=req.inline_attribution)
        serialized = serialize(document, tracker.get_meta())
    except Exception:
        logger.exception("Failed to save notes for user %s", req.current_user.id)
        raise HTTPException(status_code=500, detail="Failed to save notes.") from None
    finally:
        tracker.close()

    return SaveNotesResponse(notes=serialized, stamped_keys=stamped)
