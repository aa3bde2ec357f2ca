"""
Pydantic models for the Notes service.

All request/response shapes defined here. No imports from routes.
"""

from backend.models.notes import (
    AttributionSummaryItem,
    CurrentUser,
    ExportNotesRequest,
    ExportNotesResponse,
    ResolveNotesRequest,
    ResolveNotesResponse,
    SaveNotesRequest,
    SaveNotesResponse,
)

__all__ = [
    "CurrentUser",
    "AttributionSummaryItem",
    # Resolve
    "ResolveNotesRequest",
    "ResolveNotesResponse",
    # Export
    "ExportNotesRequest",
    "ExportNotesResponse",
    # Save
    "SaveNotesRequest",
    "SaveNotesResponse",
]
