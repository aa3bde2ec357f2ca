"""
Notes Kernel — the pure engine behind the Notes field.

Components:
  registry     — node kinds: defaults, wire codec, static HTML per kind
  document     — the live tree, keys, update notifications
  attribution  — dirty tracking and lastEditedBy stamping
  serializer   — Document ↔ canonical JSON
  exporter     — canonical JSON → static HTML (+ embedded recovery JSON)
  resolver     — any stored value → safe initial document
  hydration    — mounts interactive polls into static HTML
  editor       — load → edit → attribute → save, and the display path
"""

from notes.kernel.attribution import AttributionStampError, AttributionTracker
from notes.kernel.document import Document, Node, NodeNotFound
from notes.kernel.editor import NotesEditor, NotesView
from notes.kernel.exporter import ExportError, export_static, render_readonly
from notes.kernel.hydration import HydratedPoll, HydrationError, PollHydrator, hydrate_html, schedule_hydration
from notes.kernel.resolver import InitialDocumentState, ResolvedKind, resolve
from notes.kernel.serializer import DeserializationError, deserialize, serialize

__all__ = [
    "Document",
    "Node",
    "NodeNotFound",
    "AttributionTracker",
    "AttributionStampError",
    "serialize",
    "deserialize",
    "DeserializationError",
    "export_static",
    "render_readonly",
    "ExportError",
    "resolve",
    "ResolvedKind",
    "InitialDocumentState",
    "PollHydrator",
    "HydratedPoll",
    "HydrationError",
    "hydrate_html",
    "schedule_hydration",
    "NotesEditor",
    "NotesView",
]
