"""Integration tests for the notes resolve / export / save routes."""

from __future__ import annotations

import json

import pytest

from backend.config import settings
from notes.kernel.document import Document, paragraph, poll
from notes.kernel.serializer import serialize
from notes.kernel.types import DEFAULT_TEMPLATE_HEADING, EMPTY_NOTES_PLACEHOLDER, PollOption

pytestmark = pytest.mark.asyncio(loop_scope="session")

ALICE = {"id": "user_alice", "name": "Alice"}


# ── health ─────────────────────────────────────────────────────────────────


class TestHealth:
    async def test_app_health(self, async_client):
        res = await async_client.get("/health")
        assert res.status_code == 200
        assert res.json() == {"status": "ok"}

    async def test_notes_health(self, async_client):
        res = await async_client.get("/api/notes/health")
        assert res.status_code == 200


# ── resolve ────────────────────────────────────────────────────────────────


class TestResolveRoute:
    async def test_missing_notes_gives_template(self, async_client):
        res = await async_client.post("/api/notes/resolve", json={})
        assert res.status_code == 200
        data = res.json()
        assert data["kind"] == "template"
        assert data["text"] == DEFAULT_TEMPLATE_HEADING

    async def test_plain_text_preserved(self, async_client):
        res = await async_client.post("/api/notes/resolve", json={"notes": "These are existing notes"})
        data = res.json()
        assert data["kind"] == "plain_text"
        assert data["text"] == "These are existing notes"
        assert data["document"]["root"]["children"][0]["type"] == "paragraph"

    async def test_canonical(self, async_client):
        stored = serialize(Document([paragraph("stored")]))
        res = await async_client.post("/api/notes/resolve", json={"notes": stored})
        assert res.json()["kind"] == "canonical"

    async def test_extra_fields_rejected(self, async_client):
        res = await async_client.post("/api/notes/resolve", json={"notes": "x", "bogus": 1})
        assert res.status_code == 422

    async def test_scalar_children_load_empty(self, async_client):
        for children in (5, True, 1.5):
            stored = json.dumps({"root": {"type": "root", "children": children}})
            res = await async_client.post("/api/notes/resolve", json={"notes": stored})
            assert res.status_code == 200
            data = res.json()
            assert data["kind"] == "canonical"
            assert data["document"]["root"]["children"] == []


# ── export ─────────────────────────────────────────────────────────────────


class TestExportRoute:
    async def test_empty_notes_placeholder(self, async_client):
        res = await async_client.post("/api/notes/export", json={"notes": ""})
        data = res.json()
        assert data["placeholder"] == EMPTY_NOTES_PLACEHOLDER
        assert data["html"] == ""

    async def test_static_export(self, async_client):
        stored = serialize(Document([paragraph("Bring helmet")]))
        res = await async_client.post("/api/notes/export", json={"notes": stored})
        data = res.json()
        assert res.status_code == 200
        assert "Bring helmet" in data["html"]
        assert '<script type="application/lexical+json">' in data["html"]
        assert data["fallback"] is False

    async def test_hydrated_export(self, async_client):
        stored = serialize(Document([poll("Q?", [PollOption(uid="a", text="A")])]))
        res = await async_client.post("/api/notes/export", json={"notes": stored, "hydrate": True})
        assert 'data-hydrated="true"' in res.json()["html"]

    async def test_scalar_children_export(self, async_client):
        res = await async_client.post("/api/notes/export", json={"notes": '{"root": {"children": 5}}'})
        assert res.status_code == 200
        assert res.json()["fallback"] is False

    async def test_template_heading_setting(self, async_client, monkeypatch):
        monkeypatch.setattr(settings, "NOTES_TEMPLATE_HEADING", "Shop Intake")
        res = await async_client.post("/api/notes/export", json={"notes": "<p>Old exported notes</p>"})
        data = res.json()
        assert "<h1>Shop Intake</h1>" in data["html"]
        assert DEFAULT_TEMPLATE_HEADING not in data["html"]

    async def test_fallback_keeps_raw(self, async_client):
        raw = "<p>Old exported notes</p>"
        res = await async_client.post("/api/notes/export", json={"notes": raw})
        data = res.json()
        assert data["fallback"] is True
        assert data["raw"] == raw

    async def test_raw_omitted_for_static_export(self, async_client):
        stored = serialize(Document([paragraph("Bring helmet")]))
        res = await async_client.post("/api/notes/export", json={"notes": stored})
        assert res.json()["raw"] is None


# ── save ───────────────────────────────────────────────────────────────────


class TestSaveRoute:
    async def test_stamps_dirty_blocks(self, async_client):
        stored = serialize(Document([paragraph("first"), paragraph("second")]))
        res = await async_client.post(
            "/api/notes/save",
            json={"notes": stored, "current_user": ALICE, "dirty_keys": ["4"]},
        )
        assert res.status_code == 200
        data = res.json()
        assert data["stamped_keys"] == ["4"]
        saved = json.loads(data["notes"])
        assert "attribution" not in saved["root"]["children"][0]
        assert saved["root"]["children"][1]["attribution"]["lastEditedBy"] == ALICE

    async def test_unknown_dirty_key_skipped(self, async_client):
        stored = serialize(Document([paragraph("only")]))
        res = await async_client.post(
            "/api/notes/save",
            json={"notes": stored, "current_user": ALICE, "dirty_keys": ["99"]},
        )
        assert res.status_code == 200
        assert res.json()["stamped_keys"] == []

    async def test_non_canonical_rejected(self, async_client):
        res = await async_client.post(
            "/api/notes/save",
            json={"notes": "just some text", "current_user": ALICE},
        )
        assert res.status_code == 422

    async def test_current_user_required(self, async_client):
        res = await async_client.post("/api/notes/save", json={"notes": "{}"})
        assert res.status_code == 422
