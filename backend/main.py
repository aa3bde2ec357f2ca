"""
Notes FastAPI application.

Entry point for the API server.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI

from backend.config import settings
from backend.routes import notes as notes_routes

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title="Notes",
    docs_url="/docs" if settings.DOCS_ENABLED else None,
    redoc_url=None,
)

# Register routes
app.include_router(notes_routes.router)


@app.get("/health")
async def health():
    """Health check endpoint for uptime monitoring."""
    return {"status": "ok"}
