"""
Notes service configuration — all environment variables in one place.

Read from environment at runtime. Kernel code never reads these directly;
routes pass them in through ExportOptions and resolver arguments.
"""

from __future__ import annotations

import os

from notes.kernel.types import DEFAULT_TEMPLATE_HEADING


class Settings:
    """Application settings from environment variables."""

    # Static export
    NOTES_STYLESHEET_URL: str = os.environ.get("NOTES_STYLESHEET_URL", "/static/notes.css")
    NOTES_TAG_BASE_PATH: str = os.environ.get("NOTES_TAG_BASE_PATH", "/tags")
    NOTES_EMBED_JSON: bool = os.environ.get("NOTES_EMBED_JSON", "true").lower() != "false"

    # New notes start from this heading
    NOTES_TEMPLATE_HEADING: str = os.environ.get("NOTES_TEMPLATE_HEADING", DEFAULT_TEMPLATE_HEADING)

    # Logging
    LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "INFO")

    # Application
    ENVIRONMENT: str = os.environ.get("ENVIRONMENT", "development")

    @property
    def DOCS_ENABLED(self) -> bool:
        return self.ENVIRONMENT == "development"


# Singleton instance
settings = Settings()
