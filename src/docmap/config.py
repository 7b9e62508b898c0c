"""Configuration for docmap."""

from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass
class DocmapConfig:
    """Connection and runtime settings."""

    uri: str = "mongodb://localhost:27017"
    database: str = "docmap"
    lock_field: str = "_lock"
    app_name: str | None = None
    server_selection_timeout_ms: int = 30000

    @classmethod
    def from_env(cls) -> DocmapConfig:
        """Build a config from DOCMAP_* environment variables, falling back to defaults."""
        defaults = cls()
        timeout = os.getenv("DOCMAP_SERVER_SELECTION_TIMEOUT_MS")
        return cls(
            uri=os.getenv("DOCMAP_URI") or defaults.uri,
            database=os.getenv("DOCMAP_DATABASE") or defaults.database,
            lock_field=os.getenv("DOCMAP_LOCK_FIELD") or defaults.lock_field,
            app_name=os.getenv("DOCMAP_APP_NAME") or defaults.app_name,
            server_selection_timeout_ms=(
                int(timeout) if timeout else defaults.server_selection_timeout_ms
            ),
        )
