"""Application configuration."""

import os
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    supabase_url: str
    supabase_key: str
    storage_bucket: str = "sessions"
    local_root: Path = Path("data")
    database_path: Path | None = None
    session_id_prefix: str = "OVH"
    io_workers: int = 4
    max_concurrent_uploads: int = 2
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )

    def resolved_database_path(self) -> Path:
        """Return the SQLite path, defaulting to a file under the local root."""
        return self.database_path or self.local_root / "sessions.db"
