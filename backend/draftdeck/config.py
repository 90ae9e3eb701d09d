"""DraftDeck configuration — Pydantic BaseSettings loaded from .env."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Annotated

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings for the API server and the dashboard client."""

    app_name: str = "DraftDeck"
    debug: bool = True
    environment: str = "development"
    log_level: str = "INFO"

    # Network
    host: str = "127.0.0.1"
    port: int = 8000
    api_prefix: str = "/api"
    cors_origins: Annotated[list[str], NoDecode] = [
        "http://localhost:3000",
        "http://localhost:8000",
    ]

    # Figma REST API
    figma_api_base: str = "https://api.figma.com/v1"
    figma_access_token: str = ""  # Server default, overridable per request
    figma_team_ids: Annotated[list[str], NoDecode] = []  # Teams scanned by discovery
    request_timeout_seconds: float = 15.0

    # Response cache TTLs
    cache_ttl_user_seconds: int = 600
    cache_ttl_projects_seconds: int = 180
    cache_ttl_files_seconds: int = 120
    cache_maintenance_interval_seconds: int = 60

    # Reference store
    default_client_id: str = "default-user"
    default_project_name: str = "My Files"

    # Dashboard client
    server_url: str = "http://127.0.0.1:8000"
    client_access_token: str = ""  # Sent as x-figma-token when set
    data_dir: str = "./data"
    local_storage_path: str = "./data/local_storage.db"
    auto_sync_interval_seconds: int = 300  # 5 minutes
    thumbnail_backfill_delay_seconds: float = 0.5
    sync_log_size: int = 5

    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),
        env_file_encoding="utf-8",
        env_prefix="DRAFTDECK_",
        extra="ignore",
    )

    @property
    def has_server_token(self) -> bool:
        return bool(self.figma_access_token)

    @field_validator("cors_origins", mode="before")
    @classmethod
    def assemble_cors_origins(cls, value: list[str] | str) -> list[str]:
        if isinstance(value, str) and not value.startswith("["):
            return [o.strip() for o in value.split(",") if o.strip()]
        if isinstance(value, list):
            return value
        return ["http://localhost:3000"]

    @field_validator("figma_team_ids", mode="before")
    @classmethod
    def assemble_team_ids(cls, value: list[str] | str | None) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str) and not value.startswith("["):
            return [t.strip() for t in value.split(",") if t.strip()]
        return value

    @model_validator(mode="after")
    def _resolve_paths(self) -> "Settings":
        """Ensure data paths are absolute."""
        base = Path(__file__).resolve().parent.parent  # backend/
        for field in ("data_dir", "local_storage_path"):
            val = getattr(self, field)
            if not Path(val).is_absolute():
                setattr(self, field, str(base / val))
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
