"""
Configuration settings for the offline sync engine.

Uses Pydantic Settings to load environment variables for the remote service,
local state locations, cache versioning, sync policy, and logging.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SHELL_MANIFEST = [
    "/",
    "/assets/index.css",
    "/src/app.js",
    "/src/controller.js",
    "/src/helpers.js",
    "/src/template.js",
    "/src/store-remote.js",
    "/src/view.js",
    "/src/item.js",
]


class Settings(BaseSettings):
    # Remote service
    remote_base_url: str = Field("http://localhost:8765", alias="REMOTE_BASE_URL")
    remote_timeout_seconds: float = Field(10.0, alias="REMOTE_TIMEOUT_SECONDS")
    collection_path: str = Field("/todos", alias="COLLECTION_PATH")

    # Local state
    state_dir: Path = Field(Path(".offline"), alias="STATE_DIR")
    mutation_db: str = Field("pending.db", alias="MUTATION_DB")
    cache_db: str = Field("cache.db", alias="CACHE_DB")

    # Resource cache
    cache_prefix: str = Field("todo", alias="CACHE_PREFIX")
    cache_version: int = Field(3, alias="CACHE_VERSION")
    shell_base_url: Optional[str] = Field(None, alias="SHELL_BASE_URL")
    shell_manifest: List[str] = Field(default_factory=list, alias="SHELL_MANIFEST")
    bootstrap_attempts: int = Field(3, alias="BOOTSTRAP_ATTEMPTS")

    # Sync policy
    sync_interval_seconds: float = Field(30.0, alias="SYNC_INTERVAL_SECONDS")
    sync_retry_attempts: int = Field(5, alias="SYNC_RETRY_ATTEMPTS")
    connectivity_probe_seconds: float = Field(5.0, alias="CONNECTIVITY_PROBE_SECONDS")

    # Application
    app_env: str = Field("development", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @model_validator(mode="after")
    def _default_shell_manifest(self) -> "Settings":
        # The default manifest applies only to a separate shell host.
        if self.shell_base_url and "shell_manifest" not in self.model_fields_set:
            self.shell_manifest = list(DEFAULT_SHELL_MANIFEST)
        return self

    @property
    def cache_namespace(self) -> str:
        """Name of the active resource cache namespace, e.g. ``todo-v3``."""
        return f"{self.cache_prefix}-v{self.cache_version}"

    def state_path(self, filename: str) -> Path:
        """Resolve a state file name under ``state_dir`` (``:memory:`` passes through)."""
        if filename == ":memory:":
            return Path(filename)
        return self.state_dir / filename


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


__all__ = ["DEFAULT_SHELL_MANIFEST", "Settings", "get_settings"]
