"""Workspace service configuration."""

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

MIN_SCAN_INTERVAL = 0.5
MAX_SCAN_INTERVAL = 10.0


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Service
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    log_level: str = "INFO"
    shutdown_timeout: int = 30  # Max seconds for graceful shutdown before forcing exit
    cors_origins: list[str] = ["http://localhost:3000"]

    # Container workspaces
    workspace_image: str = "collabhub/workspace:latest"
    workspace_root: str = "/workspace"
    container_prefix: str = "workspace-"
    volume_prefix: str = "volume-"
    keepalive_command: list[str] = ["tail", "-f", "/dev/null"]
    cpu_shares: int = 1024
    memory_limit: str = "1g"
    memswap_limit: str = "2g"  # Memory + swap ceiling
    network_mode: str = "none"
    exec_timeout: float = 30.0  # Upper bound for a single exec call
    container_start_grace: float = 0.5  # Settle delay after create/start

    # MongoDB
    mongodb_url: str = "mongodb://localhost:27017"
    mongodb_database: str = "collabhub"

    # Change watchers (seconds)
    file_scan_interval: float = 2.0
    folder_scan_interval: float = 3.0
    file_sync_debounce: float = 1.0
    folder_sync_debounce: float = 1.5
    watcher_max_errors: int = 3

    # Entries never mirrored between container and database
    excluded_dirs: list[str] = ["node_modules", ".git", ".tmp", ".temp"]
    transient_suffixes: list[str] = ["~", ".tmp", ".temp", ".swp", ".swo"]

    # Sentry (reads from SENTRY_ env vars, not WORKSPACE_)
    sentry_dsn: str | None = Field(default=None, validation_alias="SENTRY_DSN")
    sentry_traces_sample_rate: float = Field(
        default=0.2, validation_alias="SENTRY_TRACES_SAMPLE_RATE"
    )

    @field_validator("workspace_root")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Keep the workspace root in the form used to build container paths."""
        return v.rstrip("/") or "/"

    @field_validator("file_scan_interval", "folder_scan_interval")
    @classmethod
    def check_scan_interval(cls, v: float) -> float:
        """Scan intervals must stay inside the supported polling range."""
        if not MIN_SCAN_INTERVAL <= v <= MAX_SCAN_INTERVAL:
            msg = f"Scan interval must be between {MIN_SCAN_INTERVAL} and {MAX_SCAN_INTERVAL}s"
            raise ValueError(msg)
        return v

    model_config = {"env_prefix": "WORKSPACE_", "case_sensitive": False}


settings = Settings()
