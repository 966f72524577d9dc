"""Configuration settings for the ImageLingo progress and generation services."""

from pathlib import Path
from typing import Literal

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings, polling behaviour, and service endpoints."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @staticmethod
    def project_root(start: Path | None = None) -> Path:
        """Find the project root directory (falls back to the working directory)."""
        start = start or Path(__file__).resolve()
        for parent in start.parents:
            if (parent / ".git").exists() or (parent / "pyproject.toml").exists():
                return parent
        return Path.cwd()

    @computed_field
    @property
    def log_dir(self) -> Path:
        """Path to project_root/logs."""
        path = self.project_root() / "logs"
        path.mkdir(exist_ok=True)
        return path

    log_level: Literal["TRACE", "DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    #  Service
    host: str = Field(default="127.0.0.1", description="Bind address for `serve`")
    port: int = Field(default=8000, description="Bind port for `serve`")
    database_path: str = Field(default="generations.db", description="SQLite file")
    api_base_url: str = Field(
        default="http://localhost:8000", description="Base URL used by HTTP clients"
    )
    storage_public_url: str = Field(
        default="http://localhost:8000/storage",
        description="Public prefix that turns an image id into a URL",
    )
    request_timeout: float = Field(default=30.0, description="HTTP timeout (seconds)")

    #  Generation polling (milliseconds)
    poll_interval_ms: float = 2000.0
    max_poll_duration_ms: float = 300000.0

    #  Progress bar (milliseconds)
    progress_target_percentage: float = Field(default=95.0, gt=0, le=100)
    average_processing_ms: float = Field(default=15000.0, gt=0)
    frame_interval_ms: float = Field(default=16.0, gt=0)
    processing_tick_ms: float = Field(default=100.0, gt=0)

    #  Realtime feed client
    realtime_reconnect_retries: int = 5
    realtime_reconnect_delay: float = 3.0  # seconds


settings = Settings()
