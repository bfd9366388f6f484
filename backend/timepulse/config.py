from __future__ import annotations

import os
from pathlib import Path
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)
    """Application runtime configuration."""

    app_name: str = "TimePulse"
    environment: str = "development"
    host: str = os.getenv("TP_HOST", "127.0.0.1")
    port: int = int(os.getenv("TP_PORT", "8080"))
    cors_origins: List[str] = Field(
        default_factory=lambda: [
            origin.strip()
            for origin in os.getenv("TP_CORS_ORIGINS", "http://127.0.0.1:5173,http://localhost:5173").split(",")
            if origin.strip()
        ]
    )

    sqlite_path: Path = Path(os.getenv("TP_SQLITE_PATH", "./data/timepulse.db"))
    export_dir: Path = Path(os.getenv("TP_EXPORT_DIR", "./data/exports"))

    timezone: str = os.getenv("TZ", "UTC")
    log_level: str = os.getenv("TP_LOG_LEVEL", "INFO")

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: str | List[str]) -> List[str]:
        if isinstance(value, list):
            return value
        if not value:
            return []
        return [origin.strip() for origin in value.split(",") if origin.strip()]

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        return (value or "INFO").strip().upper()


settings = Settings()

# Ensure essential directories exist
settings.sqlite_path.parent.mkdir(parents=True, exist_ok=True)
settings.export_dir.mkdir(parents=True, exist_ok=True)
