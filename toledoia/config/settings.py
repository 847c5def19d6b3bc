"""ToledoIA configuration via environment / .env file."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- Backend ---
    TOLEDOIA_API_URL: str = "http://localhost:5000"
    HTTP_TIMEOUT_SECONDS: float = 30.0

    # --- Message synchronisation ---
    POLL_INTERVAL_SECONDS: float = 5.0
    RESYNC_DELAY_SECONDS: float = 1.0

    # --- Sessions ---
    DEFAULT_LANGUAGE: Literal["pt", "en"] = "pt"

    # --- Visitor identity storage ---
    VISITOR_STORE_PATH: Path = Path.home() / ".toledoia" / "storage.json"

    # --- Logging ---
    LOG_LEVEL: str = "INFO"

    @field_validator("TOLEDOIA_API_URL", mode="before")
    @classmethod
    def _strip_trailing_slash(cls, v: str) -> str:
        if isinstance(v, str):
            return v.rstrip("/")
        return v

    @field_validator("HTTP_TIMEOUT_SECONDS", "POLL_INTERVAL_SECONDS")
    @classmethod
    def _positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be greater than zero")
        return v

    @field_validator("RESYNC_DELAY_SECONDS")
    @classmethod
    def _non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("must not be negative")
        return v


settings = Settings()
