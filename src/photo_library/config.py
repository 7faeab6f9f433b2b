"""Application configuration."""

import os
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    supabase_url: str
    supabase_service_key: str
    storage_base_dir: Path = Path("storage")
    max_upload_bytes: int = 64 * 1024 * 1024
    analysis_enabled: bool = True
    analysis_backend: Literal["ollama", "openai"] = "ollama"
    ollama_url: str = "http://localhost:11434"
    ollama_model: str = "llava_json"
    openai_api_key: str | None = None
    openai_model: str = "gpt-5.2"
    analysis_timeout_seconds: float = 120.0
    merge_max_attempts: int = 3
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )

    @property
    def analysis_model(self) -> str:
        """Model name for the configured analysis backend."""
        if self.analysis_backend == "openai":
            return self.openai_model
        return self.ollama_model


def parse_uploader_id(raw: str | None) -> int | None:
    """Parse the acting uploader id from a request header."""
    if raw is None:
        return None
    cleaned = raw.strip()
    if not cleaned.isdigit():
        return None
    return int(cleaned)
