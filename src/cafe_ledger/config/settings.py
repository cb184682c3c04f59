"""Configuration settings for the cafe back-office ledger."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class FlatSettings(BaseSettings):
    """Flat settings read from environment variables or a .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Image analysis (Gemini)
    google_api_key: SecretStr = Field(..., validation_alias="GOOGLE_API_KEY")
    gemini_model: str = Field(default="gemini-2.5-flash", validation_alias="GEMINI_MODEL")
    llm_max_tokens: int = Field(default=8192, validation_alias="LLM_MAX_TOKENS")
    llm_temperature: float = Field(default=0.1, validation_alias="LLM_TEMPERATURE")

    # Document store
    firebase_credentials: Path | None = Field(
        default=None, validation_alias="FIREBASE_CREDENTIALS"
    )
    firebase_project_id: str | None = Field(
        default=None, validation_alias="FIREBASE_PROJECT_ID"
    )

    # Change feed WebSocket
    ws_host: str = Field(default="0.0.0.0", validation_alias="WS_HOST")
    ws_port: int = Field(default=8765, validation_alias="WS_PORT")

    # Login gate
    login_password: SecretStr = Field(
        default=SecretStr("1234"), validation_alias="LOGIN_PASSWORD"
    )

    # Seed data override (defaults to the bundled seed.yaml)
    seed_file: Path | None = Field(default=None, validation_alias="SEED_FILE")

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", validation_alias="LOG_LEVEL"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", validation_alias="LOG_FORMAT"
    )


@lru_cache
def get_settings() -> FlatSettings:
    """Get cached settings instance."""
    return FlatSettings()
