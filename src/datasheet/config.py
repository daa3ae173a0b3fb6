"""
Configuration management using pydantic-settings.

Loads configuration from environment variables and .env files.
Validates fields and provides typed access to settings.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

import platformdirs
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from datasheet.exceptions import ConfigurationError

APP_NAME = "datasheet-cli"
CACHE_FILE_NAME = "gemini_files.json"
DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"

# Checked in order after an explicit --api-key
API_KEY_ENV_VARS = ("DATASHEET_API_KEY", "GOOGLE_API_KEY", "GEMINI_API_KEY")


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Optional:
        DATASHEET_API_KEY / GOOGLE_API_KEY / GEMINI_API_KEY: Gemini API key
        GEMINI_BASE_URL: Gemini REST base URL (must end in /v1beta or /v1)
        DATASHEET_CACHE_DIR: Override for the upload cache directory
        UPLOAD_TIMEOUT_SECONDS: Timeout for the byte-transfer request
        STATUS_TIMEOUT_SECONDS: Timeout for session start and status checks
        LOG_LEVEL: Logging level
        LOG_FILE: Optional JSON-lines log file
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    DATASHEET_API_KEY: str | None = Field(default=None, description="Preferred API key")
    GOOGLE_API_KEY: str | None = Field(default=None, description="Google AI Studio API key")
    GEMINI_API_KEY: str | None = Field(default=None, description="Google Gemini API key")

    GEMINI_BASE_URL: str = Field(default=DEFAULT_BASE_URL, description="Gemini API base URL")

    DATASHEET_CACHE_DIR: Path | None = Field(
        default=None, description="Directory holding the upload cache document"
    )

    UPLOAD_TIMEOUT_SECONDS: float = Field(
        default=600.0, gt=0.0, description="Timeout for uploading file bytes"
    )
    STATUS_TIMEOUT_SECONDS: float = Field(
        default=30.0, gt=0.0, description="Timeout for upload start and status checks"
    )

    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    LOG_FILE: Path | None = Field(default=None, description="JSON-lines log file")

    @field_validator("GEMINI_BASE_URL")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize the base URL so paths can be appended with a single slash."""
        v = v.strip().rstrip("/")
        if not v.startswith(("http://", "https://")):
            raise ValueError("GEMINI_BASE_URL must be an http(s) URL")
        return v

    @property
    def cache_dir(self) -> Path:
        """Directory holding the cache document."""
        if self.DATASHEET_CACHE_DIR is not None:
            return self.DATASHEET_CACHE_DIR
        return default_cache_dir()

    @property
    def cache_file(self) -> Path:
        """Full path of the cache document."""
        return self.cache_dir / CACHE_FILE_NAME

    def resolve_api_key(self, cli_key: str | None = None) -> str:
        """Pick the API key: explicit key first, then environment in order.

        Raises:
            ConfigurationError: If no non-blank key is available.
        """
        candidates = [cli_key] + [getattr(self, var) for var in API_KEY_ENV_VARS]
        for key in candidates:
            if key and key.strip():
                return key.strip()

        raise ConfigurationError(
            "Missing API key (use --api-key or set one of: "
            + ", ".join(API_KEY_ENV_VARS)
            + ")"
        )

    def redacted_display(self) -> dict[str, str | float | None]:
        """Return settings with API keys redacted for display."""
        def redact(value: str | None) -> str | None:
            if value is None:
                return None
            return f"{value[:8]}...{value[-4:]}" if len(value) > 12 else "***"

        return {
            "DATASHEET_API_KEY": redact(self.DATASHEET_API_KEY),
            "GOOGLE_API_KEY": redact(self.GOOGLE_API_KEY),
            "GEMINI_API_KEY": redact(self.GEMINI_API_KEY),
            "GEMINI_BASE_URL": self.GEMINI_BASE_URL,
            "CACHE_FILE": str(self.cache_file),
            "UPLOAD_TIMEOUT_SECONDS": self.UPLOAD_TIMEOUT_SECONDS,
            "STATUS_TIMEOUT_SECONDS": self.STATUS_TIMEOUT_SECONDS,
            "LOG_LEVEL": self.LOG_LEVEL,
            "LOG_FILE": str(self.LOG_FILE) if self.LOG_FILE else None,
        }


def default_cache_dir() -> Path:
    """Platform cache directory for the app, or ./.cache/<app> if none resolves."""
    try:
        base = platformdirs.user_cache_dir()
    except (KeyError, OSError, RuntimeError):
        base = ""

    # An unresolved home directory comes back relative (e.g. "~/.cache")
    if base and Path(base).is_absolute():
        return Path(base) / APP_NAME
    return Path(".cache") / APP_NAME


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton.

    Returns:
        Settings instance loaded from environment.

    Raises:
        ValidationError: If settings are invalid.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()
