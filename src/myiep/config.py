"""
Application Configuration

Uses Pydantic Settings for type-safe environment variable management.
"""

from __future__ import annotations

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=True, extra="ignore"
    )

    # ========================================================================
    # APPLICATION
    # ========================================================================

    ENVIRONMENT: Literal["local", "staging", "production"] = "local"
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    DEBUG: bool = False

    # ========================================================================
    # LOCAL DATABASE
    # ========================================================================

    DATABASE_URL: str = Field(
        default="sqlite+aiosqlite:///./myiep.db",
        description="Local SQLite database (async driver)",
    )

    # ========================================================================
    # GOOGLE DRIVE BACKUP
    # ========================================================================

    GOOGLE_CLIENT_ID: str = Field(default="", description="OAuth web client ID")
    GOOGLE_API_KEY: str = Field(default="", description="Google API key")

    DRIVE_API_BASE_URL: str = "https://www.googleapis.com/drive/v3"
    DRIVE_UPLOAD_BASE_URL: str = "https://www.googleapis.com/upload/drive/v3"

    BACKUP_FILE_NAME: str = "my-iep-backup.json"
    MEDIA_FOLDER_NAME: str = "MyIEP_Media"

    NETWORK_TIMEOUT_SECONDS: float | None = Field(
        default=None,
        description="Per-request timeout; None keeps the transport default",
    )

    # ========================================================================
    # SYNC
    # ========================================================================

    SYNC_DEBOUNCE_SECONDS: float = Field(default=1.5, gt=0)
    SYNC_POLL_INTERVAL_SECONDS: float = Field(default=60.0, gt=0)
    REMOTE_AHEAD_TOLERANCE_MS: int = Field(
        default=10_000,
        ge=0,
        description="Clock skew allowance before the remote backup counts as newer",
    )
    SAVED_STATUS_RESET_SECONDS: float = Field(default=2.0, ge=0)

    # ========================================================================
    # MEDIA
    # ========================================================================

    MAX_INLINE_MEDIA_BYTES: int = Field(
        default=20 * 1024 * 1024,
        description="Largest attachment kept locally as a data: URL",
    )

    @field_validator("NETWORK_TIMEOUT_SECONDS", mode="before")
    @classmethod
    def validate_timeout(cls: type[Settings], v: object) -> object:  # noqa: ARG003
        """Treat an empty env value as 'no explicit timeout'."""
        if v == "":
            return None
        return v

    # ========================================================================
    # COMPUTED PROPERTIES
    # ========================================================================

    @property
    def drive_configured(self) -> bool:
        """Check if Google Drive credentials are present."""
        return (
            bool(self.GOOGLE_CLIENT_ID)
            and bool(self.GOOGLE_API_KEY)
            and "YOUR_CLIENT_ID" not in self.GOOGLE_CLIENT_ID
        )

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.ENVIRONMENT == "production"

    @property
    def is_local(self) -> bool:
        """Check if running locally."""
        return self.ENVIRONMENT == "local"


# Global settings instance
settings = Settings()
