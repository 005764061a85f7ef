"""Application settings using Pydantic Settings."""

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Validation constants
BODY_SNAPSHOT_LIMIT_MIN = 1
BODY_SNAPSHOT_LIMIT_MAX = 1024 * 1024  # 1MB, snapshots live in log lines
FORM_LOG_LIMIT_MAX = 16 * 1024 * 1024


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "faultline"
    debug: bool = False
    log_level: str = "INFO"

    # Request logging
    # Only JSON bodies up to this many bytes are mirrored
    body_snapshot_limit: int = 8192
    log_request_body: bool = True
    # Urlencoded forms up to this many bytes are read and logged
    form_log_limit: int = 1024 * 1024

    # CORS settings
    # Empty = no CORS; use specific origins like ["https://example.com"]
    cors_origins: list[str] = []

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a valid Python logging level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_v = v.upper()
        if upper_v not in valid_levels:
            msg = f"Invalid log level: {v}. Must be one of {valid_levels}"
            raise ValueError(msg)
        return upper_v

    @field_validator("body_snapshot_limit")
    @classmethod
    def validate_body_snapshot_limit(cls, v: int) -> int:
        """Validate the snapshot limit is within reasonable bounds."""
        if v < BODY_SNAPSHOT_LIMIT_MIN:
            msg = f"body_snapshot_limit must be at least {BODY_SNAPSHOT_LIMIT_MIN} byte"
            raise ValueError(msg)
        if v > BODY_SNAPSHOT_LIMIT_MAX:
            msg = f"body_snapshot_limit must be at most {BODY_SNAPSHOT_LIMIT_MAX} bytes"
            raise ValueError(msg)
        return v

    @field_validator("form_log_limit")
    @classmethod
    def validate_form_log_limit(cls, v: int) -> int:
        """Validate the form limit, 0 disables form logging."""
        if v < 0:
            msg = "form_log_limit must not be negative"
            raise ValueError(msg)
        if v > FORM_LOG_LIMIT_MAX:
            msg = f"form_log_limit must be at most {FORM_LOG_LIMIT_MAX} bytes"
            raise ValueError(msg)
        return v


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
