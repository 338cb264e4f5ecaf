"""Application configuration."""

from functools import lru_cache
from typing import Any, Literal, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LOG_LEVELS = ("debug", "info", "warning", "error", "critical")


def _split_prefixes(value: str) -> list[str]:
    return [prefix.strip() for prefix in value.split(",") if prefix.strip()]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application settings
    app_name: str = "reqtrail"
    environment: Literal["development", "production", "test"] = "production"
    api_prefix: str = "/api"

    # Logging
    log_level: Optional[str] = None
    log_format: Literal["json", "console"] = "json"
    log_sample_rate: float = Field(default=0.05, ge=0.0, le=1.0)

    # Request tracking filter - using strings to avoid JSON parsing issues
    log_include_prefixes_str: str = Field(
        default="/api/", alias="log_include_prefixes"
    )
    log_exclude_prefixes_str: str = Field(
        default="/api/auth/session,/api/health", alias="log_exclude_prefixes"
    )

    # Slow request threshold tracking
    p99_window_size: int = Field(default=1000, gt=0)
    p99_recompute_every: int = Field(default=100, gt=0)
    p99_initial_threshold_ms: float = Field(default=1000.0, ge=0.0)

    @field_validator("log_level", mode="before")
    @classmethod
    def validate_log_level(cls, v: Any) -> Optional[str]:
        """Normalize the log level, accepting ``warn`` as ``warning``."""
        if v is None or v == "":
            return None
        level = str(v).strip().lower()
        if level == "warn":
            level = "warning"
        if level not in LOG_LEVELS:
            raise ValueError(
                f"log_level must be one of {', '.join(LOG_LEVELS)} (got {v!r})"
            )
        return level

    @model_validator(mode="after")
    def default_log_level(self) -> "Settings":
        """Fall back to debug in development and info everywhere else."""
        if self.log_level is None:
            self.log_level = "debug" if self.is_development else "info"
        return self

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def log_include_prefixes(self) -> list[str]:
        """Get parsed include prefixes as list."""
        return _split_prefixes(self.log_include_prefixes_str)

    @property
    def log_exclude_prefixes(self) -> list[str]:
        """Get parsed exclude prefixes as list."""
        return _split_prefixes(self.log_exclude_prefixes_str)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
