"""Process settings with pydantic-settings.

Panel credentials are NOT part of these settings: they live in the billing
system's settings store and are resolved per operation (see
`panel_provisioner.provisioner.panel_config`). This module only covers knobs of
the engine itself.

Usage:
    from panel_provisioner.config import get_settings

    settings = get_settings()
    timeout = settings.panel_timeout_seconds
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings, read from PROVISIONER_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="PROVISIONER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Logging configuration
    service_name: str = Field(
        default="panel-provisioner",
        description="Service name for structured logging",
    )
    log_format: Literal["json", "console"] = Field(
        default="console",
        description="Log output format",
    )
    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR)",
    )

    # Panel transport
    panel_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout applied to every panel API call",
    )
    panel_max_retries: int = Field(
        default=0,
        ge=0,
        le=10,
        description="Automatic retries for transient panel failures (0 disables)",
    )
    panel_retry_base_delay: float = Field(
        default=1.0,
        ge=0,
        description="Base delay in seconds for exponential retry backoff",
    )

    # Allocation policy
    default_start_port: int = Field(
        default=25565,
        ge=1,
        le=65535,
        description="First port tried when a new allocation must be created",
    )
    max_port_attempts: int = Field(
        default=1000,
        ge=1,
        description="Port search bound when no explicit end of range is configured",
    )
    fresh_allocations: bool = Field(
        default=False,
        description="Always create a new allocation instead of reusing unassigned ones",
    )

    # Persistence
    database_url: str = Field(
        default="sqlite:///./panel_provisioner.db",
        description="SQLAlchemy URL for the service record store",
        examples=["postgresql+psycopg://user:pass@db:5432/billing"],
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure log level is valid."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_v = v.upper()
        if upper_v not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return upper_v


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()
