"""Configuration management for ProfileStub.

This module uses Pydantic Settings to load and validate configuration from
environment variables and .env files. Configuration is loaded once and is
immutable afterwards; pass an explicit Settings instance to override it in
tests.
"""

from functools import lru_cache
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """ProfileStub configuration settings.

    Settings are loaded from environment variables prefixed with
    ``PROFILESTUB_`` and from a .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="PROFILESTUB_",
        case_sensitive=False,
        extra="ignore",
    )

    # Application Settings
    app_name: str = "ProfileStub"
    app_version: str = "0.1.0"
    environment: Literal["development", "production", "testing"] = "development"

    # Database Settings
    database_url: str = "sqlite://"
    db_echo: bool = False

    # Value Settings
    timezone: str = Field(
        default="Europe/Amsterdam",
        description="Timezone for stored timestamps and naive date input; empty means local",
    )
    default_page_limit: int = 100

    # Record Store Settings
    cascade_profile_removal: bool = Field(
        default=False,
        description="Also mark a profile's subprofiles removed when the profile is removed",
    )

    # Logging Settings
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_format: Literal["json", "console"] = "json"

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Validate that the timezone is a known IANA zone name (or empty)."""
        v = v.strip()
        if v:
            try:
                ZoneInfo(v)
            except (ZoneInfoNotFoundError, ValueError) as e:
                raise ValueError(f"Unknown timezone '{v}'") from e
        return v

    @field_validator("default_page_limit")
    @classmethod
    def validate_page_limit(cls, v: int) -> int:
        """Validate the page limit is positive."""
        if v < 1:
            raise ValueError("default_page_limit must be at least 1")
        return v

    @property
    def tzinfo(self) -> ZoneInfo | None:
        """Configured timezone, or None for the process local zone."""
        return ZoneInfo(self.timezone) if self.timezone else None


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Settings: Cached settings instance.
    """
    return Settings()
