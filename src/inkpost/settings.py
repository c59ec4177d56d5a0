"""Configuration for inkpost.

Values come from environment variables, then a `.env` file in the working
directory, then the defaults below.
"""

from __future__ import annotations

import logging

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Values shipped in the site's example configuration; treated as "not set"
_PLACEHOLDER_URLS = {"https://your-project.supabase.co", "https://placeholder.supabase.co"}
_PLACEHOLDER_KEYS = {"your-anon-key-here", "placeholder-key"}


class Settings(BaseSettings):
    """Gateway connection and client behaviour."""

    supabase_url: str = Field(
        default="",
        validation_alias="SUPABASE_URL",
    )
    # Public anon key; row-level policies decide what it may touch
    supabase_anon_key: str = Field(
        default="",
        validation_alias="SUPABASE_ANON_KEY",
    )
    request_timeout: float = Field(
        default=30.0,
        gt=0,
        validation_alias="INKPOST_REQUEST_TIMEOUT",
    )
    verify_tls: bool = Field(
        default=True,
        validation_alias="INKPOST_VERIFY_TLS",
    )
    # Show sample articles when search or listings come back empty or fail
    search_fallback: bool = Field(
        default=True,
        validation_alias="INKPOST_SEARCH_FALLBACK",
    )
    log_level: str = Field(
        default="INFO",
        validation_alias="INKPOST_LOG_LEVEL",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("supabase_url", mode="before")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return (v or "").strip().rstrip("/")

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        level = str(v or "INFO").strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level {v!r}")
        return level

    @property
    def is_configured(self) -> bool:
        """True when both URL and key are set to something real."""
        return bool(
            self.supabase_url
            and self.supabase_anon_key
            and self.supabase_url not in _PLACEHOLDER_URLS
            and self.supabase_anon_key not in _PLACEHOLDER_KEYS
            and "YOUR_SUPABASE" not in self.supabase_url
        )
