"""Reconciler configuration using pydantic-settings.

This module defines the ReconcilerSettings class that reads configuration
from environment variables with the RECONCILER_ prefix. Every field has a
default, so the service starts with an in-memory store when no database is
configured.
"""

import logging
from typing import Optional

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ReconcilerSettings(BaseSettings):
    """Webhook reconciler configuration from environment variables.

    All environment variables are prefixed with RECONCILER_
    (e.g., RECONCILER_DATABASE_URL).
    """

    model_config = SettingsConfigDict(
        env_prefix="RECONCILER_",
        case_sensitive=False,
    )

    # -------------------------------------------------------------------------
    # Database Configuration
    # -------------------------------------------------------------------------
    # PostgreSQL connection string; records are kept in memory when unset
    database_url: Optional[str] = None

    database_min_pool_size: int = 2

    database_max_pool_size: int = 10

    # Create the issues/projects tables on startup
    create_schema: bool = True

    # -------------------------------------------------------------------------
    # Webhook Processing
    # -------------------------------------------------------------------------
    # Ask the store to skip downstream automation for webhook-driven writes
    suppress_downstream_automation: bool = True

    # Reject requests that fail validate() before calling process()
    validate_before_process: bool = False

    # -------------------------------------------------------------------------
    # Server Configuration
    # -------------------------------------------------------------------------
    host: str = "0.0.0.0"

    port: int = 8080

    log_level: str = "INFO"

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------
    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: Optional[str]) -> Optional[str]:
        """Validate that database URL, when given, has a PostgreSQL scheme."""
        if v is None or not v.strip():
            return None
        if not v.startswith(("postgresql://", "postgres://")):
            raise ValueError(
                "database_url must start with postgresql:// or postgres://"
            )
        return v

    @field_validator("database_min_pool_size", "database_max_pool_size")
    @classmethod
    def validate_pool_size(cls, v: int) -> int:
        if v < 1:
            raise ValueError("pool sizes must be at least 1")
        return v

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate that port is in valid range."""
        if not 1 <= v <= 65535:
            raise ValueError("port must be between 1 and 65535")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate that log level is a standard logging level name."""
        level = v.upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"log_level must be a logging level name, got {v!r}")
        return level

    @model_validator(mode="after")
    def validate_pool_bounds(self) -> "ReconcilerSettings":
        if self.database_min_pool_size > self.database_max_pool_size:
            raise ValueError(
                "database_min_pool_size cannot exceed database_max_pool_size"
            )
        return self


def get_settings() -> ReconcilerSettings:
    """Create and return a ReconcilerSettings instance.

    Raises:
        pydantic.ValidationError: If a field is invalid.
    """
    return ReconcilerSettings()
