"""Application settings using Pydantic Settings.

Centralized configuration for the enrollment engine. Every field can be
overridden with an ``ENROLL_``-prefixed environment variable or a ``.env``
file, e.g. ``ENROLL_STORAGE_BACKEND=sql``.
"""

import logging
from functools import lru_cache
from typing import List

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class EnrollmentSettings(BaseSettings):
    """Main enrollment engine settings."""

    model_config = SettingsConfigDict(
        env_prefix="ENROLL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application info
    name: str = Field(default="Enrollment Engine", description="Application name")
    version: str = Field(default="1.0.0", description="Application version")
    debug: bool = Field(default=False, description="Debug mode")
    environment: str = Field(default="development", description="Environment name")

    # Logging
    log_level: str = Field(default="INFO", description="Root log level")
    json_logs: bool = Field(default=False, description="Emit JSON formatted logs")

    # Session storage
    storage_backend: str = Field(
        default="memory",
        description="Session storage backend: 'memory' or 'sql'",
    )
    database_url: str = Field(
        default="sqlite:///./enrollment_sessions.db",
        description="SQLAlchemy URL used by the 'sql' storage backend",
    )
    session_ttl_hours: int = Field(
        default=24, ge=1, description="Hours an idle enrollment session is kept"
    )

    # External lookups
    lookup_timeout_seconds: float = Field(
        default=8.0, gt=0, description="Client timeout for lookup requests"
    )
    address_lookup_url: str = Field(
        default="http://localhost:8100/addresses",
        description="Address autocomplete endpoint",
    )
    provider_lookup_url: str = Field(
        default="http://localhost:8100/providers",
        description="Doctor and medication search endpoint",
    )
    assistant_url: str = Field(
        default="http://localhost:8100/assistant",
        description="AI assistant chat endpoint",
    )
    address_min_query_length: int = Field(
        default=3, ge=1, description="Minimum characters before address lookup fires"
    )

    # Eligibility
    min_coverage_age: int = Field(default=19, description="Youngest age eligible for coverage")
    max_coverage_age: int = Field(default=65, description="Oldest age eligible for coverage")
    supported_states: List[str] = Field(
        default=["FL"], description="States served by the enrollment flow"
    )

    @field_validator("storage_backend")
    @classmethod
    def validate_storage_backend(cls, v: str) -> str:
        v = v.lower()
        if v not in ("memory", "sql"):
            raise ValueError("storage_backend must be 'memory' or 'sql'")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        v = v.upper()
        if v not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid log level: {v}")
        return v

    @model_validator(mode="after")
    def validate_age_bounds(self) -> "EnrollmentSettings":
        if self.min_coverage_age > self.max_coverage_age:
            raise ValueError("min_coverage_age cannot exceed max_coverage_age")
        return self

    @property
    def is_production(self) -> bool:
        return self.environment.lower() in ("production", "prod")

    @property
    def is_test(self) -> bool:
        return self.environment.lower() in ("test", "testing")

    @property
    def session_ttl_seconds(self) -> int:
        return self.session_ttl_hours * 3600


@lru_cache()
def get_settings() -> EnrollmentSettings:
    """Get cached settings instance."""
    settings = EnrollmentSettings()
    logger.debug(
        "Loaded settings: environment=%s storage_backend=%s",
        settings.environment,
        settings.storage_backend,
    )
    return settings


def reload_settings(**overrides) -> EnrollmentSettings:
    """Drop the cached settings and build a fresh instance.

    Keyword overrides are applied on top of the environment. Used by tests
    and by the app factory when it is handed explicit configuration.
    """
    get_settings.cache_clear()
    if overrides:
        return EnrollmentSettings(**overrides)
    return get_settings()
