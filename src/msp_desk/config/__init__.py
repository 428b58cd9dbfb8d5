"""
Configuration Module
====================

Application settings and configuration management using Pydantic.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import List

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="msp-desk", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/msp_desk",
        description="PostgreSQL connection URL (async)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== SLA Defaults ==========
    sla_config_path: Path = Field(
        default=Path("sla_config.yaml"),
        description="Path to SLA defaults YAML file"
    )
    sla_default_first_response_minutes: int = Field(
        default=60,
        description="System-wide first response target when no service applies",
        ge=1
    )
    sla_default_resolution_minutes: int = Field(
        default=480,
        description="System-wide resolution target when no service applies",
        ge=1
    )

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:8080"],
        description="Allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @model_validator(mode="after")
    def validate_sla_defaults(self) -> "Settings":
        """Resolution target can never be shorter than the first response target."""
        if self.sla_default_resolution_minutes < self.sla_default_first_response_minutes:
            raise ValueError(
                "sla_default_resolution_minutes must be >= sla_default_first_response_minutes"
            )
        return self


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


# ========== Constants ==========

class TicketStatus(str, Enum):
    """Ticket lifecycle statuses."""
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    WAITING_FOR_CUSTOMER = "waiting_for_customer"
    RESOLVED = "resolved"
    CLOSED = "closed"


class ActorRole(str, Enum):
    """Roles an authenticated caller can hold (also used as message author role)."""
    ADMIN = "admin"
    EXPERT = "expert"
    COMPANY = "company"


class WorkType(str, Enum):
    """Classifier for logged expert time."""
    REMOTE = "remote"
    ONSITE = "onsite"


class SLAType(str, Enum):
    """Types of SLA clocks."""
    FIRST_RESPONSE = "first_response"
    RESOLUTION = "resolution"


# ========== Limits ==========

TITLE_MAX_LENGTH = 200
DESCRIPTION_MAX_LENGTH = 4000
MESSAGE_MAX_LENGTH = 4000
COMMENT_MAX_LENGTH = 2000
RATING_MIN = 1
RATING_MAX = 5

