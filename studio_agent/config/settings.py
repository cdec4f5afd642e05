"""Application settings using Pydantic BaseSettings."""

import os
from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _get_default_db_path() -> str:
    """Get absolute path to default SQLite database."""
    # studio_agent/config/ -> studio_agent/
    package_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    db_path = os.path.join(package_dir, "data", "studio_agent.db")
    return f"sqlite+aiosqlite:///{db_path}"


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Server
    environment: str = Field(default="development")
    # Bind to localhost by default. Use 0.0.0.0 only in containers.
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8000)
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")
    log_file: Optional[str] = Field(default=None)
    cors_origins: str = Field(default="http://localhost:5173")
    max_request_bytes: int = Field(default=262144)

    # Database
    database_url: str = Field(default_factory=_get_default_db_path)
    # None means "environment-based default": true in development/test only
    auto_create_tables: Optional[bool] = Field(default=None)

    # LLM provider
    provider_mode: str = Field(default="openai_compat")
    openai_base_url: str = Field(default="https://api.openai.com/v1")
    openai_api_key: str = Field(default="")
    agent_model: str = Field(default="gpt-4-turbo-preview")
    legacy_agent_model: str = Field(default="gpt-4o-mini")
    agent_temperature: float = Field(default=0.1)
    llm_timeout_seconds: float = Field(default=30.0)

    # Tool execution
    tool_timeout_seconds: float = Field(default=15.0)
    tools_max_calls_per_request: int = Field(default=10)
    agent_history_limit: int = Field(default=20)
    confirmation_ttl_seconds: int = Field(default=900)
    # Forces simulated execution for every /agent/v2/chat turn
    agent_v2_dry_run: bool = Field(default=False)

    # Shadow comparison
    shadow_enabled: bool = Field(default=True)
    shadow_timeout_seconds: float = Field(default=60.0)
    shadow_argument_threshold: float = Field(default=0.8)

    # Caller identity (set by the upstream auth layer)
    identity_header_user: str = Field(default="X-User-Id")
    identity_header_studio: str = Field(default="X-Studio-Id")
    identity_header_role: str = Field(default="X-User-Role")
    # None means "environment-based default": true in development only
    dev_identity_fallback: Optional[bool] = Field(default=None)

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        if not self.cors_origins:
            return []
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production"

    @property
    def is_test(self) -> bool:
        """Check if running in test mode."""
        return self.environment == "test"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def should_create_tables(self) -> bool:
        """Create tables on startup (dev/test) instead of relying on alembic."""
        if self.auto_create_tables is not None:
            return self.auto_create_tables
        return self.is_development or self.is_test

    @property
    def use_dev_identity(self) -> bool:
        if self.dev_identity_fallback is not None:
            return self.dev_identity_fallback
        return self.is_development

    @property
    def docs_url(self) -> str | None:
        """Return docs URL if not in production, else None."""
        return None if self.is_production else "/docs"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return upper

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        vv = (v or "").strip().lower()
        if vv not in {"development", "staging", "production", "test"}:
            raise ValueError("ENVIRONMENT must be one of: development, staging, production, test")
        return vv

    @field_validator("provider_mode")
    @classmethod
    def validate_provider_mode(cls, v: str) -> str:
        vv = (v or "").strip().lower()
        if vv not in {"openai_compat", "mock"}:
            raise ValueError("PROVIDER_MODE must be one of: openai_compat, mock")
        return vv

    @field_validator("shadow_argument_threshold")
    @classmethod
    def validate_threshold(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError("SHADOW_ARGUMENT_THRESHOLD must be between 0 and 1")
        return v

    @field_validator(
        "llm_timeout_seconds",
        "tool_timeout_seconds",
        "shadow_timeout_seconds",
        "tools_max_calls_per_request",
        "confirmation_ttl_seconds",
    )
    @classmethod
    def validate_positive(cls, v):
        if v <= 0:
            raise ValueError("value must be positive")
        return v

    @model_validator(mode="after")
    def validate_cross_field_constraints(self) -> "Settings":
        if self.is_production:
            if self.use_dev_identity:
                raise ValueError("DEV_IDENTITY_FALLBACK cannot be enabled in production")
            if self.provider_mode == "mock":
                raise ValueError("PROVIDER_MODE=mock is not allowed in production")
        return self


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
