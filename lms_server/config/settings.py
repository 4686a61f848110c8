"""Unified configuration settings for the LMS API server.

This module provides a centralized Settings class using Pydantic BaseSettings
for loading and validating all environment variables.

All configuration should be accessed through this module:
    from lms_server.config.settings import get_settings
    settings = get_settings()
"""

from functools import lru_cache
from typing import List, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_csv(value: str) -> List[str]:
    """Split a comma-separated string into a list."""
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Uses pydantic BaseSettings to automatically load from .env file
    and validate configuration values.

    Environment variables can be set in .env file or system environment.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==================== Redis ====================
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL used by the response cache"
    )
    redis_socket_timeout: float = Field(
        default=5.0,
        description="Socket connect/read timeout in seconds",
        gt=0,
    )
    redis_max_retries: int = Field(
        default=3,
        description="Retries per Redis command before the call fails",
        ge=0,
    )

    # ==================== Response Cache ====================
    cache_enabled: bool = Field(
        default=True,
        description="Serve and store cached GET responses"
    )
    cache_backend: Literal["redis", "memory"] = Field(
        default="redis",
        description="Key-value store backing the response cache"
    )
    cache_default_ttl: int = Field(
        default=300,
        description="Default time-to-live for cached responses, in seconds",
        gt=0,
    )
    cache_key_prefix: str = Field(
        default="api",
        description="Leading segment of every response cache key"
    )

    # ==================== Server Configuration ====================
    allowed_origins: str = Field(
        default="http://localhost:5173",
        description="Comma-separated list of allowed CORS origins"
    )
    uvicorn_host: str = Field(
        default="0.0.0.0",
        description="Uvicorn server host"
    )
    uvicorn_port: int = Field(
        default=8000,
        description="Uvicorn server port"
    )
    log_level: str = Field(
        default="INFO",
        description="Loguru level for the stderr sink"
    )

    @field_validator("cache_key_prefix")
    @classmethod
    def validate_key_prefix(cls, v: str) -> str:
        v = v.strip()
        if not v or ":" in v or "*" in v:
            raise ValueError("cache_key_prefix must be non-empty and contain no ':' or '*'")
        return v

    # ==================== Computed Properties ====================

    @property
    def allowed_origins_list(self) -> List[str]:
        """Get allowed origins as a list."""
        return _split_csv(self.allowed_origins)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance (singleton pattern).

    Returns:
        Settings instance loaded from environment variables.

    Example:
        from lms_server.config.settings import get_settings

        settings = get_settings()
        print(settings.redis_url)
    """
    return Settings()
