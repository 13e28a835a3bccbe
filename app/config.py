"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="ReelTiers", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=3000, alias="PORT")

    tmdb_api_key: str | None = Field(default=None, alias="TMDB_API_KEY")
    tmdb_api_url: HttpUrl = Field(
        default="https://api.themoviedb.org/3", alias="TMDB_API_URL"
    )
    tmdb_image_base_url: str = Field(
        default="https://image.tmdb.org/t/p/w500", alias="TMDB_IMAGE_BASE"
    )
    request_timeout_seconds: float = Field(
        default=15.0, alias="TMDB_TIMEOUT", gt=0
    )

    rate_limit_max_requests: int = Field(
        default=40, alias="RATE_LIMIT_MAX_REQUESTS", ge=1, le=1_000
    )
    rate_limit_window_seconds: float = Field(
        default=10.0, alias="RATE_LIMIT_WINDOW", gt=0
    )
    rate_limit_margin_seconds: float = Field(
        default=0.1, alias="RATE_LIMIT_MARGIN", ge=0
    )

    throttle_retry_limit: int = Field(
        default=3, alias="THROTTLE_RETRY_LIMIT", ge=0, le=10
    )
    throttle_default_delay_seconds: float = Field(
        default=2.0, alias="THROTTLE_DEFAULT_DELAY", ge=0
    )

    enrich_batch_size: int = Field(
        default=10, alias="ENRICH_BATCH_SIZE", ge=1, le=100
    )
    lookup_cache_size: int = Field(
        default=10_000, alias="LOOKUP_CACHE_SIZE", ge=0
    )
    failure_cache_ttl_seconds: float = Field(
        default=300.0, alias="FAILURE_CACHE_TTL", ge=0
    )

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("tmdb_api_key", mode="before")
    @classmethod
    def _blank_api_key_is_missing(cls, value: object) -> object:
        """Treat an empty TMDB_API_KEY the same as an unset one."""

        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("tmdb_image_base_url", mode="after")
    @classmethod
    def _strip_image_base(cls, value: str) -> str:
        return value.rstrip("/")

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
