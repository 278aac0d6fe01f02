"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_SOURCE_RAW_URL = (
    "https://raw.githubusercontent.com/TVGarden/tv-garden-channel-list/main/channels/raw"
)
DEFAULT_SOURCE_API_URL = (
    "https://api.github.com/repos/TVGarden/tv-garden-channel-list/contents/channels/raw"
)


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="TVGardenio", alias="APP_NAME")
    addon_id: str = Field(default="tvgardenio.elfhosted.com", alias="ADDON_ID")
    addon_name: str = Field(default="TVGardenio | ElfHosted", alias="ADDON_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=7000, alias="PORT")
    public_host: str | None = Field(default=None, alias="SPACE_HOST")

    dev_logging: bool = Field(default=False, alias="DEV_LOGGING")

    refresh_mode: Literal["lazy", "timer"] = Field(
        default="lazy", alias="REFRESH_MODE"
    )
    cache_ttl_seconds: int = Field(default=3_600, alias="CACHE_TTL", ge=60)
    refresh_retry_seconds: int = Field(
        default=60, alias="REFRESH_RETRY_DELAY", ge=1
    )
    fetch_concurrency: int = Field(
        default=8, alias="FETCH_CONCURRENCY", ge=1, le=64
    )

    source_raw_url: HttpUrl = Field(
        default=DEFAULT_SOURCE_RAW_URL, alias="SOURCE_RAW_URL"
    )
    source_api_url: HttpUrl = Field(
        default=DEFAULT_SOURCE_API_URL, alias="SOURCE_API_URL"
    )
    site_url: HttpUrl = Field(default="https://tv.garden", alias="SITE_URL")

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("refresh_mode", mode="before")
    @classmethod
    def _normalise_refresh_mode(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower() or "lazy"
        return value

    @field_validator("public_host", mode="before")
    @classmethod
    def _strip_blank(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip() or None
        return value

    @property
    def site_base_url(self) -> str:
        """Return the public channel site without a trailing slash."""

        return str(self.site_url).rstrip("/")

    @property
    def public_base_url(self) -> str:
        """Return the address advertised in the startup banner."""

        if self.public_host:
            return f"https://{self.public_host}"
        return f"http://localhost:{self.server_port}"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
