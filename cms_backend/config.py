"""
Configuration and settings for the CMS backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    api_prefix: str = Field(default="/api/v1")
    log_level: str = Field(default="INFO")

    # Database (Postgres expected; any SQLAlchemy URL works)
    database_url: Optional[str] = Field(default=None)
    db_pool_timeout_seconds: float = Field(default=10.0)

    # Identity provider (Supabase Auth / GoTrue)
    supabase_url: Optional[str] = Field(default=None)
    supabase_anon_key: Optional[str] = Field(default=None)
    identity_timeout_seconds: float = Field(default=10.0)

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False, alias="CMS_USE_IN_MEMORY_BACKENDS"
    )

    # S3-compatible image storage
    s3_endpoint: Optional[str] = Field(default=None)
    s3_region: Optional[str] = Field(default=None)
    s3_bucket: Optional[str] = Field(default=None)
    aws_access_key_id: Optional[str] = Field(default=None)
    aws_secret_access_key: Optional[str] = Field(default=None)

    # Image compression
    image_max_width: int = Field(default=800, ge=1)
    image_quality: int = Field(default=80, ge=1, le=100)

    @property
    def identity_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_anon_key)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
