"""
Configuration and settings for the memorial backend and wizard wiring.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from shared.constants import (
    AUTOSAVE_DEBOUNCE_SECONDS,
    DEFAULT_DELETE_ATTEMPTS,
    DEFAULT_PUBLISH_ATTEMPTS,
    DEFAULT_RETRY_DELAY_SECONDS,
    DEFAULT_UPLOAD_ATTEMPTS,
    MAX_UPLOAD_BYTES,
    REQUEST_TIMEOUT_SECONDS,
)


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service and the wizard."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")
    # Where the wizard reaches the server functions (delete-asset).
    api_base_url: str = Field(default="http://localhost:8000/api")

    # Memorial store (any SQLAlchemy URL)
    database_url: Optional[str] = Field(default=None)

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)
    local_store_dir: str = Field(default=".tayvu")

    # Cloudinary
    cloudinary_cloud_name: Optional[str] = Field(default=None)
    cloudinary_upload_preset: Optional[str] = Field(default=None)
    cloudinary_api_key: Optional[str] = Field(default=None)
    cloudinary_api_secret: Optional[str] = Field(default=None)

    # Supabase auth
    supabase_url: Optional[str] = Field(default=None)
    supabase_anon_key: Optional[str] = Field(default=None)
    supabase_jwt_secret: Optional[str] = Field(default=None)
    jwt_audience: str = Field(default="authenticated")

    # Network behaviour
    request_timeout_seconds: float = Field(default=REQUEST_TIMEOUT_SECONDS)
    upload_max_attempts: int = Field(default=DEFAULT_UPLOAD_ATTEMPTS, ge=1)
    upload_retry_delay_seconds: float = Field(default=DEFAULT_RETRY_DELAY_SECONDS, ge=0)
    delete_max_attempts: int = Field(default=DEFAULT_DELETE_ATTEMPTS, ge=1)
    publish_max_attempts: int = Field(default=DEFAULT_PUBLISH_ATTEMPTS, ge=1)
    autosave_debounce_seconds: float = Field(default=AUTOSAVE_DEBOUNCE_SECONDS, ge=0)
    max_upload_bytes: int = Field(default=MAX_UPLOAD_BYTES, gt=0)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
