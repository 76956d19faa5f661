"""
settings.py
Application settings, read from environment variables or a .env file.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Global console settings."""

    # Application
    ENVIRONMENT: Literal["local", "development", "production"] = "local"
    LOG_LEVEL: str = "INFO"
    CENTRAL_CHAPTER_NAME: str = "SEDE CENTRAL"

    # Remote store
    STORE_BACKEND: Literal["sqlite", "supabase"] = "sqlite"
    DATABASE_FILE: str = "consulados.db"

    # Supabase (placeholders keep local runs working without credentials)
    SUPABASE_URL: str = "http://localhost"
    SUPABASE_ANON_KEY: str = "test-anon-key"

    # Blob storage
    STORAGE_BACKEND: Literal["local", "supabase"] = "local"
    STORAGE_BUCKET: str = "Logo"
    UPLOAD_DIR: str = "uploads"
    UPLOAD_BASE_URL: str = "/uploads"

    # First-run console account
    DEFAULT_ADMIN_USERNAME: str = "admin"
    DEFAULT_ADMIN_PASSWORD: str = "admin123"

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    @field_validator("CENTRAL_CHAPTER_NAME")
    @classmethod
    def central_name_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("CENTRAL_CHAPTER_NAME must not be empty")
        return v


@lru_cache
def get_settings() -> Settings:
    """
    Return the global settings instance, cached.
    """
    return Settings()
