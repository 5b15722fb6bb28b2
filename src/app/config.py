from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import AnyUrl, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8-sig",
        case_sensitive=False,
        extra="ignore",
    )

    SUPABASE_URL: AnyUrl
    SUPABASE_SERVICE_ROLE_KEY: str
    APP_ENV: str = "local"
    FRONTEND_CORS_ORIGINS: list[str] = Field(
        default_factory=lambda: ["http://localhost:5173", "http://localhost:3000"],
    )

    # Recipe generation
    GENERATION_BACKEND: Literal["http", "gemini"] = "http"
    AI_SERVICE_URL: str = "http://localhost:8000"
    AI_SERVICE_KEY: str = ""
    GEMINI_API_KEY: str = ""
    GEMINI_MODEL: str = "gemini-2.5-flash"
    GENERATION_TIMEOUT_SECONDS: float = 60.0

    # Cache reuse
    RECIPE_CACHE_TTL_HOURS: int = 48
    SIMILARITY_THRESHOLD: float = Field(default=0.5, gt=0.0, le=1.0)
    SIMILARITY_MAX_RESULTS: int = 5

    # Images
    UNSPLASH_ACCESS_KEY: str = ""
    IMAGE_SEARCH_TIMEOUT_SECONDS: float = 10.0
    IMAGE_BATCH_SIZE: int = 3
    IMAGE_BATCH_DELAY_SECONDS: float = 0.1
    IMAGE_CACHE_MAX_AGE_DAYS: int = 30

    # Maintenance
    CACHE_MAINTENANCE_ENABLED: bool = True
    RECIPE_PURGE_INTERVAL_HOURS: float = 4
    IMAGE_PURGE_INTERVAL_HOURS: float = 24


@lru_cache
def get_settings() -> Settings:
    return Settings()
