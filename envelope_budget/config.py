"""
Configuration settings for the Envelope Budget API.

Uses Pydantic Settings to load environment variables for the database
connection pool, the store backend, the HTTP surface, logging, and ledger
listing limits.
"""
from __future__ import annotations

from functools import lru_cache
from typing import List, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Database
    db_host: str = Field("localhost", alias="DB_HOST")
    db_port: int = Field(5432, alias="DB_PORT")
    db_user: str = Field("postgres", alias="DB_USER")
    db_password: str = Field("postgres", alias="DB_PASSWORD")
    db_name: str = Field("mybudget", alias="DB_NAME")

    # Connection pool
    db_pool_min_size: int = Field(1, alias="DB_POOL_MIN_SIZE", ge=0)
    db_pool_max_size: int = Field(10, alias="DB_POOL_MAX_SIZE", ge=1)
    db_pool_timeout_seconds: float = Field(30.0, alias="DB_POOL_TIMEOUT_SECONDS", gt=0)

    # Store-side timeouts (0 disables, leaving the server default in place)
    db_lock_timeout_ms: int = Field(0, alias="DB_LOCK_TIMEOUT_MS", ge=0)
    db_statement_timeout_ms: int = Field(0, alias="DB_STATEMENT_TIMEOUT_MS", ge=0)

    # Application
    app_env: str = Field("development", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")
    store_backend: Literal["postgres", "memory"] = Field("postgres", alias="STORE_BACKEND")

    # HTTP surface
    api_host: str = Field("0.0.0.0", alias="API_HOST")
    api_port: int = Field(3000, alias="API_PORT")
    api_prefix: str = Field("/api", alias="API_PREFIX")
    cors_origins: List[str] = Field(default_factory=lambda: ["*"], alias="CORS_ORIGINS")

    # Ledger listing
    transactions_default_limit: int = Field(200, alias="TRANSACTIONS_DEFAULT_LIMIT", ge=0)
    transactions_max_limit: int = Field(1000, alias="TRANSACTIONS_MAX_LIMIT", ge=0)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


def build_dsn(settings: Settings | None = None) -> str:
    """Compose a PostgreSQL DSN string from settings."""
    settings = settings or get_settings()
    return (
        f"postgresql://{settings.db_user}:{settings.db_password}"
        f"@{settings.db_host}:{settings.db_port}/{settings.db_name}"
    )


__all__ = ["Settings", "get_settings", "build_dsn"]
