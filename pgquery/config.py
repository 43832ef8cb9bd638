"""
Configuration settings for pgquery.

Uses Pydantic Settings to load environment variables for the database
connection, pool sizing/timeouts and logging. Values are read once per process
and turned into an immutable ``ConnectionConfig`` for the core.
"""
from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from pgquery.domain.models import ConnectionConfig


class Settings(BaseSettings):
    # Database
    db_host: str = Field("localhost", alias="DB_HOST")
    db_port: int = Field(5432, alias="DB_PORT")
    db_user: str = Field("postgres", alias="DB_USER")
    db_password: str = Field("postgres", alias="DB_PASSWORD")
    db_name: str = Field("postgres", alias="DB_NAME")
    db_schema_name: str = Field("public", alias="DB_SCHEMA_NAME")

    # Pooling
    db_pool_min_size: int = Field(1, alias="DB_POOL_MIN_SIZE", ge=0)
    db_pool_max_size: int = Field(10, alias="DB_POOL_MAX_SIZE", ge=1)
    db_lease_timeout_seconds: float = Field(10.0, alias="DB_LEASE_TIMEOUT_SECONDS", gt=0)
    db_connect_timeout_seconds: int = Field(5, alias="DB_CONNECT_TIMEOUT_SECONDS", ge=1)
    db_statement_timeout_ms: int = Field(0, alias="DB_STATEMENT_TIMEOUT_MS", ge=0)
    db_shutdown_grace_seconds: float = Field(5.0, alias="DB_SHUTDOWN_GRACE_SECONDS", ge=0)
    startup_attempts: int = Field(5, alias="STARTUP_ATTEMPTS", ge=1)

    # Application
    app_env: str = Field("development", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    def connection_config(self) -> ConnectionConfig:
        """Build the immutable connection parameters consumed by the core."""
        return ConnectionConfig(
            host=self.db_host,
            port=self.db_port,
            user=self.db_user,
            password=self.db_password,
            default_database=self.db_name,
            schema_name=self.db_schema_name,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


__all__ = ["Settings", "get_settings"]
