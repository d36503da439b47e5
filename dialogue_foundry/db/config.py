"""
Configuration management for database connections.

This module handles database configuration using Pydantic settings.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Database configuration using Pydantic settings."""

    model_config = SettingsConfigDict(
        case_sensitive=False, extra="ignore", env_prefix="DB_"
    )

    url: str | None = Field(
        default=None,
        description="Full SQLAlchemy async URL; overrides the individual fields",
    )
    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    name: str = Field(default="dialogue_foundry", description="Database name")
    username: str = Field(default="postgres", description="Database username")
    password: str = Field(default="", description="Database user password")
    ssl: bool = Field(default=True, description="Require SSL for connections")

    # Connection pool settings
    pool_size: int = Field(default=5, description="Connection pool size")
    max_overflow: int = Field(default=10, description="Maximum overflow connections")
    echo: bool = Field(default=False, description="Echo SQL statements to logs")

    def get_async_url(self) -> str:
        """
        Get asynchronous database URL for asyncpg.

        Returns:
            str: Database connection URL for async operations
        """
        if self.url:
            return self.url
        ssl_suffix = "?ssl=require" if self.ssl else ""
        return (
            f"postgresql+asyncpg://{self.username}:{self.password}"
            f"@{self.host}:{self.port}/{self.name}{ssl_suffix}"
        )


@lru_cache
def get_db_settings() -> DatabaseSettings:
    """
    Get the cached database settings instance.

    Returns:
        DatabaseSettings: The settings instance
    """
    return DatabaseSettings()


class CacheSettings(BaseSettings):
    """Read-through cache configuration for chat and chat config lookups."""

    model_config = SettingsConfigDict(
        case_sensitive=False, extra="ignore", env_prefix="CACHE_"
    )

    chat_config_ttl_seconds: int = Field(
        default=300, description="TTL for cached company chat configuration"
    )
    chat_ttl_seconds: int = Field(default=60, description="TTL for cached chats")
    max_entries: int = Field(default=1000, description="Maximum entries per cache")


@lru_cache
def get_cache_settings() -> CacheSettings:
    """
    Get the cached cache settings instance.

    Returns:
        CacheSettings: The settings instance
    """
    return CacheSettings()
