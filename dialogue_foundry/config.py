from enum import Enum
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Deployment tiers."""

    DEVELOPMENT = "dev"
    STAGING = "staging"
    PRODUCTION = "prod"


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(case_sensitive=False, extra="ignore")

    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Current environment (dev, staging, or prod)",
    )
    cors_origins: list[str] = Field(
        default=["*"],
        description="Origins allowed to embed the widget",
    )
    api_prefix: str = Field(default="/api", description="Prefix for all API routes")
    store_backend: Literal["sql", "memory"] = Field(
        default="sql",
        description="Chat store: PostgreSQL, or in-memory for local development",
    )
    create_tables: bool = Field(
        default=False,
        description="Create database tables on startup (local development only)",
    )

    @property
    def caching_enabled(self) -> bool:
        """Read-through caching only runs in production."""
        return self.environment == Environment.PRODUCTION


_app_settings: AppSettings | None = None


def get_app_settings() -> AppSettings:
    global _app_settings
    if _app_settings is None:
        _app_settings = AppSettings()
    return _app_settings
