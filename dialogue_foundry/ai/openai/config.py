"""OpenAI API configuration."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class OpenAISettings(BaseSettings):
    """Settings for OpenAI API integration.

    Attributes:
        api_key: OpenAI API key for authentication
        request_timeout: HTTP request timeout in seconds
        connect_timeout: Connection timeout in seconds

    Note:
        Model names and temperatures are chat concerns and live in ChatSettings.
    """

    model_config = SettingsConfigDict(
        env_prefix="OPENAI_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    api_key: str = Field(
        default="",
        description="OpenAI API key",
    )
    request_timeout: int = Field(
        default=120,
        gt=0,
        description="HTTP request timeout in seconds",
    )
    connect_timeout: float = Field(
        default=10.0,
        gt=0,
        description="Connection timeout in seconds",
    )


@lru_cache
def get_openai_settings() -> OpenAISettings:
    """Get cached OpenAI settings instance.

    Returns:
        OpenAISettings: Cached settings instance
    """
    return OpenAISettings()
