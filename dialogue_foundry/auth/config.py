"""Access token configuration."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class TokenSettings(BaseSettings):
    """Settings for signing chat access tokens.

    Attributes:
        secret: Shared HMAC secret used to sign and verify tokens
        expiry_seconds: Token lifetime in seconds
        algorithm: JWT signing algorithm
    """

    model_config = SettingsConfigDict(
        env_prefix="JWT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    secret: str = Field(
        default="super-secret-jwt-token-with-at-least-32-characters-long",
        min_length=32,
        description="HMAC secret for chat access tokens",
    )
    expiry_seconds: int = Field(
        default=86400,
        gt=0,
        description="Lifetime of a chat access token in seconds",
    )
    algorithm: str = Field(default="HS256", description="JWT signing algorithm")


@lru_cache
def get_token_settings() -> TokenSettings:
    """Get cached token settings instance.

    Returns:
        TokenSettings: Cached settings instance
    """
    return TokenSettings()
