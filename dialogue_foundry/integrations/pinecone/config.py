"""
Configuration for the Pinecone retrieval integration.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class PineconeSettings(BaseSettings):
    """Configuration for Pinecone using Pydantic settings."""

    model_config = SettingsConfigDict(
        case_sensitive=False, extra="ignore", env_prefix="PINECONE_"
    )

    api_key: str = Field(default="", description="Pinecone API key")
    control_plane_url: str = Field(
        default="https://api.pinecone.io",
        description="Control plane URL used to resolve index hosts",
    )
    api_version: str = Field(default="2025-04", description="Pinecone API version")
    namespace: str = Field(default="default", description="Namespace searched")
    text_field: str = Field(
        default="chunk_text", description="Record field holding the document text"
    )
    host_cache_ttl_seconds: int = Field(
        default=1800, description="How long resolved index hosts are cached"
    )

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)


@lru_cache
def get_pinecone_settings() -> PineconeSettings:
    """
    Get the cached Pinecone settings instance.

    Returns:
        PineconeSettings: The settings instance
    """
    return PineconeSettings()
