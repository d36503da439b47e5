"""
Configuration for the SendGrid notification integration.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SendGridSettings(BaseSettings):
    """Configuration for SendGrid using Pydantic settings."""

    model_config = SettingsConfigDict(
        case_sensitive=False, extra="ignore", env_prefix="SENDGRID_"
    )

    api_key: str = Field(default="", description="SendGrid API key")
    base_url: str = Field(
        default="https://api.sendgrid.com", description="SendGrid API base URL"
    )
    from_email: str = Field(
        default="noreply@dialoguefoundry.com", description="Sender address"
    )
    from_name: str = Field(default="Dialogue Foundry", description="Sender name")
    default_template_id: str = Field(
        default="d-default-template-id",
        description="Template used when a company has none configured",
    )

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)


@lru_cache
def get_sendgrid_settings() -> SendGridSettings:
    """
    Get the cached SendGrid settings instance.

    Returns:
        SendGridSettings: The settings instance
    """
    return SendGridSettings()
