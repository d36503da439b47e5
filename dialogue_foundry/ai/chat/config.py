"""Chat pipeline configuration."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ChatSettings(BaseSettings):
    """Settings for chat turns and side-channel detection."""

    model_config = SettingsConfigDict(
        env_prefix="CHAT_",
        case_sensitive=False,
        extra="ignore",
    )

    model: str = Field(default="gpt-4o-mini", description="Model for chat replies")
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_messages_per_chat: int = Field(
        default=50,
        gt=0,
        description="Messages retained per chat and sent to the model",
    )
    fallback_response: str = Field(
        default="Sorry, I was unable to generate a response.",
        description="Stored when the model completes without producing text",
    )
    heartbeat_interval_seconds: float = Field(
        default=15,
        gt=0,
        description="Idle time before a keep-alive frame is written",
    )
    email_detection_model: str = Field(default="gpt-4.1")
    email_detection_temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    email_detection_timeout_seconds: float = Field(
        default=15,
        gt=0,
        description="Upper bound on the email detection call before done is sent",
    )
    retrieval_top_k: int = Field(default=5, gt=0)
    default_timezone: str = Field(default="UTC")


@lru_cache
def get_chat_settings() -> ChatSettings:
    """Get cached chat settings instance.

    Returns:
        ChatSettings: Cached settings instance
    """
    return ChatSettings()
