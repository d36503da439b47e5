"""Pydantic schemas for chat access tokens."""

from enum import Enum

from pydantic import BaseModel


class ChatIdentity(BaseModel):
    """The chat/user pair a valid access token is bound to."""

    chat_id: str
    user_id: str


class TokenStatus(str, Enum):
    """Internal verification outcome; never sent to clients."""

    VALID = "valid"
    EXPIRED = "expired"
    INVALID = "invalid"


class TokenVerification(BaseModel):
    """Detailed verification result used for server-side logging."""

    status: TokenStatus
    identity: ChatIdentity | None = None
