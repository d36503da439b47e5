"""
Pydantic schemas for chats, messages and chat configuration.

These are the records every ChatStore implementation hands out; ORM objects
never leave the SQL store.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class ChatRecord(BaseModel):
    """A persisted chat."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str = "New Conversation"
    user_id: str
    company_id: str
    user_email: str | None = None
    created_at: datetime
    updated_at: datetime


class MessageRecord(BaseModel):
    """A persisted message."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    chat_id: str
    user_id: str
    role: MessageRole
    content: str
    sequence_number: int
    created_at: datetime
    updated_at: datetime


class ChatConfigRecord(BaseModel):
    """Per-company chat configuration."""

    model_config = ConfigDict(from_attributes=True)

    company_id: str
    system_prompt: str = ""
    support_email: str | None = None
    retrieval_index_name: str | None = None
    sendgrid_template_id: str | None = None


class NewChat(BaseModel):
    """Fields needed to create a chat."""

    user_id: str
    company_id: str
    name: str = Field(default="New Conversation")


class NewMessage(BaseModel):
    """Fields needed to insert a message; the store fills in id and timestamps."""

    chat_id: str
    user_id: str
    role: MessageRole
    content: str
    sequence_number: int
