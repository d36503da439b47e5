"""Request, response and stream event models for the chat API."""

from typing import Any, Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from dialogue_foundry.db.chats.schemas import ChatRecord, MessageRecord


class _CamelModel(BaseModel):
    """Accepts and emits the widget's camelCase field names."""

    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


# ========== Stream events ==========


class StartEvent(_CamelModel):
    """Stream established. NDJSON calls this `start`, SSE calls it `connected`."""

    type: Literal["start", "connected"] = "start"


class ChunkEvent(_CamelModel):
    type: Literal["chunk"] = "chunk"
    content: str


class DoneEvent(_CamelModel):
    type: Literal["done"] = "done"
    full_content: str = Field(alias="fullContent")


class ErrorEvent(_CamelModel):
    type: Literal["error"] = "error"
    error: str
    code: str | None = None


class EmailRequestDetails(_CamelModel):
    subject: str = ""
    conversation_summary: str = Field(default="", alias="conversationSummary")


class RequestEmailEvent(_CamelModel):
    """Side-channel event asking the widget to show the email capture form."""

    type: Literal["request_email"] = "request_email"
    details: EmailRequestDetails
    id: str = Field(default_factory=lambda: str(uuid4()))


StreamEvent = StartEvent | ChunkEvent | DoneEvent | ErrorEvent | RequestEmailEvent


# ========== Requests ==========


class StreamMessageRequest(BaseModel):
    """Body of a streamed turn. Fields are validated by the turn service."""

    content: str | None = None
    timezone: str | None = None


class CreateChatRequest(_CamelModel):
    company_id: str | None = Field(default=None, alias="companyId")
    name: str | None = None
    user_id: str | None = Field(default=None, alias="userId")
    welcome_message: str | None = Field(default=None, alias="welcomeMessage")


class SendEmailRequest(_CamelModel):
    user_email: str | None = Field(default=None, alias="userEmail")
    subject: str | None = None
    conversation_summary: str | None = Field(default=None, alias="conversationSummary")


# ========== Responses ==========


class CreateChatResponse(_CamelModel):
    chat: ChatRecord
    access_token: str = Field(alias="accessToken")
    messages: list[MessageRecord] = Field(default_factory=list)


class ChatTranscriptResponse(BaseModel):
    chat: ChatRecord
    messages: list[MessageRecord]


class SendEmailResponse(BaseModel):
    success: bool
    message: str
