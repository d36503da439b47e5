"""
Chat session management for the Python chat client.

Holds the chat id and access token between turns and creates a new chat when
none is stored.
"""

from abc import ABC, abstractmethod
from typing import Any

import httpx
from pydantic import BaseModel, Field

from dialogue_foundry.client.errors import ApiError
from dialogue_foundry.constants import ErrorCode
from dialogue_foundry.utils.logger import logger

DEFAULT_API_BASE_URL = "http://localhost:3000/api"


class ChatCredentials(BaseModel):
    chat_id: str
    access_token: str


class ChatClientConfig(BaseModel):
    """Configuration of a chat client instance."""

    api_base_url: str = DEFAULT_API_BASE_URL
    company_id: str
    chat_name: str = "New Conversation"
    welcome_message: str | None = None
    request_timeout: float = Field(default=30.0, gt=0)


class CredentialStorage(ABC):
    """Where the current chat id and token are kept between turns."""

    @abstractmethod
    def load(self) -> ChatCredentials | None:
        pass

    @abstractmethod
    def save(self, credentials: ChatCredentials) -> None:
        pass

    @abstractmethod
    def clear(self) -> None:
        pass


class InMemoryCredentialStorage(CredentialStorage):
    def __init__(self, credentials: ChatCredentials | None = None):
        self._credentials = credentials

    def load(self) -> ChatCredentials | None:
        return self._credentials

    def save(self, credentials: ChatCredentials) -> None:
        self._credentials = credentials

    def clear(self) -> None:
        self._credentials = None


def error_from_response(response: httpx.Response) -> tuple[str, str | None]:
    """
    Extract `(code, message)` from an error response.

    FastAPI wraps error details as `{"detail": {"error": ..., "code": ...}}`;
    anything else is mapped from the status code.
    """
    message = None
    try:
        body = response.json()
    except ValueError:
        body = None

    if isinstance(body, dict):
        detail = body.get("detail", body)
        if isinstance(detail, dict):
            message = detail.get("error")
            if detail.get("code"):
                return str(detail["code"]), message
        elif isinstance(detail, str):
            message = detail

    if response.status_code == 401:
        return ErrorCode.TOKEN_INVALID.value, message
    if response.status_code == 403:
        return ErrorCode.CHAT_ACCESS_DENIED.value, message
    if response.status_code == 404:
        return ErrorCode.NOT_FOUND.value, message
    if response.status_code in (408, 504):
        return ErrorCode.TIMEOUT_ERROR.value, message
    if response.status_code >= 500:
        return ErrorCode.SERVER_ERROR.value, message
    return ErrorCode.UNKNOWN_ERROR.value, message


class ChatApiClient:
    """Async client for the non-streaming chat endpoints."""

    def __init__(
        self,
        config: ChatClientConfig,
        storage: CredentialStorage | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        """
        Args:
            config: Client configuration
            storage: Credential storage, in-memory by default
            http_client: Optional HTTP client (for testing)
        """
        self.config = config
        self.storage = storage or InMemoryCredentialStorage()
        self.http_client = http_client or httpx.AsyncClient(timeout=config.request_timeout)
        self.user_id: str | None = None

    def url(self, path: str) -> str:
        return f"{self.config.api_base_url.rstrip('/')}{path}"

    def _auth_headers(self, credentials: ChatCredentials) -> dict[str, str]:
        return {"Authorization": f"Bearer {credentials.access_token}"}

    async def close(self) -> None:
        await self.http_client.aclose()

    async def create_chat(self) -> ChatCredentials:
        """
        Create a new chat and store its credentials.

        The user id of the first chat is reused for every later chat.

        Raises:
            ApiError: CHAT_CREATION_FAILED if the server rejects or cannot be reached
        """
        body: dict[str, Any] = {
            "companyId": self.config.company_id,
            "name": self.config.chat_name,
        }
        if self.user_id:
            body["userId"] = self.user_id
        if self.config.welcome_message:
            body["welcomeMessage"] = self.config.welcome_message

        try:
            response = await self.http_client.post(self.url("/chats"), json=body)
        except httpx.HTTPError as e:
            logger.error("Error creating new chat", error=str(e))
            raise ApiError(ErrorCode.CHAT_CREATION_FAILED.value, detail=str(e)) from e

        if response.status_code >= 400:
            code, message = error_from_response(response)
            logger.error(
                "Chat creation rejected", status_code=response.status_code, code=code
            )
            raise ApiError(
                ErrorCode.CHAT_CREATION_FAILED.value,
                status_code=response.status_code,
                detail=message or code,
            )

        data = response.json()
        credentials = ChatCredentials(
            chat_id=data["chat"]["id"], access_token=data["accessToken"]
        )
        self.user_id = data["chat"].get("user_id") or self.user_id
        self.storage.save(credentials)
        logger.info("Created new chat", chat_id=credentials.chat_id)
        return credentials

    async def ensure_session(self) -> ChatCredentials:
        """Stored credentials, or those of a newly created chat."""
        credentials = self.storage.load()
        if credentials is not None:
            return credentials
        return await self.create_chat()

    def clear_credentials(self) -> None:
        self.storage.clear()

    async def get_transcript(self) -> dict[str, Any]:
        """
        Fetch the current chat and its messages.

        Raises:
            ApiError: If there is no session or the request fails
        """
        credentials = self.storage.load()
        if credentials is None:
            raise ApiError(ErrorCode.TOKEN_MISSING.value)

        response = await self.http_client.get(
            self.url(f"/chats/{credentials.chat_id}"),
            headers=self._auth_headers(credentials),
        )
        if response.status_code >= 400:
            code, message = error_from_response(response)
            raise ApiError(code, status_code=response.status_code, detail=message)
        return response.json()

    async def send_email(
        self, user_email: str, subject: str, conversation_summary: str
    ) -> None:
        """
        Answer an email request event with the user's address.

        Raises:
            ApiError: If there is no session or the server could not send the email
        """
        credentials = self.storage.load()
        if credentials is None:
            raise ApiError(ErrorCode.TOKEN_MISSING.value)

        response = await self.http_client.post(
            self.url(f"/chats/{credentials.chat_id}/send-email"),
            headers=self._auth_headers(credentials),
            json={
                "userEmail": user_email,
                "subject": subject,
                "conversationSummary": conversation_summary,
            },
        )
        if response.status_code >= 400:
            code, message = error_from_response(response)
            raise ApiError(code, status_code=response.status_code, detail=message)
