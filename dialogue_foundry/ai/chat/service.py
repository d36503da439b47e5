"""
Chat services: chat lifecycle and streamed turns.

A turn runs as an explicit state machine:

    SETUP -> PERSISTING_USER_MESSAGE -> RETRIEVING_CONTEXT -> STREAMING_MODEL
          -> PERSISTING_ASSISTANT_MESSAGE -> SIDE_CHANNEL_DETECTION -> DONE

with ERROR reachable from every state. SETUP runs in prepare_turn() before any
response is started, so bad input is rejected with a plain HTTP error and
nothing is persisted. The remaining states run inside stream_turn(), which
yields wire events and turns any failure into a terminal error event.
"""

import asyncio
import weakref
from collections.abc import AsyncIterator, Coroutine
from contextlib import aclosing
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import uuid4
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel

from dialogue_foundry.ai.base import AIProvider, ChatMessage
from dialogue_foundry.ai.chat.config import ChatSettings
from dialogue_foundry.ai.chat.email_detection import (
    EmailDetectionService,
    UserEmailCaptureService,
)
from dialogue_foundry.ai.chat.exceptions import ChatTurnError
from dialogue_foundry.ai.chat.schemas import (
    ChunkEvent,
    CreateChatResponse,
    DoneEvent,
    ErrorEvent,
    RequestEmailEvent,
    StreamEvent,
)
from dialogue_foundry.ai.openai.exceptions import ModelStreamError
from dialogue_foundry.ai.stream_decoder import decode_event
from dialogue_foundry.auth.service import AccessTokenService
from dialogue_foundry.constants import ErrorCode
from dialogue_foundry.db.chats.schemas import (
    ChatConfigRecord,
    ChatRecord,
    MessageRecord,
    MessageRole,
    NewChat,
    NewMessage,
)
from dialogue_foundry.db.chats.store import ChatStore
from dialogue_foundry.integrations.base import Retriever
from dialogue_foundry.integrations.pinecone.client import format_documents_as_context
from dialogue_foundry.integrations.sendgrid.service import (
    InquiryEmailService,
    recent_conversation,
)
from dialogue_foundry.utils.logger import logger, mask_email

STREAMING_ERROR_MESSAGE = "An error occurred while generating the response"


class TurnState(str, Enum):
    SETUP = "setup"
    PERSISTING_USER_MESSAGE = "persisting_user_message"
    RETRIEVING_CONTEXT = "retrieving_context"
    STREAMING_MODEL = "streaming_model"
    PERSISTING_ASSISTANT_MESSAGE = "persisting_assistant_message"
    SIDE_CHANNEL_DETECTION = "side_channel_detection"
    DONE = "done"
    ERROR = "error"


_TRANSITIONS: dict[TurnState, set[TurnState]] = {
    TurnState.SETUP: {TurnState.PERSISTING_USER_MESSAGE},
    TurnState.PERSISTING_USER_MESSAGE: {TurnState.RETRIEVING_CONTEXT},
    TurnState.RETRIEVING_CONTEXT: {TurnState.STREAMING_MODEL},
    TurnState.STREAMING_MODEL: {TurnState.PERSISTING_ASSISTANT_MESSAGE},
    TurnState.PERSISTING_ASSISTANT_MESSAGE: {TurnState.SIDE_CHANNEL_DETECTION},
    TurnState.SIDE_CHANNEL_DETECTION: {TurnState.DONE},
    TurnState.DONE: set(),
    TurnState.ERROR: set(),
}


class PreparedTurn(BaseModel):
    """A validated turn, ready to stream."""

    chat: ChatRecord
    config: ChatConfigRecord
    user_id: str
    content: str
    timezone: str

    @property
    def email_capture_enabled(self) -> bool:
        return bool(self.config.support_email) and not self.chat.user_email


class TurnRun:
    """Mutable state of one streamed turn."""

    def __init__(self, chat_id: str):
        self.chat_id = chat_id
        self.state = TurnState.SETUP
        self.full_content = ""
        self.failed_in: TurnState | None = None

    def advance(self, state: TurnState) -> None:
        if state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Invalid turn transition {self.state} -> {state}")
        logger.debug(
            "[STREAM] Turn state", chat_id=self.chat_id, state=state.value
        )
        self.state = state

    def fail(self) -> None:
        self.failed_in = self.state
        self.state = TurnState.ERROR


class ChatLockRegistry:
    """One asyncio.Lock per chat id, dropped once nothing holds it."""

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def lock(self, chat_id: str) -> asyncio.Lock:
        lock = self._locks.get(chat_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[chat_id] = lock
        return lock


def limit_messages_context(
    messages: list[ChatMessage], max_messages: int
) -> list[ChatMessage]:
    """
    Bound the messages sent to the model.

    Keeps every system message plus the most recent non-system messages, so
    the total does not exceed max_messages (unless system messages alone do).
    """
    if len(messages) <= max_messages:
        return messages

    system = [m for m in messages if m.role == MessageRole.SYSTEM.value]
    others = [m for m in messages if m.role != MessageRole.SYSTEM.value]
    room = max(max_messages - len(system), 0)
    return system + (others[-room:] if room else [])


def build_instructions(system_prompt: str, timezone: str, fallback_timezone: str) -> str:
    """Company system prompt followed by the user's local date and time."""
    try:
        tz = ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError):
        tz = ZoneInfo(fallback_timezone)
        timezone = fallback_timezone

    now = datetime.now(tz)
    time_line = f"The user's current local time is {now:%A, %B %d, %Y %H:%M} ({timezone})."
    return f"{system_prompt}\n\n{time_line}" if system_prompt else time_line


class ChatService:
    """Chat lifecycle operations outside the streaming path."""

    def __init__(
        self,
        store: ChatStore,
        token_service: AccessTokenService,
        inquiry: InquiryEmailService | None = None,
    ):
        self.store = store
        self.token_service = token_service
        self.inquiry = inquiry

    async def create_chat(
        self,
        company_id: str | None,
        user_id: str | None = None,
        name: str | None = None,
        welcome_message: str | None = None,
    ) -> CreateChatResponse:
        """
        Create a chat and issue its access token.

        Args:
            company_id: Company the widget is embedded for
            user_id: Widget user id; a fresh one is generated when missing
            name: Optional chat name
            welcome_message: Optional assistant greeting stored as the first message

        Returns:
            CreateChatResponse: The chat, its access token and any initial messages

        Raises:
            ChatTurnError: If the company is missing or unknown
        """
        if not company_id or not company_id.strip():
            raise ChatTurnError("Company ID is required", ErrorCode.INVALID_REQUEST)

        config = await self.store.get_chat_config(company_id)
        if config is None:
            raise ChatTurnError(
                "The company ID provided is not valid", ErrorCode.INVALID_COMPANY
            )

        if not user_id or user_id == "undefined":
            user_id = str(uuid4())

        chat = await self.store.create_chat(
            NewChat(
                user_id=user_id,
                company_id=company_id,
                name=name or "New Conversation",
            )
        )
        access_token = self.token_service.issue(chat.id, user_id)

        messages: list[MessageRecord] = []
        if welcome_message:
            try:
                messages.append(
                    await self.store.insert_message(
                        NewMessage(
                            chat_id=chat.id,
                            user_id=user_id,
                            role=MessageRole.ASSISTANT,
                            content=welcome_message,
                            sequence_number=1,
                        )
                    )
                )
            except Exception as e:
                logger.error(
                    "Failed to store welcome message", chat_id=chat.id, error=str(e)
                )

        logger.info("Chat created", chat_id=chat.id, company_id=company_id)
        return CreateChatResponse(chat=chat, access_token=access_token, messages=messages)

    async def get_transcript(self, chat_id: str) -> tuple[ChatRecord, list[MessageRecord]]:
        """
        Get a chat with its messages in sequence order.

        Raises:
            ChatTurnError: If the chat does not exist
        """
        chat = await self.store.get_chat(chat_id)
        if chat is None:
            raise ChatTurnError("Chat not found", ErrorCode.NOT_FOUND, status_code=404)
        return chat, await self.store.list_messages(chat_id)

    async def send_inquiry_email(
        self,
        chat_id: str,
        user_email: str | None,
        subject: str | None,
        conversation_summary: str | None,
    ) -> None:
        """
        Resolve an email capture: email the inquiry and record the user's address.

        Raises:
            ChatTurnError: On missing fields (400), unknown chat (404), or a failed send (500)
        """
        if not user_email or not subject or not conversation_summary:
            raise ChatTurnError(
                "userEmail, subject and conversationSummary are required",
                ErrorCode.INVALID_REQUEST,
            )

        chat = await self.store.get_chat(chat_id)
        if chat is None:
            raise ChatTurnError("Chat not found", ErrorCode.NOT_FOUND, status_code=404)

        config = await self.store.get_chat_config(chat.company_id)
        if config is None:
            raise ChatTurnError(
                "The company associated with this chat is not available",
                ErrorCode.INVALID_COMPANY,
            )

        sent = False
        if self.inquiry is not None:
            messages = await self.store.list_messages(chat_id)
            sent = await self.inquiry.send_inquiry_email(
                config=config,
                user_email=user_email,
                subject=subject,
                conversation_summary=conversation_summary,
                recent_messages=recent_conversation(messages),
            )
        if not sent:
            raise ChatTurnError(
                "Failed to send email", ErrorCode.SERVER_ERROR, status_code=500
            )

        await self.store.update_chat_email(chat_id, user_email)
        logger.info(
            "[EMAIL] Inquiry email sent for chat",
            chat_id=chat_id,
            user_email=mask_email(user_email),
        )


class ChatTurnService:
    """Runs streamed chat turns."""

    def __init__(
        self,
        store: ChatStore,
        provider: AIProvider,
        settings: ChatSettings,
        retriever: Retriever | None = None,
        email_detector: EmailDetectionService | None = None,
        email_capture: UserEmailCaptureService | None = None,
        locks: ChatLockRegistry | None = None,
    ):
        """
        Initialize the turn service.

        Args:
            store: Chat store
            provider: Model provider streaming replies
            settings: Chat settings
            retriever: Optional document retriever for context
            email_detector: Optional email request detection
            email_capture: Optional handling of emails typed by the user
            locks: Per-chat lock registry serializing turns of the same chat
        """
        self.store = store
        self.provider = provider
        self.settings = settings
        self.retriever = retriever
        self.email_detector = email_detector
        self.email_capture = email_capture
        self.locks = locks or ChatLockRegistry()
        self._background_tasks: set[asyncio.Task] = set()

    # ========== Setup ==========

    async def prepare_turn(
        self,
        chat_id: str | None,
        user_id: str | None,
        content: str | None,
        timezone: str | None = None,
    ) -> PreparedTurn:
        """
        Validate a turn and resolve its chat and company configuration.

        Raises:
            ChatTurnError: If a precondition fails; nothing has been persisted
        """
        if not chat_id:
            raise ChatTurnError("Chat ID is required", ErrorCode.INVALID_REQUEST)
        if not user_id or not content:
            raise ChatTurnError(
                "User authentication and message content are required",
                ErrorCode.INVALID_REQUEST,
            )

        chat = await self.store.get_chat(chat_id)
        if chat is None:
            raise ChatTurnError("Chat not found", ErrorCode.NOT_FOUND, status_code=404)
        if not chat.company_id:
            raise ChatTurnError(
                "This chat is not associated with any company",
                ErrorCode.INVALID_CHAT,
            )

        config = await self.store.get_chat_config(chat.company_id)
        if config is None:
            raise ChatTurnError(
                "The company associated with this chat is not available",
                ErrorCode.INVALID_COMPANY,
            )

        return PreparedTurn(
            chat=chat,
            config=config,
            user_id=user_id,
            content=content,
            timezone=timezone or self.settings.default_timezone,
        )

    # ========== Streaming ==========

    async def stream_turn(self, turn: PreparedTurn) -> AsyncIterator[StreamEvent]:
        """
        Run a prepared turn, yielding wire events.

        Yields chunk events as text arrives, at most one request_email event,
        then done. A failure at any point yields a single error event instead
        of done; text produced before a mid-stream failure is not persisted.

        Args:
            turn: Turn returned by prepare_turn()

        Yields:
            StreamEvent: chunk, request_email, done or error events
        """
        run = TurnRun(turn.chat.id)
        try:
            async with self.locks.lock(turn.chat.id):
                async for event in self._run_turn(turn, run):
                    yield event
        except Exception as e:
            run.fail()
            logger.error(
                "[STREAM] Turn failed",
                chat_id=turn.chat.id,
                failed_in=run.failed_in.value if run.failed_in else None,
                provider_code=getattr(e, "provider_code", None),
                error=str(e),
                error_type=type(e).__name__,
            )
            yield ErrorEvent(error=STREAMING_ERROR_MESSAGE, code=ErrorCode.STREAMING_ERROR.value)

    async def _run_turn(self, turn: PreparedTurn, run: TurnRun) -> AsyncIterator[StreamEvent]:
        chat_id = turn.chat.id

        run.advance(TurnState.PERSISTING_USER_MESSAGE)
        history = await self.store.list_messages(chat_id)
        next_sequence = await self.store.latest_sequence_number(chat_id) + 1
        user_message = await self.store.insert_message(
            NewMessage(
                chat_id=chat_id,
                user_id=turn.user_id,
                role=MessageRole.USER,
                content=turn.content,
                sequence_number=next_sequence,
            )
        )

        run.advance(TurnState.RETRIEVING_CONTEXT)
        context = await self._retrieve_context(turn)

        run.advance(TurnState.STREAMING_MODEL)
        conversation = [
            ChatMessage(role=m.role.value, content=m.content) for m in history
        ] + [ChatMessage(role=MessageRole.USER.value, content=turn.content)]
        model_messages = list(conversation)
        if context:
            model_messages.insert(0, ChatMessage(role=MessageRole.SYSTEM.value, content=context))
        model_messages = limit_messages_context(
            model_messages, self.settings.max_messages_per_chat
        )

        stream = self.provider.stream_response(
            model_messages,
            instructions=build_instructions(
                turn.config.system_prompt, turn.timezone, self.settings.default_timezone
            ),
            model=self.settings.model,
            temperature=self.settings.temperature,
        )
        async with aclosing(stream) as events:
            async for raw_event in events:
                decoded = decode_event(raw_event)
                if decoded.failed:
                    raise ModelStreamError(
                        decoded.error_message or "Response failed",
                        provider_code=decoded.error_code,
                    )
                if decoded.text:
                    run.full_content += decoded.text
                    yield ChunkEvent(content=decoded.text)
                if decoded.completed:
                    break

        run.advance(TurnState.PERSISTING_ASSISTANT_MESSAGE)
        await self.store.insert_message(
            NewMessage(
                chat_id=chat_id,
                user_id=turn.user_id,
                role=MessageRole.ASSISTANT,
                content=run.full_content or self.settings.fallback_response,
                sequence_number=user_message.sequence_number + 1,
            )
        )
        await self._prune(chat_id)

        run.advance(TurnState.SIDE_CHANNEL_DETECTION)
        if self.email_capture is not None and turn.email_capture_enabled:
            self._spawn(
                self.email_capture.process_user_message(
                    chat=turn.chat,
                    config=turn.config,
                    user_message=turn.content,
                    history=conversation,
                )
            )

        special_event = await self._detect_email_request(turn, run.full_content)
        if special_event is not None:
            yield special_event

        run.advance(TurnState.DONE)
        logger.info(
            "[STREAM] Turn completed",
            chat_id=chat_id,
            sequence_number=user_message.sequence_number,
            response_length=len(run.full_content),
        )
        yield DoneEvent(full_content=run.full_content)

    async def _retrieve_context(self, turn: PreparedTurn) -> str:
        index_name = turn.config.retrieval_index_name
        if self.retriever is None or not index_name:
            return ""

        try:
            documents = await self.retriever.search(
                index_name, turn.content, top_k=self.settings.retrieval_top_k
            )
        except Exception as e:
            logger.warning(
                "[STREAM] Document retrieval failed, continuing without context",
                chat_id=turn.chat.id,
                index_name=index_name,
                error=str(e),
            )
            return ""
        return format_documents_as_context(documents)

    async def _prune(self, chat_id: str) -> None:
        try:
            await self.store.prune_messages(chat_id, self.settings.max_messages_per_chat)
        except Exception as e:
            logger.warning("Failed to prune chat messages", chat_id=chat_id, error=str(e))

    async def _detect_email_request(
        self, turn: PreparedTurn, assistant_text: str
    ) -> RequestEmailEvent | None:
        if self.email_detector is None or not turn.email_capture_enabled or not assistant_text:
            return None

        try:
            return await asyncio.wait_for(
                self.email_detector.detect_email_request(assistant_text),
                timeout=self.settings.email_detection_timeout_seconds,
            )
        except Exception as e:
            logger.warning(
                "[EMAIL] Email detection failed (non-critical)",
                chat_id=turn.chat.id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

    # ========== Background work ==========

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.create_task(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def drain_background_tasks(self) -> None:
        """Wait for scheduled side-channel work, e.g. on shutdown."""
        if self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)
