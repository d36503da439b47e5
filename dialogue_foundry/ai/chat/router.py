"""FastAPI router for chat creation, transcripts, email capture and streamed turns."""

import asyncio
from collections.abc import AsyncIterator
from contextlib import suppress
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import StreamingResponse

from dialogue_foundry.ai.chat.config import ChatSettings
from dialogue_foundry.ai.chat.dependencies import (
    get_chat_service,
    get_chat_settings_dependency,
    get_turn_service,
)
from dialogue_foundry.ai.chat.encoding import (
    STREAM_HEADERS,
    NdjsonEncoder,
    SseEncoder,
    StreamEncoder,
)
from dialogue_foundry.ai.chat.exceptions import ChatTurnError
from dialogue_foundry.ai.chat.schemas import (
    ChatTranscriptResponse,
    CreateChatRequest,
    ErrorEvent,
    SendEmailRequest,
    SendEmailResponse,
    StreamEvent,
    StreamMessageRequest,
)
from dialogue_foundry.ai.chat.service import (
    STREAMING_ERROR_MESSAGE,
    ChatService,
    ChatTurnService,
)
from dialogue_foundry.auth.dependencies import get_chat_identity
from dialogue_foundry.auth.schemas import ChatIdentity
from dialogue_foundry.constants import ErrorCode
from dialogue_foundry.utils.logger import logger

router = APIRouter(prefix="/chats", tags=["Chat"])


def _http_error(error: ChatTurnError) -> HTTPException:
    return HTTPException(status_code=error.status_code, detail=error.to_detail())


async def encode_stream(
    encoder: StreamEncoder,
    events: AsyncIterator[StreamEvent],
    heartbeat_interval: float,
) -> AsyncIterator[str]:
    """
    Frame turn events for the wire, writing keep-alives while the model is quiet.

    Args:
        encoder: Wire encoding
        events: Events of one turn
        heartbeat_interval: Seconds of silence before a keep-alive frame

    Yields:
        str: Encoded frames
    """
    prelude = encoder.prelude()
    if prelude:
        yield prelude
    yield encoder.start()

    event_iter = events.__aiter__()
    next_event_task: asyncio.Task | None = None
    try:
        next_event_task = asyncio.create_task(event_iter.__anext__())
        while True:
            done, _ = await asyncio.wait({next_event_task}, timeout=heartbeat_interval)

            if next_event_task not in done:
                # Timeout waiting for the next event: keep proxies from closing the connection
                yield encoder.heartbeat()
                continue

            try:
                event = next_event_task.result()
            except StopAsyncIteration:
                break

            # Prefetch the next event for subsequent iterations
            next_event_task = asyncio.create_task(event_iter.__anext__())
            yield encoder.encode(event)

    except Exception as e:
        logger.error(
            "[STREAM] Error in chat stream", error=str(e), error_type=type(e).__name__
        )
        yield encoder.encode(
            ErrorEvent(error=STREAMING_ERROR_MESSAGE, code=ErrorCode.STREAMING_ERROR.value)
        )
    finally:
        if next_event_task is not None and not next_event_task.done():
            next_event_task.cancel()
            with suppress(asyncio.CancelledError):
                await next_event_task
        if hasattr(event_iter, "aclose"):
            await event_iter.aclose()


async def _start_stream(
    encoder: StreamEncoder,
    turn_service: ChatTurnService,
    settings: ChatSettings,
    chat_id: str,
    identity: ChatIdentity,
    content: str | None,
    timezone: str | None,
) -> StreamingResponse:
    try:
        turn = await turn_service.prepare_turn(
            chat_id=chat_id,
            user_id=identity.user_id,
            content=content,
            timezone=timezone,
        )
    except ChatTurnError as e:
        logger.warning(
            "[STREAM] Turn rejected", chat_id=chat_id, code=e.code.value, error=e.message
        )
        raise _http_error(e) from e

    logger.info(
        "[STREAM] Starting turn",
        chat_id=chat_id,
        transport=encoder.media_type,
        content_length=len(turn.content),
    )
    return StreamingResponse(
        encode_stream(
            encoder,
            turn_service.stream_turn(turn),
            settings.heartbeat_interval_seconds,
        ),
        media_type=encoder.media_type,
        headers=STREAM_HEADERS,
    )


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_chat(
    request: CreateChatRequest,
    chat_service: Annotated[ChatService, Depends(get_chat_service)],
) -> dict[str, Any]:
    """
    Create a chat and return its access token.

    Args:
        request: Company, optional user id, name and welcome message
        chat_service: Chat service dependency

    Returns:
        dict: `{chat, accessToken, messages}`
    """
    try:
        response = await chat_service.create_chat(
            company_id=request.company_id,
            user_id=request.user_id,
            name=request.name,
            welcome_message=request.welcome_message,
        )
    except ChatTurnError as e:
        raise _http_error(e) from e
    return response.model_dump(by_alias=True, mode="json")


@router.get("/{chat_id}")
async def get_chat(
    chat_id: str,
    identity: Annotated[ChatIdentity, Depends(get_chat_identity)],
    chat_service: Annotated[ChatService, Depends(get_chat_service)],
) -> ChatTranscriptResponse:
    """Get a chat and its messages ordered by sequence number."""
    try:
        chat, messages = await chat_service.get_transcript(chat_id)
    except ChatTurnError as e:
        raise _http_error(e) from e
    return ChatTranscriptResponse(chat=chat, messages=messages)


@router.post("/{chat_id}/send-email")
async def send_email(
    chat_id: str,
    request: SendEmailRequest,
    identity: Annotated[ChatIdentity, Depends(get_chat_identity)],
    chat_service: Annotated[ChatService, Depends(get_chat_service)],
) -> SendEmailResponse:
    """Send the user's inquiry to the company support team and record their email."""
    try:
        await chat_service.send_inquiry_email(
            chat_id=chat_id,
            user_email=request.user_email,
            subject=request.subject,
            conversation_summary=request.conversation_summary,
        )
    except ChatTurnError as e:
        raise _http_error(e) from e
    return SendEmailResponse(success=True, message="Email sent successfully")


@router.post("/{chat_id}/stream")
async def stream_chat(
    chat_id: str,
    identity: Annotated[ChatIdentity, Depends(get_chat_identity)],
    turn_service: Annotated[ChatTurnService, Depends(get_turn_service)],
    settings: Annotated[ChatSettings, Depends(get_chat_settings_dependency)],
    request: StreamMessageRequest | None = None,
) -> StreamingResponse:
    """
    Stream a turn as newline-delimited JSON over a chunked response.

    Returns:
        StreamingResponse: `application/x-ndjson` stream of turn events
    """
    request = request or StreamMessageRequest()
    return await _start_stream(
        NdjsonEncoder(),
        turn_service,
        settings,
        chat_id,
        identity,
        request.content,
        request.timezone,
    )


@router.get("/{chat_id}/stream/sse")
async def stream_chat_sse(
    chat_id: str,
    identity: Annotated[ChatIdentity, Depends(get_chat_identity)],
    turn_service: Annotated[ChatTurnService, Depends(get_turn_service)],
    settings: Annotated[ChatSettings, Depends(get_chat_settings_dependency)],
    content: Annotated[str | None, Query()] = None,
    timezone: Annotated[str | None, Query()] = None,
) -> StreamingResponse:
    """
    Stream a turn via Server-Sent Events for EventSource clients.

    The message and token travel in the query string since EventSource cannot
    send a body or headers.
    """
    return await _start_stream(
        SseEncoder(), turn_service, settings, chat_id, identity, content, timezone
    )


@router.post("/{chat_id}/stream/sse")
async def stream_chat_sse_post(
    chat_id: str,
    identity: Annotated[ChatIdentity, Depends(get_chat_identity)],
    turn_service: Annotated[ChatTurnService, Depends(get_turn_service)],
    settings: Annotated[ChatSettings, Depends(get_chat_settings_dependency)],
    request: StreamMessageRequest | None = None,
) -> StreamingResponse:
    """Stream a turn via Server-Sent Events, with the message in the body."""
    request = request or StreamMessageRequest()
    return await _start_stream(
        SseEncoder(),
        turn_service,
        settings,
        chat_id,
        identity,
        request.content,
        request.timezone,
    )
