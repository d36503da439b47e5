"""
Streaming chat client with reconnect and transport fallback.

`ChatStreamClient.send_message` resolves a chat session, streams one turn and
dispatches its events to callbacks. Token errors recreate the chat and resend
the same message, bounded by `ReconnectConfig`.
"""

import asyncio
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import aclosing
from enum import Enum
from typing import Any

import httpx
from pydantic import BaseModel, Field

from dialogue_foundry.client.errors import ServiceError, StreamingError
from dialogue_foundry.client.session import ChatApiClient, ChatCredentials
from dialogue_foundry.client.transports import (
    StreamRequest,
    StreamTransport,
    TransportConnectError,
)
from dialogue_foundry.constants import (
    CHAT_NOT_FOUND_ERROR_CODES,
    TOKEN_ERROR_CODES,
    ErrorCode,
)
from dialogue_foundry.utils.logger import logger

ChunkCallback = Callable[[str], None]
CompleteCallback = Callable[[str], None]
ErrorCallback = Callable[[ServiceError], None]
SpecialEventCallback = Callable[[dict[str, Any]], None]


class StreamStatus(str, Enum):
    IDLE = "idle"
    RESOLVING_SESSION = "resolving_session"
    SENDING = "sending"
    RECEIVING = "receiving"
    COMPLETE = "complete"
    ERROR = "error"
    RETRYING = "retrying"
    CANCELLED = "cancelled"


class ReconnectConfig(BaseModel):
    """Bounds on recreate-and-resend after token or chat errors."""

    max_reconnect_attempts: int = Field(default=3, ge=0)
    reconnect_reset_seconds: float = Field(default=600.0, gt=0)
    initial_delay_seconds: float = Field(default=0.5, ge=0)
    backoff_multiplier: float = Field(default=2.0, ge=1)
    max_delay_seconds: float = Field(default=5.0, ge=0)


class _TurnCallbacks(BaseModel):
    on_chunk: ChunkCallback
    on_complete: CompleteCallback
    on_error: ErrorCallback
    on_special_event: SpecialEventCallback | None = None


class _RetryTurn(Exception):
    """The stream ended with an error that is fixed by a new chat."""

    def __init__(self, code: str):
        self.code = code
        super().__init__(code)


class ChatStreamClient:
    """Sends user messages and consumes the streamed reply."""

    def __init__(
        self,
        api: ChatApiClient,
        primary: StreamTransport,
        fallback: StreamTransport | None = None,
        reconnect_config: ReconnectConfig | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        on_status_change: Callable[[StreamStatus], None] | None = None,
    ):
        """
        Args:
            api: Client for chat creation and credential storage
            primary: Preferred transport (NDJSON)
            fallback: Transport used when the primary is unsupported or fails to connect
            reconnect_config: Reconnect bounds
            sleep: Awaitable sleep, injectable for tests
            clock: Monotonic clock, injectable for tests
            on_status_change: Called on every status transition
        """
        self.api = api
        self.primary = primary
        self.fallback = fallback
        self.reconnect_config = reconnect_config or ReconnectConfig()
        self.sleep = sleep
        self.clock = clock
        self.on_status_change = on_status_change

        self.status = StreamStatus.IDLE
        self.reconnect_attempts = 0
        self._last_reconnect_at: float | None = None
        self._task: asyncio.Task | None = None
        self._cancel_requested = False

    def _set_status(self, status: StreamStatus) -> None:
        if status == self.status:
            return
        self.status = status
        if self.on_status_change:
            self.on_status_change(status)

    def reconnect_delay(self, attempt: int) -> float:
        """Backoff before reconnect attempt `attempt` (1-based)."""
        config = self.reconnect_config
        delay = config.initial_delay_seconds * config.backoff_multiplier ** (attempt - 1)
        return min(delay, config.max_delay_seconds)

    async def send_message(
        self,
        content: str,
        on_chunk: ChunkCallback,
        on_complete: CompleteCallback,
        on_error: ErrorCallback,
        on_special_event: SpecialEventCallback | None = None,
        timezone: str | None = None,
    ) -> None:
        """
        Stream one turn, invoking callbacks as events arrive.

        Exactly one of `on_complete` or a terminal `on_error` is called, unless
        the turn is cancelled, in which case neither is.

        Args:
            content: The user's message
            on_chunk: Called with each text chunk
            on_complete: Called with the full response text
            on_error: Called with terminal errors and with recoverable chat errors
            on_special_event: Called with side-channel events such as `request_email`
            timezone: IANA timezone of the user
        """
        callbacks = _TurnCallbacks(
            on_chunk=on_chunk,
            on_complete=on_complete,
            on_error=on_error,
            on_special_event=on_special_event,
        )
        self._cancel_requested = False
        self._task = asyncio.create_task(
            self._send_with_recovery(content, timezone, callbacks)
        )
        try:
            await self._task
        except asyncio.CancelledError:
            if not self._cancel_requested:
                raise
            self._set_status(StreamStatus.CANCELLED)
            logger.info("[STREAM] Turn cancelled")
        finally:
            self._task = None

    def cancel(self) -> None:
        """Abort the in-flight turn. No callback is invoked."""
        if self._task is not None and not self._task.done():
            self._cancel_requested = True
            self._task.cancel()

    async def _send_with_recovery(
        self, content: str, timezone: str | None, callbacks: _TurnCallbacks
    ) -> None:
        while True:
            try:
                self._set_status(StreamStatus.RESOLVING_SESSION)
                credentials = await self.api.ensure_session()
                await self._run_stream(credentials, content, timezone, callbacks)
                return
            except _RetryTurn as retry:
                if not await self._schedule_reconnect(retry.code):
                    self._surface(
                        StreamingError(ErrorCode.RECONNECT_LIMIT.value), callbacks
                    )
                    return
            except ServiceError as e:
                self._surface(e, callbacks)
                return

    def _surface(self, error: ServiceError, callbacks: _TurnCallbacks) -> None:
        logger.error(
            "[STREAM] Turn failed",
            code=error.code,
            status_code=error.status_code,
            detail=error.detail,
        )
        self._set_status(StreamStatus.ERROR)
        callbacks.on_error(error)

    async def _schedule_reconnect(self, code: str) -> bool:
        """Count and wait out one reconnect attempt. False once the cap is reached."""
        config = self.reconnect_config
        now = self.clock()
        if (
            self._last_reconnect_at is not None
            and now - self._last_reconnect_at > config.reconnect_reset_seconds
        ):
            self.reconnect_attempts = 0

        if self.reconnect_attempts >= config.max_reconnect_attempts:
            logger.warning(
                "[RECONNECT] Reconnect limit reached",
                attempts=self.reconnect_attempts,
                code=code,
            )
            return False

        self.reconnect_attempts += 1
        self._last_reconnect_at = now
        delay = self.reconnect_delay(self.reconnect_attempts)
        self._set_status(StreamStatus.RETRYING)
        logger.info(
            "[RECONNECT] Recreating chat and resending message",
            attempt=self.reconnect_attempts,
            max_attempts=config.max_reconnect_attempts,
            delay_seconds=delay,
            code=code,
        )
        await self.sleep(delay)
        return True

    async def _run_stream(
        self,
        credentials: ChatCredentials,
        content: str,
        timezone: str | None,
        callbacks: _TurnCallbacks,
    ) -> None:
        request = StreamRequest(
            api_base_url=self.api.config.api_base_url,
            chat_id=credentials.chat_id,
            access_token=credentials.access_token,
            content=content,
            timezone=timezone,
        )
        accumulated: list[str] = []
        self._set_status(StreamStatus.SENDING)

        try:
            async with aclosing(self._open_events(request)) as events:
                async for event in events:
                    if self._dispatch(event, accumulated, callbacks):
                        return
        except httpx.TimeoutException as e:
            raise StreamingError(ErrorCode.TIMEOUT_ERROR.value, detail=str(e)) from e
        except httpx.HTTPError as e:
            raise StreamingError(ErrorCode.CONNECTION_ERROR.value, detail=str(e)) from e

        raise StreamingError(
            ErrorCode.CONNECTION_ERROR.value, detail="Stream ended before completion"
        )

    def _dispatch(
        self,
        event: dict[str, Any],
        accumulated: list[str],
        callbacks: _TurnCallbacks,
    ) -> bool:
        """Handle one event. True once the turn is complete."""
        event_type = event.get("type")

        if event_type in ("start", "connected"):
            self._set_status(StreamStatus.RECEIVING)
            return False

        if event_type == "chunk":
            chunk = event.get("content") or ""
            accumulated.append(chunk)
            self._set_status(StreamStatus.RECEIVING)
            callbacks.on_chunk(chunk)
            return False

        if event_type == "done":
            full_content = event.get("fullContent")
            if not isinstance(full_content, str):
                full_content = "".join(accumulated)
            self.reconnect_attempts = 0
            self._set_status(StreamStatus.COMPLETE)
            callbacks.on_complete(full_content)
            return True

        if event_type == "error" or "error" in event:
            self._handle_error_event(event, callbacks)
            return False

        if callbacks.on_special_event:
            callbacks.on_special_event(event)
        return False

    def _handle_error_event(
        self, event: dict[str, Any], callbacks: _TurnCallbacks
    ) -> None:
        code = str(event.get("code") or ErrorCode.UNKNOWN_ERROR.value)

        if code in TOKEN_ERROR_CODES:
            logger.info("[STREAM] Token rejected, starting a new chat", code=code)
            self.api.clear_credentials()
            raise _RetryTurn(code)

        if code in CHAT_NOT_FOUND_ERROR_CODES:
            logger.warning("[STREAM] Chat no longer available, starting a new chat", code=code)
            self.api.clear_credentials()
            callbacks.on_error(
                StreamingError(code, recoverable=True, detail=event.get("error"))
            )
            raise _RetryTurn(code)

        raise StreamingError(code, detail=event.get("error"))

    async def _open_events(
        self, request: StreamRequest
    ) -> AsyncIterator[dict[str, Any]]:
        """Events from the first transport that connects."""
        transports = [
            transport
            for transport in (self.primary, self.fallback)
            if transport is not None and transport.is_supported()
        ]
        if not transports:
            raise StreamingError(
                ErrorCode.CONNECTION_ERROR.value, detail="No supported stream transport"
            )

        for index, transport in enumerate(transports):
            stream = transport.stream(request)
            try:
                first = await stream.__anext__()
            except StopAsyncIteration:
                return
            except TransportConnectError as e:
                await stream.aclose()
                if index + 1 < len(transports):
                    logger.warning(
                        "[STREAM] Transport failed to connect, falling back",
                        transport=transport.name,
                        error=e.message,
                    )
                    continue
                raise StreamingError(
                    ErrorCode.CONNECTION_ERROR.value, detail=e.message
                ) from e

            try:
                yield first
                async for event in stream:
                    yield event
            finally:
                await stream.aclose()
            return


