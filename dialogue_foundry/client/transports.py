"""
Stream transports for the Python chat client.

A transport opens one streamed turn and yields the raw event dicts the server
sends. NDJSON over a chunked POST is preferred; Server-Sent Events is the
fallback for environments where streamed fetch bodies are unavailable.
"""

import json
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import Any

import httpx
from pydantic import BaseModel

from dialogue_foundry.client.session import error_from_response
from dialogue_foundry.utils.logger import logger

SSE_DATA_PREFIX = "data:"


class StreamRequest(BaseModel):
    api_base_url: str
    chat_id: str
    access_token: str
    content: str
    timezone: str | None = None


class TransportConnectError(Exception):
    """The stream could not be opened; nothing has been received yet."""

    def __init__(self, message: str, original_error: Exception | None = None):
        self.message = message
        self.original_error = original_error
        super().__init__(self.message)


def error_event(code: str, message: str | None) -> dict[str, Any]:
    return {"type": "error", "error": message or code, "code": code}


class StreamTransport(ABC):
    """One way of carrying a streamed turn."""

    name: str

    def __init__(self, http_client: httpx.AsyncClient):
        self.http_client = http_client

    def is_supported(self) -> bool:
        return True

    @abstractmethod
    def _build_request(self, request: StreamRequest) -> httpx.Request:
        pass

    @abstractmethod
    def _parse_lines(self, lines: AsyncIterator[str]) -> AsyncIterator[dict[str, Any]]:
        pass

    async def stream(self, request: StreamRequest) -> AsyncIterator[dict[str, Any]]:
        """
        Open the stream and yield decoded events.

        HTTP error responses are yielded as a single error event so callers
        handle them like server-sent errors.

        Raises:
            TransportConnectError: If the connection could not be established or
                the body failed before the first event
        """
        http_request = self._build_request(request)
        try:
            response = await self.http_client.send(http_request, stream=True)
        except httpx.HTTPError as e:
            raise TransportConnectError(
                f"Failed to open {self.name} stream: {e}", original_error=e
            ) from e

        try:
            if response.status_code >= 400:
                await response.aread()
                code, message = error_from_response(response)
                logger.warning(
                    f"[{self.name}] Stream rejected",
                    status_code=response.status_code,
                    code=code,
                )
                yield error_event(code, message)
                return

            events = self._parse_lines(response.aiter_lines())
            try:
                first = await events.__anext__()
            except StopAsyncIteration:
                return
            except httpx.HTTPError as e:
                # Nothing was delivered yet, so the caller may still fall back
                raise TransportConnectError(
                    f"{self.name} stream failed before the first event: {e}",
                    original_error=e,
                ) from e

            yield first
            async for event in events:
                yield event
        finally:
            await response.aclose()


class NdjsonTransport(StreamTransport):
    """Newline-delimited JSON over a chunked POST response."""

    name = "ndjson"

    def __init__(self, http_client: httpx.AsyncClient, supports_streaming: bool = True):
        super().__init__(http_client)
        self.supports_streaming = supports_streaming

    def is_supported(self) -> bool:
        return self.supports_streaming

    def _build_request(self, request: StreamRequest) -> httpx.Request:
        body: dict[str, Any] = {"content": request.content}
        if request.timezone:
            body["timezone"] = request.timezone
        return self.http_client.build_request(
            "POST",
            f"{request.api_base_url.rstrip('/')}/chats/{request.chat_id}/stream",
            json=body,
            headers={
                "Authorization": f"Bearer {request.access_token}",
                "Accept": "application/x-ndjson",
            },
        )

    async def _parse_lines(
        self, lines: AsyncIterator[str]
    ) -> AsyncIterator[dict[str, Any]]:
        async for line in lines:
            line = line.strip()
            if not line:
                continue
            try:
                event = json.loads(line)
            except json.JSONDecodeError as e:
                logger.warning("[ndjson] Skipping unparseable line", error=str(e))
                continue
            if isinstance(event, dict):
                yield event


class SseTransport(StreamTransport):
    """Server-Sent Events, with the message and token in the query string."""

    name = "sse"

    def _build_request(self, request: StreamRequest) -> httpx.Request:
        params = {"content": request.content, "token": request.access_token}
        if request.timezone:
            params["timezone"] = request.timezone
        return self.http_client.build_request(
            "GET",
            f"{request.api_base_url.rstrip('/')}/chats/{request.chat_id}/stream/sse",
            params=params,
            headers={"Accept": "text/event-stream"},
        )

    async def _parse_lines(
        self, lines: AsyncIterator[str]
    ) -> AsyncIterator[dict[str, Any]]:
        data_lines: list[str] = []
        async for line in lines:
            line = line.rstrip("\r")
            if not line:
                # Blank line terminates the frame
                if data_lines:
                    event = self._decode("\n".join(data_lines))
                    data_lines = []
                    if event is not None:
                        yield event
                continue
            if line.startswith(":"):
                continue
            if line.startswith(SSE_DATA_PREFIX):
                data_lines.append(line[len(SSE_DATA_PREFIX) :].lstrip(" "))

        if data_lines:
            event = self._decode("\n".join(data_lines))
            if event is not None:
                yield event

    @staticmethod
    def _decode(data: str) -> dict[str, Any] | None:
        try:
            event = json.loads(data)
        except json.JSONDecodeError as e:
            logger.warning("[sse] Skipping unparseable event", error=str(e))
            return None
        return event if isinstance(event, dict) else None
