"""
Wire encodings for chat streams.

Both encodings carry the same event vocabulary; they differ only in framing,
keep-alive frames and the name of the start event.
"""

import json
from abc import ABC, abstractmethod
from typing import Literal

from pydantic import BaseModel

from dialogue_foundry.ai.chat.schemas import RequestEmailEvent, StartEvent, StreamEvent

# Large comment prelude so proxies that buffer the first few KiB flush early
SSE_PRELUDE_BYTES = 2048

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # Disable nginx buffering
}


class SSEEvent(BaseModel):
    """Server-Sent Event wrapper for type-safe SSE formatting.

    Follows the W3C Server-Sent Events specification:
    https://html.spec.whatwg.org/multipage/server-sent-events.html
    """

    data: str
    id: str | None = None

    def format(self) -> str:
        """Format as SSE protocol string.

        Returns:
            str: Properly formatted SSE event with trailing newlines
        """
        lines = []
        if self.id:
            lines.append(f"id: {self.id}")
        lines.append(f"data: {self.data}")
        lines.append("")  # Empty line as event delimiter
        return "\n".join(lines) + "\n"


class StreamEncoder(ABC):
    """Frames stream events for one wire transport."""

    media_type: str
    start_type: Literal["start", "connected"]

    def prelude(self) -> str | None:
        """Bytes written before the start event, if any."""
        return None

    def start(self) -> str:
        return self.encode(StartEvent(type=self.start_type))

    @abstractmethod
    def encode(self, event: StreamEvent) -> str:
        pass

    @abstractmethod
    def heartbeat(self) -> str:
        """Keep-alive frame that clients ignore."""
        pass


class NdjsonEncoder(StreamEncoder):
    """One JSON object per line over a chunked response."""

    media_type = "application/x-ndjson"
    start_type = "start"

    def encode(self, event: StreamEvent) -> str:
        return json.dumps(event.to_wire()) + "\n"

    def heartbeat(self) -> str:
        return "\n"


class SseEncoder(StreamEncoder):
    """Server-Sent Events with `data: <json>` frames."""

    media_type = "text/event-stream"
    start_type = "connected"

    def prelude(self) -> str:
        return ":" + " " * SSE_PRELUDE_BYTES + "\n\n"

    def encode(self, event: StreamEvent) -> str:
        # request_email frames carry their event id
        event_id = event.id if isinstance(event, RequestEmailEvent) else None
        return SSEEvent(data=json.dumps(event.to_wire()), id=event_id).format()

    def heartbeat(self) -> str:
        return ":\n\n"
