"""
Decoder for Responses API stream events.

Provider events are validated against a tagged union keyed on `type`. Only
text deltas produce text; lifecycle and structural events decode to nothing.
Unknown or malformed events also decode to nothing, so new provider event
types are ignored rather than breaking a stream.

decode_event is a pure function of a single event.
"""

from collections.abc import Mapping
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from dialogue_foundry.utils.logger import logger


class _ProviderEvent(BaseModel):
    model_config = ConfigDict(extra="allow")


class ResponseCreated(_ProviderEvent):
    type: Literal["response.created"]
    response: dict[str, Any]


class ResponseInProgress(_ProviderEvent):
    type: Literal["response.in_progress"]
    response: dict[str, Any]


class OutputTextDelta(_ProviderEvent):
    type: Literal["response.output_text.delta"]
    delta: str
    item_id: str | None = None
    output_index: int | None = None
    content_index: int | None = None


class OutputTextDone(_ProviderEvent):
    type: Literal["response.output_text.done"]
    text: str


class OutputItemAdded(_ProviderEvent):
    type: Literal["response.output_item.added"]
    item: dict[str, Any]


class ContentPartAdded(_ProviderEvent):
    type: Literal["response.content_part.added"]
    part: dict[str, Any]


class ContentPartDone(_ProviderEvent):
    type: Literal["response.content_part.done"]
    part: dict[str, Any]


class OutputItemDone(_ProviderEvent):
    type: Literal["response.output_item.done"]
    item: dict[str, Any]


class ResponseCompleted(_ProviderEvent):
    type: Literal["response.completed"]
    response: dict[str, Any]


class ResponseFailed(_ProviderEvent):
    type: Literal["response.failed"]
    response: dict[str, Any]


class StreamError(_ProviderEvent):
    type: Literal["error"]
    message: str
    code: str | None = None


ProviderEvent = Annotated[
    ResponseCreated
    | ResponseInProgress
    | OutputTextDelta
    | OutputTextDone
    | OutputItemAdded
    | ContentPartAdded
    | ContentPartDone
    | OutputItemDone
    | ResponseCompleted
    | ResponseFailed
    | StreamError,
    Field(discriminator="type"),
]

_provider_event_adapter: TypeAdapter[ProviderEvent] = TypeAdapter(ProviderEvent)


class DecodedEvent(BaseModel):
    """What one provider event means for the chat stream."""

    model_config = ConfigDict(frozen=True)

    text: str = ""
    completed: bool = False
    failed: bool = False
    error_message: str | None = None
    error_code: str | None = None


EMPTY = DecodedEvent()


def parse_event(event: Mapping[str, Any] | BaseModel) -> ProviderEvent | None:
    """
    Validate a raw provider event against the known variants.

    Args:
        event: Event as a dict, or an SDK model exposing model_dump()

    Returns:
        ProviderEvent | None: The typed event, or None if it is unknown or malformed
    """
    raw = event.model_dump() if isinstance(event, BaseModel) else event
    try:
        return _provider_event_adapter.validate_python(raw)
    except ValidationError:
        logger.debug(
            "[STREAM] Ignoring unrecognized provider event",
            event_type=raw.get("type") if isinstance(raw, Mapping) else None,
        )
        return None


def decode_event(event: Mapping[str, Any] | BaseModel) -> DecodedEvent:
    """
    Decode one provider event.

    Args:
        event: Raw provider event

    Returns:
        DecodedEvent: Text for deltas, terminal flags for completion or failure,
            and an empty result for everything else
    """
    parsed = parse_event(event)

    if isinstance(parsed, OutputTextDelta):
        return DecodedEvent(text=parsed.delta)

    if isinstance(parsed, ResponseCompleted):
        return DecodedEvent(completed=True)

    if isinstance(parsed, ResponseFailed):
        error = parsed.response.get("error") or {}
        if not isinstance(error, dict):
            error = {}
        return DecodedEvent(
            failed=True,
            error_message=error.get("message") or "Response failed",
            error_code=error.get("code"),
        )

    if isinstance(parsed, StreamError):
        return DecodedEvent(
            failed=True, error_message=parsed.message, error_code=parsed.code
        )

    # Lifecycle/structural events and anything unrecognized
    return EMPTY
