"""
Constants shared by the chat server and the Python chat client.

The error codes travel over the wire in `error` stream events and in the
`detail` of HTTP error responses, so both sides must agree on them.
"""

from enum import Enum


class ErrorCode(str, Enum):
    """Error codes carried in error events and HTTP error details."""

    # Authentication
    TOKEN_MISSING = "TOKEN_MISSING"
    TOKEN_INVALID = "TOKEN_INVALID"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    CHAT_ACCESS_DENIED = "CHAT_ACCESS_DENIED"

    # Request / configuration
    INVALID_REQUEST = "INVALID_REQUEST"
    NOT_FOUND = "NOT_FOUND"
    INVALID_CHAT = "INVALID_CHAT"
    INVALID_COMPANY = "INVALID_COMPANY"

    # Streaming and transport
    STREAMING_ERROR = "STREAMING_ERROR"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT_ERROR = "TIMEOUT_ERROR"
    SERVER_ERROR = "SERVER_ERROR"
    PARSE_ERROR = "PARSE_ERROR"

    # Client recovery
    RECONNECT_LIMIT = "RECONNECT_LIMIT"
    CHAT_CREATION_FAILED = "CHAT_CREATION_FAILED"

    UNKNOWN_ERROR = "UNKNOWN_ERROR"


# A chat-scoped token used against another chat is as useless as an invalid one
TOKEN_ERROR_CODES = frozenset(
    {
        ErrorCode.TOKEN_MISSING,
        ErrorCode.TOKEN_INVALID,
        ErrorCode.TOKEN_EXPIRED,
        ErrorCode.CHAT_ACCESS_DENIED,
    }
)

CHAT_NOT_FOUND_ERROR_CODES = frozenset(
    {ErrorCode.NOT_FOUND, ErrorCode.INVALID_CHAT, ErrorCode.INVALID_COMPANY}
)
