"""
Client-side errors, categories and user-facing messages.
"""

from enum import Enum

from dialogue_foundry.constants import ErrorCode


class ErrorCategory(str, Enum):
    """Error categories for UI handling."""

    AUTHENTICATION = "authentication"
    CONNECTION = "connection"
    SERVER = "server"
    RATE_LIMIT = "rate_limit"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


_CATEGORIES: dict[str, ErrorCategory] = {
    ErrorCode.TOKEN_INVALID.value: ErrorCategory.AUTHENTICATION,
    ErrorCode.TOKEN_EXPIRED.value: ErrorCategory.AUTHENTICATION,
    ErrorCode.TOKEN_MISSING.value: ErrorCategory.AUTHENTICATION,
    ErrorCode.CHAT_ACCESS_DENIED.value: ErrorCategory.AUTHENTICATION,
    ErrorCode.CONNECTION_ERROR.value: ErrorCategory.CONNECTION,
    ErrorCode.NETWORK_ERROR.value: ErrorCategory.CONNECTION,
    ErrorCode.SERVER_ERROR.value: ErrorCategory.SERVER,
    ErrorCode.STREAMING_ERROR.value: ErrorCategory.SERVER,
    ErrorCode.NOT_FOUND.value: ErrorCategory.SERVER,
    ErrorCode.PARSE_ERROR.value: ErrorCategory.SERVER,
    ErrorCode.RECONNECT_LIMIT.value: ErrorCategory.RATE_LIMIT,
    ErrorCode.TIMEOUT_ERROR.value: ErrorCategory.TIMEOUT,
}

_MESSAGES: dict[ErrorCategory, str] = {
    ErrorCategory.AUTHENTICATION: "Your session has expired. Please refresh the page to continue.",
    ErrorCategory.CONNECTION: (
        "Unable to connect to the chat service. "
        "Please check your internet connection and try again."
    ),
    ErrorCategory.SERVER: (
        "Our server is having trouble processing your request. "
        "Please try again in a moment."
    ),
    ErrorCategory.RATE_LIMIT: (
        "You've made too many requests. Please wait a moment before trying again."
    ),
    ErrorCategory.TIMEOUT: "The request took too long to complete. Please try again.",
    ErrorCategory.UNKNOWN: "Something went wrong. Please try again.",
}


def categorize_error(code: str) -> ErrorCategory:
    return _CATEGORIES.get(str(code), ErrorCategory.UNKNOWN)


def get_friendly_error_message(code: str) -> str:
    """User-facing message for an error code."""
    if code == ErrorCode.TOKEN_EXPIRED.value:
        return "Your session has expired. Starting a new chat session."
    return _MESSAGES[categorize_error(code)]


class ServiceError(Exception):
    """Base class for errors surfaced by the chat client."""

    def __init__(
        self,
        code: str,
        recoverable: bool = False,
        status_code: int | None = None,
        detail: str | None = None,
    ):
        """
        Args:
            code: Error code, usually an ErrorCode value
            recoverable: Whether the client will retry on its own
            status_code: HTTP status, when the error came from a response
            detail: Server-provided message, kept for logging
        """
        self.code = code
        self.recoverable = recoverable
        self.status_code = status_code
        self.detail = detail
        self.message = get_friendly_error_message(code)
        super().__init__(self.message)

    @property
    def category(self) -> ErrorCategory:
        return categorize_error(self.code)


class ApiError(ServiceError):
    """A non-streaming API call failed."""

    pass


class StreamingError(ServiceError):
    """A streamed turn failed."""

    pass
