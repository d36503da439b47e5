"""Model provider errors raised by the OpenAI integration."""


class OpenAIError(Exception):
    """Base exception for OpenAI API errors."""

    def __init__(self, message: str, original_error: Exception | None = None):
        """
        Args:
            message: Error message
            original_error: Original exception that caused this error
        """
        super().__init__(message)
        self.message = message
        self.original_error = original_error


class OpenAIAuthenticationError(OpenAIError):
    """The OpenAI client could not be created with the configured key."""


class OpenAIContentGenerationError(OpenAIError):
    """A non-streamed function-call request failed or returned unusable arguments."""

    def __init__(
        self,
        message: str,
        original_error: Exception | None = None,
        tool_names: list[str] | None = None,
    ):
        super().__init__(message, original_error)
        self.tool_names = tool_names or []


class ModelStreamError(OpenAIError):
    """
    A response stream failed to open, broke mid-way, or reported failure.

    Text already streamed to the client is not persisted when this is raised.
    """

    def __init__(
        self,
        message: str,
        original_error: Exception | None = None,
        provider_code: str | None = None,
    ):
        super().__init__(message, original_error)
        self.provider_code = provider_code
