"""Chat turn exceptions."""

from dialogue_foundry.constants import ErrorCode


class ChatTurnError(Exception):
    """A chat operation was rejected before any side effects happened."""

    def __init__(self, message: str, code: ErrorCode, status_code: int = 400):
        """Initialize ChatTurnError.

        Args:
            message: Error message safe to show to the client
            code: Error code sent to the client
            status_code: HTTP status the route responds with
        """
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code

    def to_detail(self) -> dict[str, str]:
        return {"error": self.message, "code": self.code.value}
