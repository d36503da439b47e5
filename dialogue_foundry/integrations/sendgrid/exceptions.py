"""Exceptions for the notification integration."""


class NotificationError(Exception):
    """Base exception for notification errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        original_error: Exception | None = None,
    ) -> None:
        """Initialize NotificationError.

        Args:
            message: Error message
            status_code: HTTP status code if applicable
            original_error: Original exception that caused this error
        """
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.original_error = original_error

    def __str__(self) -> str:
        if self.status_code:
            return f"Notification Error ({self.status_code}): {self.message}"
        return f"Notification Error: {self.message}"
