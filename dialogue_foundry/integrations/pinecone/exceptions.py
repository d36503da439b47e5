"""Exceptions for the retrieval integration."""


class RetrievalError(Exception):
    """Base exception for document retrieval errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        original_error: Exception | None = None,
    ) -> None:
        """Initialize RetrievalError.

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
            return f"Retrieval Error ({self.status_code}): {self.message}"
        return f"Retrieval Error: {self.message}"


class IndexNotFoundError(RetrievalError):
    """The requested index does not exist."""

    def __init__(self, index_name: str) -> None:
        super().__init__(f"Index not found: {index_name}", status_code=404)
        self.index_name = index_name
