"""Abstract collaborators consumed by the chat pipeline."""

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel


class EmailRecipient(BaseModel):
    email: str
    name: str | None = None


class Retriever(ABC):
    """Searches a document index for passages relevant to a query."""

    @abstractmethod
    async def search(
        self,
        index_name: str,
        query: str,
        top_k: int = 5,
        filter: dict[str, Any] | None = None,
    ) -> list[str]:
        """
        Search an index.

        Args:
            index_name: Index to search
            query: Free-text query
            top_k: Maximum number of documents to return
            filter: Optional metadata filter

        Returns:
            list[str]: Document texts, most relevant first

        Raises:
            RetrievalError: If the search fails
        """
        pass


class Notifier(ABC):
    """Sends templated notification emails."""

    @abstractmethod
    async def send(
        self,
        template_id: str,
        to: list[EmailRecipient],
        data: dict[str, Any],
        cc: list[EmailRecipient] | None = None,
    ) -> bool:
        """
        Send a templated email.

        Never raises; failures are logged and reported as False.

        Args:
            template_id: Template to render
            to: Primary recipients
            data: Template variables
            cc: Copied recipients

        Returns:
            bool: True if the provider accepted the email
        """
        pass
