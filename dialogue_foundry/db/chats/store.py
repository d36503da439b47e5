"""
Abstract chat store.

The streaming pipeline only talks to this interface so it can run against
PostgreSQL, the in-memory store, or the caching decorator without change.
"""

from abc import ABC, abstractmethod

from dialogue_foundry.db.chats.schemas import (
    ChatConfigRecord,
    ChatRecord,
    MessageRecord,
    NewChat,
    NewMessage,
)


class ChatStore(ABC):
    """Durable storage for chats, messages and chat configuration."""

    @abstractmethod
    async def get_chat(self, chat_id: str) -> ChatRecord | None:
        """
        Get a chat by id.

        Args:
            chat_id: Chat UUID

        Returns:
            ChatRecord | None: The chat, or None if it does not exist
        """
        pass

    @abstractmethod
    async def get_chat_config(self, company_id: str) -> ChatConfigRecord | None:
        """
        Get a company's chat configuration.

        Args:
            company_id: Company identifier

        Returns:
            ChatConfigRecord | None: The configuration, or None for an unknown company
        """
        pass

    @abstractmethod
    async def create_chat(self, new_chat: NewChat) -> ChatRecord:
        """Create a chat and return it."""
        pass

    @abstractmethod
    async def list_messages(self, chat_id: str) -> list[MessageRecord]:
        """
        List a chat's messages.

        Returns:
            list[MessageRecord]: Messages ordered by sequence_number ascending
        """
        pass

    @abstractmethod
    async def latest_sequence_number(self, chat_id: str) -> int:
        """Highest sequence number in the chat, or 0 if it has no messages."""
        pass

    @abstractmethod
    async def insert_message(self, new_message: NewMessage) -> MessageRecord:
        """
        Insert a message.

        Raises:
            SequenceConflictError: If the chat already has a message with that sequence number
        """
        pass

    @abstractmethod
    async def update_chat_email(self, chat_id: str, email: str) -> ChatRecord | None:
        """
        Record the user's email on a chat.

        The email is only written when the chat has none yet; an existing email is
        never replaced or cleared.

        Returns:
            ChatRecord | None: The chat after the update, or None if it does not exist
        """
        pass

    @abstractmethod
    async def prune_messages(self, chat_id: str, keep: int) -> int:
        """
        Delete the oldest messages so at most `keep` remain.

        Returns:
            int: Number of messages deleted
        """
        pass


class SequenceConflictError(Exception):
    """A message with the same (chat_id, sequence_number) already exists."""

    def __init__(self, chat_id: str, sequence_number: int):
        self.chat_id = chat_id
        self.sequence_number = sequence_number
        super().__init__(
            f"Sequence number {sequence_number} already used in chat {chat_id}"
        )
