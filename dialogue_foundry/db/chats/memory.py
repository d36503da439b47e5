"""
In-memory chat store for local development and tests.

Requires no database; state lives for the lifetime of the instance.
"""

import uuid
from datetime import UTC, datetime

from dialogue_foundry.db.chats.schemas import (
    ChatConfigRecord,
    ChatRecord,
    MessageRecord,
    NewChat,
    NewMessage,
)
from dialogue_foundry.db.chats.store import ChatStore, SequenceConflictError
from dialogue_foundry.utils.logger import logger


class InMemoryChatStore(ChatStore):
    """Chat store backed by plain dictionaries."""

    def __init__(self, configs: list[ChatConfigRecord] | None = None):
        """
        Initialize the store.

        Args:
            configs: Company chat configurations to seed the store with
        """
        self._configs: dict[str, ChatConfigRecord] = {
            config.company_id: config for config in configs or []
        }
        self._chats: dict[str, ChatRecord] = {}
        self._messages: dict[str, list[MessageRecord]] = {}
        logger.info("InMemoryChatStore initialized", config_count=len(self._configs))

    def add_config(self, config: ChatConfigRecord) -> None:
        self._configs[config.company_id] = config

    async def get_chat(self, chat_id: str) -> ChatRecord | None:
        return self._chats.get(chat_id)

    async def get_chat_config(self, company_id: str) -> ChatConfigRecord | None:
        return self._configs.get(company_id)

    async def create_chat(self, new_chat: NewChat) -> ChatRecord:
        now = datetime.now(UTC)
        chat = ChatRecord(
            id=str(uuid.uuid4()),
            name=new_chat.name,
            user_id=new_chat.user_id,
            company_id=new_chat.company_id,
            created_at=now,
            updated_at=now,
        )
        self._chats[chat.id] = chat
        self._messages[chat.id] = []
        return chat

    async def list_messages(self, chat_id: str) -> list[MessageRecord]:
        return sorted(
            self._messages.get(chat_id, []), key=lambda m: m.sequence_number
        )

    async def latest_sequence_number(self, chat_id: str) -> int:
        messages = self._messages.get(chat_id, [])
        return max((m.sequence_number for m in messages), default=0)

    async def insert_message(self, new_message: NewMessage) -> MessageRecord:
        messages = self._messages.setdefault(new_message.chat_id, [])
        if any(m.sequence_number == new_message.sequence_number for m in messages):
            raise SequenceConflictError(
                new_message.chat_id, new_message.sequence_number
            )

        now = datetime.now(UTC)
        message = MessageRecord(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            **new_message.model_dump(),
        )
        messages.append(message)
        return message

    async def update_chat_email(self, chat_id: str, email: str) -> ChatRecord | None:
        chat = self._chats.get(chat_id)
        if not chat:
            return None
        if chat.user_email:
            return chat

        chat = chat.model_copy(
            update={"user_email": email, "updated_at": datetime.now(UTC)}
        )
        self._chats[chat_id] = chat
        return chat

    async def prune_messages(self, chat_id: str, keep: int) -> int:
        messages = await self.list_messages(chat_id)
        if len(messages) <= keep:
            return 0

        kept = messages[len(messages) - keep :] if keep > 0 else []
        self._messages[chat_id] = kept
        return len(messages) - len(kept)
