"""
Read-through TTL cache in front of a ChatStore.

Only chat and chat-config lookups are cached. Writes go straight to the
wrapped store; update_chat_email refreshes the cached chat so a captured
email is visible immediately.
"""

from cachetools import TTLCache

from dialogue_foundry.db.chats.schemas import (
    ChatConfigRecord,
    ChatRecord,
    MessageRecord,
    NewChat,
    NewMessage,
)
from dialogue_foundry.db.chats.store import ChatStore
from dialogue_foundry.db.config import CacheSettings
from dialogue_foundry.utils.logger import logger


class CachedChatStore(ChatStore):
    """ChatStore decorator caching chat and chat config reads."""

    def __init__(self, store: ChatStore, settings: CacheSettings):
        """
        Initialize the cache.

        Args:
            store: Store to read through to
            settings: TTLs and size bound
        """
        self._store = store
        self._chats: TTLCache = TTLCache(
            maxsize=settings.max_entries, ttl=settings.chat_ttl_seconds
        )
        self._configs: TTLCache = TTLCache(
            maxsize=settings.max_entries, ttl=settings.chat_config_ttl_seconds
        )

    async def get_chat(self, chat_id: str) -> ChatRecord | None:
        cached = self._chats.get(chat_id)
        if cached is not None:
            logger.debug("Cache hit for chat", chat_id=chat_id)
            return cached

        chat = await self._store.get_chat(chat_id)
        if chat is not None:
            self._chats[chat_id] = chat
        return chat

    async def get_chat_config(self, company_id: str) -> ChatConfigRecord | None:
        cached = self._configs.get(company_id)
        if cached is not None:
            logger.debug("Cache hit for chat config", company_id=company_id)
            return cached

        config = await self._store.get_chat_config(company_id)
        if config is not None:
            self._configs[company_id] = config
        return config

    async def create_chat(self, new_chat: NewChat) -> ChatRecord:
        chat = await self._store.create_chat(new_chat)
        self._chats[chat.id] = chat
        return chat

    async def list_messages(self, chat_id: str) -> list[MessageRecord]:
        return await self._store.list_messages(chat_id)

    async def latest_sequence_number(self, chat_id: str) -> int:
        return await self._store.latest_sequence_number(chat_id)

    async def insert_message(self, new_message: NewMessage) -> MessageRecord:
        return await self._store.insert_message(new_message)

    async def update_chat_email(self, chat_id: str, email: str) -> ChatRecord | None:
        chat = await self._store.update_chat_email(chat_id, email)
        if chat is None:
            self._chats.pop(chat_id, None)
        else:
            self._chats[chat_id] = chat
        return chat

    async def prune_messages(self, chat_id: str, keep: int) -> int:
        return await self._store.prune_messages(chat_id, keep)
