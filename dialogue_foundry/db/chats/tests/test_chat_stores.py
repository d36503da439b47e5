"""Tests for the in-memory and cached chat stores."""

from unittest.mock import AsyncMock

import pytest

from dialogue_foundry.db.chats.cache import CachedChatStore
from dialogue_foundry.db.chats.memory import InMemoryChatStore
from dialogue_foundry.db.chats.schemas import (
    ChatConfigRecord,
    MessageRole,
    NewChat,
    NewMessage,
)
from dialogue_foundry.db.chats.store import SequenceConflictError
from dialogue_foundry.db.config import CacheSettings


@pytest.fixture
def store():
    return InMemoryChatStore(
        configs=[ChatConfigRecord(company_id="acme", system_prompt="Be helpful.")]
    )


def user_message(chat_id: str, sequence_number: int, content: str = "hi") -> NewMessage:
    return NewMessage(
        chat_id=chat_id,
        user_id="user-1",
        role=MessageRole.USER,
        content=content,
        sequence_number=sequence_number,
    )


class TestInMemoryChatStore:
    """Test suite for InMemoryChatStore."""

    @pytest.mark.asyncio
    async def test_create_and_get_chat(self, store):
        chat = await store.create_chat(NewChat(user_id="user-1", company_id="acme"))

        fetched = await store.get_chat(chat.id)

        assert fetched == chat
        assert fetched.name == "New Conversation"
        assert fetched.user_email is None

    @pytest.mark.asyncio
    async def test_unknown_chat_and_company(self, store):
        assert await store.get_chat("missing") is None
        assert await store.get_chat_config("missing") is None
        assert (await store.get_chat_config("acme")).system_prompt == "Be helpful."

    @pytest.mark.asyncio
    async def test_messages_ordered_by_sequence(self, store):
        chat = await store.create_chat(NewChat(user_id="user-1", company_id="acme"))
        for sequence_number in (3, 1, 2):
            await store.insert_message(user_message(chat.id, sequence_number))

        messages = await store.list_messages(chat.id)

        assert [m.sequence_number for m in messages] == [1, 2, 3]
        assert await store.latest_sequence_number(chat.id) == 3

    @pytest.mark.asyncio
    async def test_latest_sequence_of_empty_chat_is_zero(self, store):
        chat = await store.create_chat(NewChat(user_id="user-1", company_id="acme"))
        assert await store.latest_sequence_number(chat.id) == 0

    @pytest.mark.asyncio
    async def test_duplicate_sequence_rejected(self, store):
        chat = await store.create_chat(NewChat(user_id="user-1", company_id="acme"))
        await store.insert_message(user_message(chat.id, 1))

        with pytest.raises(SequenceConflictError) as exc_info:
            await store.insert_message(user_message(chat.id, 1, content="again"))

        assert exc_info.value.sequence_number == 1
        assert len(await store.list_messages(chat.id)) == 1

    @pytest.mark.asyncio
    async def test_update_email_only_sets_once(self, store):
        chat = await store.create_chat(NewChat(user_id="user-1", company_id="acme"))

        first = await store.update_chat_email(chat.id, "first@example.com")
        second = await store.update_chat_email(chat.id, "second@example.com")

        assert first.user_email == "first@example.com"
        assert second.user_email == "first@example.com"
        assert await store.update_chat_email("missing", "x@example.com") is None

    @pytest.mark.asyncio
    async def test_prune_keeps_newest(self, store):
        chat = await store.create_chat(NewChat(user_id="user-1", company_id="acme"))
        for sequence_number in range(1, 6):
            await store.insert_message(user_message(chat.id, sequence_number))

        deleted = await store.prune_messages(chat.id, keep=2)

        assert deleted == 3
        assert [m.sequence_number for m in await store.list_messages(chat.id)] == [4, 5]
        assert await store.prune_messages(chat.id, keep=2) == 0


class TestCachedChatStore:
    """Test suite for CachedChatStore."""

    @pytest.mark.asyncio
    async def test_config_reads_are_cached(self, store):
        store.get_chat_config = AsyncMock(wraps=store.get_chat_config)
        cached = CachedChatStore(store, CacheSettings())

        await cached.get_chat_config("acme")
        await cached.get_chat_config("acme")

        assert store.get_chat_config.await_count == 1

    @pytest.mark.asyncio
    async def test_misses_are_not_cached(self, store):
        store.get_chat_config = AsyncMock(wraps=store.get_chat_config)
        cached = CachedChatStore(store, CacheSettings())

        assert await cached.get_chat_config("unknown") is None
        assert await cached.get_chat_config("unknown") is None

        assert store.get_chat_config.await_count == 2

    @pytest.mark.asyncio
    async def test_email_update_refreshes_cached_chat(self, store):
        cached = CachedChatStore(store, CacheSettings())
        chat = await cached.create_chat(NewChat(user_id="user-1", company_id="acme"))
        assert (await cached.get_chat(chat.id)).user_email is None

        await cached.update_chat_email(chat.id, "user@example.com")

        assert (await cached.get_chat(chat.id)).user_email == "user@example.com"

    @pytest.mark.asyncio
    async def test_messages_pass_through(self, store):
        cached = CachedChatStore(store, CacheSettings())
        chat = await cached.create_chat(NewChat(user_id="user-1", company_id="acme"))

        await cached.insert_message(user_message(chat.id, 1))

        assert len(await store.list_messages(chat.id)) == 1
        assert await cached.latest_sequence_number(chat.id) == 1
