"""
PostgreSQL-backed chat store.

Each operation runs in its own short-lived session. Stream bodies outlive the
request-scoped dependencies, so sessions cannot be shared with the route.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dialogue_foundry.db.chats.model import (
    SEQUENCE_CONSTRAINT,
    Chat,
    ChatConfig,
    Message,
)
from dialogue_foundry.db.chats.schemas import (
    ChatConfigRecord,
    ChatRecord,
    MessageRecord,
    NewChat,
    NewMessage,
)
from dialogue_foundry.db.chats.store import ChatStore, SequenceConflictError
from dialogue_foundry.utils.logger import logger


def _violates(error: IntegrityError, constraint: str) -> bool:
    """Whether an IntegrityError was raised by the named constraint."""
    orig = error.orig
    # asyncpg errors carry the name on the wrapped driver exception
    for candidate in (orig, getattr(orig, "__cause__", None)):
        if getattr(candidate, "constraint_name", None) == constraint:
            return True
    return constraint in str(orig)


class SqlChatStore(ChatStore):
    """Chat store over SQLAlchemy async sessions."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        """
        Initialize the store.

        Args:
            session_factory: Factory producing sessions bound to the chat database
        """
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    # ========== Chat Operations ==========

    async def get_chat(self, chat_id: str) -> ChatRecord | None:
        async with self._session() as session:
            chat = await session.get(Chat, chat_id)
            if not chat:
                logger.debug(f"[SqlChatStore] Chat not found: id={chat_id}")
                return None
            return ChatRecord.model_validate(chat)

    async def get_chat_config(self, company_id: str) -> ChatConfigRecord | None:
        async with self._session() as session:
            config = await session.get(ChatConfig, company_id)
            if not config:
                logger.debug(
                    f"[SqlChatStore] Chat config not found: company_id={company_id}"
                )
                return None
            return ChatConfigRecord.model_validate(config)

    async def create_chat(self, new_chat: NewChat) -> ChatRecord:
        async with self._session() as session:
            chat = Chat(
                user_id=new_chat.user_id,
                company_id=new_chat.company_id,
                name=new_chat.name,
            )
            session.add(chat)
            await session.flush()
            await session.refresh(chat)
            record = ChatRecord.model_validate(chat)

        logger.info(
            f"[SqlChatStore] Created chat: id={record.id}, company_id={record.company_id}"
        )
        return record

    async def update_chat_email(self, chat_id: str, email: str) -> ChatRecord | None:
        async with self._session() as session:
            # Only unset -> set; an existing email is left alone
            stmt = (
                update(Chat)
                .where(Chat.id == chat_id, Chat.user_email.is_(None))
                .values(user_email=email)
            )
            await session.execute(stmt)
            chat = await session.get(Chat, chat_id, populate_existing=True)
            if not chat:
                return None
            return ChatRecord.model_validate(chat)

    # ========== Message Operations ==========

    async def list_messages(self, chat_id: str) -> list[MessageRecord]:
        async with self._session() as session:
            stmt = (
                select(Message)
                .where(Message.chat_id == chat_id)
                .order_by(Message.sequence_number.asc())
            )
            result = await session.execute(stmt)
            messages = [MessageRecord.model_validate(m) for m in result.scalars().all()]

        logger.debug(
            f"[SqlChatStore] Listed {len(messages)} messages for chat {chat_id}"
        )
        return messages

    async def latest_sequence_number(self, chat_id: str) -> int:
        async with self._session() as session:
            stmt = select(func.max(Message.sequence_number)).where(
                Message.chat_id == chat_id
            )
            result = await session.execute(stmt)
            latest = result.scalar_one_or_none()
            return latest or 0

    async def insert_message(self, new_message: NewMessage) -> MessageRecord:
        try:
            async with self._session() as session:
                message = Message(
                    chat_id=new_message.chat_id,
                    user_id=new_message.user_id,
                    role=new_message.role.value,
                    content=new_message.content,
                    sequence_number=new_message.sequence_number,
                )
                session.add(message)
                await session.flush()
                await session.refresh(message)
                record = MessageRecord.model_validate(message)
        except IntegrityError as e:
            if not _violates(e, SEQUENCE_CONSTRAINT):
                logger.error(
                    "[SqlChatStore] Message insert failed",
                    chat_id=new_message.chat_id,
                    error=str(e.orig),
                )
                raise
            logger.warning(
                "[SqlChatStore] Sequence number conflict",
                chat_id=new_message.chat_id,
                sequence_number=new_message.sequence_number,
            )
            raise SequenceConflictError(
                new_message.chat_id, new_message.sequence_number
            ) from e

        logger.debug(
            f"[SqlChatStore] Inserted {record.role.value} message: "
            f"chat_id={record.chat_id}, sequence_number={record.sequence_number}"
        )
        return record

    async def prune_messages(self, chat_id: str, keep: int) -> int:
        async with self._session() as session:
            stale_ids = (
                select(Message.id)
                .where(Message.chat_id == chat_id)
                .order_by(Message.sequence_number.desc())
                .offset(keep)
            )
            stmt = delete(Message).where(Message.id.in_(stale_ids))
            result = await session.execute(stmt)
            deleted = result.rowcount or 0

        if deleted:
            logger.info(
                f"[SqlChatStore] Pruned {deleted} old messages from chat {chat_id}"
            )
        return deleted
