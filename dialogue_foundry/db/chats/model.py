"""
SQLAlchemy models for chats, their messages, and per-company chat configuration.
"""

from datetime import UTC, datetime
from uuid import uuid4

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from dialogue_foundry.db.database import Base

SEQUENCE_CONSTRAINT = "uq_messages_chat_sequence"


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ChatConfig(Base):
    """Per-company widget configuration."""

    __tablename__ = "chat_configs"

    company_id: Mapped[str] = mapped_column(
        String(255),
        primary_key=True,
        comment="Company identifier the widget is embedded for",
    )
    system_prompt: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default="",
        comment="Instructions passed to the model for every turn",
    )
    support_email: Mapped[str | None] = mapped_column(
        String(320),
        nullable=True,
        comment="Where inquiry emails go; enables email capture when set",
    )
    retrieval_index_name: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        comment="Retrieval index searched for context, if any",
    )
    sendgrid_template_id: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        comment="Dynamic template for inquiry emails",
    )


class Chat(Base):
    """
    One conversation between a widget user and the assistant.

    `user_email` moves from unset to set at most once and is never cleared.
    """

    __tablename__ = "chats"

    id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
        comment="Chat UUID",
    )
    name: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default="New Conversation",
    )
    user_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
        comment="Widget user id (client supplied or generated)",
    )
    company_id: Mapped[str] = mapped_column(
        String(255),
        ForeignKey("chat_configs.company_id"),
        nullable=False,
        index=True,
    )
    user_email: Mapped[str | None] = mapped_column(String(320), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    def __repr__(self) -> str:
        return (
            f"<Chat(id={self.id}, user_id={self.user_id}, company_id={self.company_id})>"
        )


class Message(Base):
    """
    A single message within a chat.

    Messages are ordered by `sequence_number`, which is unique per chat.
    """

    __tablename__ = "messages"

    id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
        comment="Message UUID",
    )
    chat_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("chats.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="Message role: user, assistant, or system",
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    sequence_number: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        UniqueConstraint("chat_id", "sequence_number", name=SEQUENCE_CONSTRAINT),
        Index("idx_messages_chat_sequence", "chat_id", "sequence_number"),
    )

    def __repr__(self) -> str:
        return (
            f"<Message(id={self.id}, chat_id={self.chat_id}, "
            f"role={self.role}, sequence_number={self.sequence_number})>"
        )
