"""Chat message database model."""

import uuid
from datetime import UTC, datetime

from sqlalchemy import JSON, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.dialects import mysql
from sqlalchemy.orm import Mapped, mapped_column

from studychat.core.database import Base


# plain DATETIME on MySQL truncates to whole seconds
MessageTimestamp = DateTime(timezone=True).with_variant(
    mysql.DATETIME(fsp=6), "mysql"
)


def _new_message_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ChatMessage(Base):
    """Message posted into a room's chat."""

    __tablename__ = "chat_messages"
    __table_args__ = (
        Index("ix_chat_messages_room_id_created_at", "room_id", "created_at"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=_new_message_id
    )
    room_id: Mapped[int] = mapped_column(
        ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False
    )
    sender_id: Mapped[int] = mapped_column(
        ForeignKey("users.id"), nullable=False, index=True
    )
    body: Mapped[str] = mapped_column(Text, nullable=False, default="")
    attachments: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(
        MessageTimestamp, nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime | None] = mapped_column(MessageTimestamp, nullable=True)
