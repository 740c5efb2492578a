"""Durable message CRUD; the system of record for room chat."""

from collections.abc import AsyncIterator, Awaitable, Sequence
from contextlib import asynccontextmanager
from datetime import UTC, datetime

import structlog
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from studychat.core.exceptions import (
    AppException,
    AuthorizationError,
    EmptyMessageError,
    MessageNotFoundError,
    PersistenceError,
    TransportError,
)
from studychat.realtime.change_feed import ChangeFeed
from studychat.repositories.chat_repo import ChatRepository
from studychat.repositories.user_repo import UserRepository
from studychat.schemas.message_schema import ChatMessageRecord

logger = structlog.get_logger()


class MessageStore:
    """Append, edit, remove and load chat messages.

    Each operation runs in its own transaction. Change notifications are
    published only after commit; a failed publish is logged, never raised,
    because the committed row is already authoritative. Edits are
    last-write-wins.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        feed: ChangeFeed | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._feed = feed

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as session:
                try:
                    yield session
                    await session.commit()
                except Exception:
                    await session.rollback()
                    raise
        except AppException:
            raise
        except IntegrityError as exc:
            raise PersistenceError("Message violates a store constraint") from exc
        except (SQLAlchemyError, OSError) as exc:
            raise PersistenceError() from exc

    async def list_messages(self, room_id: int) -> list[ChatMessageRecord]:
        """Bulk-load a room's messages ordered by created_at."""
        async with self._transaction() as session:
            rows = await ChatRepository(session).find_messages_by_room_id(room_id)
            return [ChatMessageRecord.model_validate(row) for row in rows]

    async def append(
        self,
        room_id: int,
        sender_id: int,
        body: str,
        attachments: Sequence[str] = (),
    ) -> ChatMessageRecord:
        """Insert a message and notify the room."""
        body = body.strip()
        if not body and not attachments:
            raise EmptyMessageError()

        async with self._transaction() as session:
            repo = ChatRepository(session)
            if await repo.find_room_by_id(room_id) is None:
                raise PersistenceError(f"Room {room_id} does not exist")
            if not await UserRepository(session).exists_by_id(sender_id):
                raise PersistenceError(f"Sender {sender_id} does not exist")
            message = await repo.create_message(
                room_id=room_id,
                sender_id=sender_id,
                body=body,
                attachments=list(attachments),
            )
            record = ChatMessageRecord.model_validate(message)

        logger.info(
            "Message appended",
            room_id=room_id,
            message_id=record.id,
            sender_id=sender_id,
        )
        if self._feed is not None:
            await self._notify(
                "INSERT", record.room_id, self._feed.publish_insert(record)
            )
        return record

    async def edit(
        self,
        message_id: str,
        sender_id: int,
        new_body: str,
        room_id: int | None = None,
    ) -> ChatMessageRecord:
        """Replace a message body; only its sender may do so."""
        new_body = new_body.strip()
        if not new_body:
            raise EmptyMessageError("Message body must not be empty")

        async with self._transaction() as session:
            repo = ChatRepository(session)
            message = await repo.find_message_by_id(message_id)
            if message is None or (room_id is not None and message.room_id != room_id):
                raise MessageNotFoundError()
            if message.sender_id != sender_id:
                raise AuthorizationError(
                    message="Only the sender can edit this message"
                )
            message = await repo.update_message_body(
                message, new_body, datetime.now(UTC)
            )
            record = ChatMessageRecord.model_validate(message)

        logger.info("Message edited", room_id=record.room_id, message_id=message_id)
        if self._feed is not None:
            await self._notify(
                "UPDATE", record.room_id, self._feed.publish_update(record)
            )
        return record

    async def remove(self, message_id: str, sender_id: int, room_id: int) -> None:
        """Delete a message; only its sender may do so."""
        async with self._transaction() as session:
            repo = ChatRepository(session)
            message = await repo.find_message_by_id(message_id)
            if message is None or message.room_id != room_id:
                raise MessageNotFoundError()
            if message.sender_id != sender_id:
                raise AuthorizationError(
                    message="Only the sender can delete this message"
                )
            await repo.delete_message(message_id)

        logger.info("Message removed", room_id=room_id, message_id=message_id)
        if self._feed is not None:
            await self._notify(
                "DELETE", room_id, self._feed.publish_delete(room_id, message_id)
            )

    async def _notify(
        self, change: str, room_id: int, publish: Awaitable[None]
    ) -> None:
        try:
            await publish
        except TransportError:
            logger.exception(
                "Change notification not published",
                change=change,
                room_id=room_id,
            )
