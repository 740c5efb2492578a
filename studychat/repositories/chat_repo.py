"""Chat repository for room and message database operations."""

from datetime import datetime

from sqlalchemy import and_, delete, exists, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from studychat.models.chat_message import ChatMessage
from studychat.models.room import Room, RoomParticipant


class ChatRepository:
    """Encapsulates room membership and chat message queries."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    # --- Rooms ---

    async def find_room_by_id(self, room_id: int) -> Room | None:
        """Find a room by primary key."""
        result = await self._session.execute(select(Room).where(Room.id == room_id))
        return result.scalar_one_or_none()

    async def is_room_member(self, room_id: int, user_id: int) -> bool:
        """Check whether the user created or joined the room."""
        participant = exists().where(
            and_(
                RoomParticipant.room_id == Room.id,
                RoomParticipant.user_id == user_id,
            )
        )
        result = await self._session.execute(
            select(Room.id).where(
                and_(
                    Room.id == room_id,
                    or_(Room.creator_id == user_id, participant),
                )
            )
        )
        return result.scalar_one_or_none() is not None

    async def find_rooms_for_user(self, user_id: int) -> list[Room]:
        """Rooms the user created or participates in, oldest first."""
        joined = select(RoomParticipant.room_id).where(
            RoomParticipant.user_id == user_id
        )
        result = await self._session.execute(
            select(Room)
            .where(or_(Room.creator_id == user_id, Room.id.in_(joined)))
            .order_by(Room.created_at.asc(), Room.id.asc())
        )
        return list(result.scalars().all())

    # --- Messages ---

    async def find_messages_by_room_id(self, room_id: int) -> list[ChatMessage]:
        """Retrieve all messages of a room in display order."""
        result = await self._session.execute(
            select(ChatMessage)
            .where(ChatMessage.room_id == room_id)
            .order_by(ChatMessage.created_at.asc(), ChatMessage.id.asc())
        )
        return list(result.scalars().all())

    async def find_message_by_id(self, message_id: str) -> ChatMessage | None:
        """Find a chat message by its primary key."""
        result = await self._session.execute(
            select(ChatMessage).where(ChatMessage.id == message_id)
        )
        return result.scalar_one_or_none()

    async def create_message(
        self,
        room_id: int,
        sender_id: int,
        body: str,
        attachments: list[str],
        created_at: datetime | None = None,
    ) -> ChatMessage:
        """Insert a single chat message."""
        message = ChatMessage(
            room_id=room_id,
            sender_id=sender_id,
            body=body,
            attachments=list(attachments),
        )
        if created_at is not None:
            message.created_at = created_at
        self._session.add(message)
        await self._session.flush()
        await self._session.refresh(message)
        return message

    async def update_message_body(
        self, message: ChatMessage, body: str, updated_at: datetime
    ) -> ChatMessage:
        """Replace the body of a loaded message."""
        message.body = body
        message.updated_at = updated_at
        await self._session.flush()
        await self._session.refresh(message)
        return message

    async def delete_message(self, message_id: str) -> None:
        """Hard-delete a message by id."""
        await self._session.execute(
            delete(ChatMessage).where(ChatMessage.id == message_id)
        )
