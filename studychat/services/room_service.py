"""Room membership checks and room listing."""

from studychat.core.exceptions import RoomNotFoundError
from studychat.repositories.chat_repo import ChatRepository
from studychat.schemas.room_schema import RoomListResponse, RoomSummary


class RoomService:
    """Room queries scoped to the authenticated user."""

    def __init__(self, chat_repo: ChatRepository, user_id: int) -> None:
        self._chat_repo = chat_repo
        self._user_id = user_id

    async def ensure_member(self, room_id: int) -> None:
        """Raise RoomNotFoundError unless the user created or joined the room.

        Rooms the user cannot see are reported as missing rather than
        forbidden, so their existence is not disclosed.
        """
        if not await self._chat_repo.is_room_member(room_id, self._user_id):
            raise RoomNotFoundError()

    async def list_rooms(self) -> RoomListResponse:
        """Return the rooms the user created or joined."""
        rooms = await self._chat_repo.find_rooms_for_user(self._user_id)
        return RoomListResponse(
            rooms=[
                RoomSummary(
                    id=room.id,
                    title=room.title,
                    creator_id=room.creator_id,
                    created_at=room.created_at,
                    is_creator=room.creator_id == self._user_id,
                )
                for room in rooms
            ]
        )
