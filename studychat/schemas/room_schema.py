"""Room list schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class RoomSummary(BaseModel):
    """Room entry in the caller's room list."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: int
    title: str
    creator_id: int
    created_at: datetime
    is_creator: bool = False


class RoomListResponse(BaseModel):
    """Rooms the caller created or joined."""

    model_config = ConfigDict(frozen=True)

    rooms: list[RoomSummary]
