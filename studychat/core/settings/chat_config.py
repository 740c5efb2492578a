"""Chat synchronization configuration."""

from datetime import timedelta

from pydantic import BaseModel


class ChatConfig(BaseModel, frozen=True):
    """Realtime chat settings."""

    channel_prefix: str
    typing_timeout_seconds: float
    edit_tolerance_seconds: float
    max_body_length: int
    max_attachments: int
    send_rate_limit: str

    @property
    def edit_tolerance(self) -> timedelta:
        """Window within which updated_at still counts as unedited."""
        return timedelta(seconds=self.edit_tolerance_seconds)

    def messages_channel(self, room_id: str) -> str:
        """Pub/sub channel carrying message table changes for a room."""
        return f"{self.channel_prefix}:messages:{room_id}"

    def typing_channel(self, room_id: str) -> str:
        """Pub/sub channel carrying typing signals for a room."""
        return f"{self.channel_prefix}:typing:{room_id}"
