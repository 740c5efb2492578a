"""Wire types published on the realtime channels."""

from typing import Literal, cast

from pydantic import BaseModel, ConfigDict, model_validator

from studychat.schemas.message_schema import ChatMessageRecord

ChangeType = Literal["INSERT", "UPDATE", "DELETE"]
TypingKind = Literal["start", "stop"]


class ChangeEvent(BaseModel):
    """Row-level change notification for the chat_messages table."""

    model_config = ConfigDict(frozen=True)

    type: ChangeType
    room_id: int
    record: ChatMessageRecord | None = None
    old_id: str | None = None

    @model_validator(mode="after")
    def _check_shape(self) -> "ChangeEvent":
        if self.type == "DELETE":
            if self.old_id is None:
                raise ValueError("DELETE events require old_id")
            if self.record is not None:
                raise ValueError("DELETE events carry no record")
        elif self.record is None:
            raise ValueError(f"{self.type} events require the full record")
        return self

    @property
    def message_id(self) -> str:
        """Id of the affected message regardless of change type."""
        if self.record is not None:
            return self.record.id
        return cast(str, self.old_id)


class TypingSignal(BaseModel):
    """Ephemeral "user is typing" / "user stopped typing" broadcast."""

    model_config = ConfigDict(frozen=True)

    room_id: int
    user_id: int
    user_display_name: str
    kind: TypingKind


class TypingRequest(BaseModel):
    """Request to announce a typing state change."""

    kind: TypingKind
