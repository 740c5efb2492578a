"""Chat message schemas."""

from datetime import UTC, datetime, timedelta

from pydantic import BaseModel, ConfigDict, Field, field_validator

from studychat.core.config import settings

UNKNOWN_SENDER_NAME = "Unknown user"


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class ChatMessageRecord(BaseModel):
    """Stored chat message row as carried by the store and the change feed."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: str
    room_id: int
    sender_id: int
    body: str
    attachments: list[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime | None = None

    @field_validator("created_at", "updated_at")
    @classmethod
    def _normalize_timezone(cls, value: datetime | None) -> datetime | None:
        # SQLite hands back naive datetimes
        return _as_utc(value) if value is not None else None

    def is_edited(self, tolerance: timedelta | None = None) -> bool:
        """Whether the body changed after creation.

        A missing ``updated_at``, or one within ``tolerance`` of
        ``created_at``, means the message was never edited.
        """
        if self.updated_at is None:
            return False
        window = tolerance if tolerance is not None else settings.chat.edit_tolerance
        return self.updated_at > self.created_at + window


class SenderProfile(BaseModel):
    """Display metadata for a message author."""

    model_config = ConfigDict(frozen=True)

    user_id: int
    full_name: str = UNKNOWN_SENDER_NAME
    avatar_url: str | None = None


class SendMessageRequest(BaseModel):
    """Request to post a message into a room."""

    body: str = Field(default="", max_length=settings.chat.max_body_length)
    attachments: list[str] = Field(
        default_factory=list, max_length=settings.chat.max_attachments
    )

    @field_validator("attachments")
    @classmethod
    def _no_blank_urls(cls, value: list[str]) -> list[str]:
        urls = [url.strip() for url in value]
        if any(not url for url in urls):
            raise ValueError("Attachment URLs must not be blank")
        return urls


class EditMessageRequest(BaseModel):
    """Request to replace the body of an existing message."""

    body: str = Field(..., min_length=1, max_length=settings.chat.max_body_length)


class MessageResponse(BaseModel):
    """Single message returned by the HTTP API."""

    model_config = ConfigDict(frozen=True)

    id: str
    room_id: int
    sender_id: int
    body: str
    attachments: list[str]
    created_at: datetime
    updated_at: datetime | None = None
    is_edited: bool = False

    @classmethod
    def from_record(cls, record: ChatMessageRecord) -> "MessageResponse":
        """Build a response from a stored record."""
        return cls(
            **record.model_dump(),
            is_edited=record.is_edited(),
        )


class RoomMessagesResponse(BaseModel):
    """Ordered message snapshot of a room."""

    model_config = ConfigDict(frozen=True)

    room_id: int
    messages: list[MessageResponse]
