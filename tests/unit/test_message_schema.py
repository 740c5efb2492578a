"""Tests for message and realtime wire schemas."""

from datetime import UTC, datetime, timedelta

import pytest
from pydantic import ValidationError

from studychat.schemas.message_schema import (
    ChatMessageRecord,
    EditMessageRequest,
    MessageResponse,
    SenderProfile,
    SendMessageRequest,
)
from studychat.schemas.realtime_schema import ChangeEvent, TypingSignal

CREATED = datetime(2024, 3, 1, 9, 0, tzinfo=UTC)


def _record(updated_at: datetime | None = None) -> ChatMessageRecord:
    return ChatMessageRecord(
        id="m1",
        room_id=1,
        sender_id=2,
        body="hello",
        created_at=CREATED,
        updated_at=updated_at,
    )


class TestIsEdited:
    """updated_at close to created_at does not count as an edit."""

    def test_never_updated(self) -> None:
        assert _record().is_edited() is False

    def test_within_tolerance(self) -> None:
        record = _record(updated_at=CREATED + timedelta(milliseconds=400))
        assert record.is_edited() is False

    def test_at_tolerance_boundary(self) -> None:
        assert _record(updated_at=CREATED + timedelta(seconds=1)).is_edited() is False

    def test_beyond_tolerance(self) -> None:
        record = _record(updated_at=CREATED + timedelta(seconds=5))
        assert record.is_edited() is True

    def test_custom_tolerance(self) -> None:
        record = _record(updated_at=CREATED + timedelta(seconds=5))
        assert record.is_edited(tolerance=timedelta(seconds=10)) is False

    def test_response_exposes_flag(self) -> None:
        record = _record(updated_at=CREATED + timedelta(minutes=2))
        assert MessageResponse.from_record(record).is_edited is True


class TestChatMessageRecord:
    """Record normalization."""

    def test_naive_datetimes_are_utc(self) -> None:
        record = ChatMessageRecord(
            id="m1",
            room_id=1,
            sender_id=2,
            body="",
            created_at=datetime(2024, 3, 1, 9, 0),
        )
        assert record.created_at == CREATED

    def test_frozen(self) -> None:
        with pytest.raises(ValidationError):
            _record().body = "changed"  # type: ignore[misc]

    def test_unknown_sender_fallback(self) -> None:
        assert SenderProfile(user_id=3).full_name == "Unknown user"


class TestRequests:
    """Request body validation."""

    def test_blank_attachment_url_rejected(self) -> None:
        with pytest.raises(ValidationError):
            SendMessageRequest(body="hi", attachments=["https://a", "  "])

    def test_body_may_be_empty(self) -> None:
        request = SendMessageRequest(attachments=["https://cdn.test/a.png"])
        assert request.body == ""

    def test_edit_requires_body(self) -> None:
        with pytest.raises(ValidationError):
            EditMessageRequest(body="")


class TestChangeEvent:
    """Change event shape per type."""

    def test_delete_requires_old_id(self) -> None:
        with pytest.raises(ValidationError):
            ChangeEvent(type="DELETE", room_id=1)

    def test_delete_carries_no_record(self) -> None:
        with pytest.raises(ValidationError):
            ChangeEvent(type="DELETE", room_id=1, old_id="m1", record=_record())

    def test_insert_requires_record(self) -> None:
        with pytest.raises(ValidationError):
            ChangeEvent(type="INSERT", room_id=1, old_id="m1")

    def test_message_id(self) -> None:
        update = ChangeEvent(type="UPDATE", room_id=1, record=_record())
        assert update.message_id == "m1"
        assert ChangeEvent(type="DELETE", room_id=1, old_id="m9").message_id == "m9"

    def test_typing_kind_is_restricted(self) -> None:
        with pytest.raises(ValidationError):
            TypingSignal(room_id=1, user_id=2, user_display_name="Bob", kind="paused")  # type: ignore[arg-type]
