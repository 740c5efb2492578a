"""Unit tests for MessageStore against SQLite."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from studychat.core.exceptions import (
    AuthorizationError,
    EmptyMessageError,
    MessageNotFoundError,
    PersistenceError,
)
from studychat.models.room import Room
from studychat.models.user import User
from studychat.realtime.change_feed import ChangeFeed
from studychat.schemas.realtime_schema import ChangeEvent
from studychat.services.message_store import MessageStore
from tests.fakes import InMemoryTransport

StudyRoom = tuple[Room, User, User]


def _events(transport: InMemoryTransport) -> list[ChangeEvent]:
    return [ChangeEvent.model_validate_json(data) for _, data in transport.published]


@pytest.fixture
def store(
    session_factory: async_sessionmaker[AsyncSession], transport: InMemoryTransport
) -> MessageStore:
    return MessageStore(session_factory, ChangeFeed(transport))


class TestAppend:
    """Inserting messages."""

    async def test_append_persists_and_publishes(
        self, store: MessageStore, transport: InMemoryTransport, study_room: StudyRoom
    ) -> None:
        room, alice, _ = study_room

        record = await store.append(room.id, alice.id, "  Hello team  ")

        assert record.body == "Hello team"
        assert record.room_id == room.id
        assert record.sender_id == alice.id
        assert record.updated_at is None
        assert record.created_at.tzinfo is not None
        [event] = _events(transport)
        assert event.type == "INSERT"
        assert event.record == record

    async def test_attachment_only_message_is_allowed(
        self, store: MessageStore, study_room: StudyRoom
    ) -> None:
        room, alice, _ = study_room

        record = await store.append(
            room.id, alice.id, "", ["https://cdn.test/notes.pdf"]
        )

        assert record.body == ""
        assert record.attachments == ["https://cdn.test/notes.pdf"]

    async def test_blank_message_is_rejected(
        self, store: MessageStore, transport: InMemoryTransport, study_room: StudyRoom
    ) -> None:
        room, alice, _ = study_room

        with pytest.raises(EmptyMessageError):
            await store.append(room.id, alice.id, "   ")
        assert transport.published == []
        assert await store.list_messages(room.id) == []

    async def test_unknown_room_is_persistence_error(
        self, store: MessageStore, study_room: StudyRoom
    ) -> None:
        _, alice, _ = study_room

        with pytest.raises(PersistenceError):
            await store.append(9999, alice.id, "hello")

    async def test_unknown_sender_is_persistence_error(
        self, store: MessageStore, study_room: StudyRoom
    ) -> None:
        room, _, _ = study_room

        with pytest.raises(PersistenceError):
            await store.append(room.id, 9999, "hello")

    async def test_feed_failure_does_not_fail_append(
        self, store: MessageStore, transport: InMemoryTransport, study_room: StudyRoom
    ) -> None:
        room, alice, _ = study_room
        transport.fail_publish = True

        record = await store.append(room.id, alice.id, "still saved")

        assert [r.id for r in await store.list_messages(room.id)] == [record.id]

    async def test_database_error_becomes_persistence_error(self) -> None:
        session = MagicMock()
        session.__aenter__ = AsyncMock(return_value=session)
        session.__aexit__ = AsyncMock(return_value=False)
        session.execute = AsyncMock(
            side_effect=OperationalError("SELECT 1", {}, Exception("gone"))
        )
        session.rollback = AsyncMock()
        store = MessageStore(MagicMock(return_value=session))

        with pytest.raises(PersistenceError):
            await store.list_messages(1)
        session.rollback.assert_awaited_once()


class TestListMessages:
    """Bulk load ordering."""

    async def test_messages_are_ordered_by_creation(
        self, store: MessageStore, study_room: StudyRoom
    ) -> None:
        room, alice, bob = study_room
        first = await store.append(room.id, alice.id, "first")
        second = await store.append(room.id, bob.id, "second")
        third = await store.append(room.id, alice.id, "third")

        records = await store.list_messages(room.id)

        assert [r.id for r in records] == [first.id, second.id, third.id]

    async def test_other_rooms_are_excluded(
        self, store: MessageStore, study_room: StudyRoom
    ) -> None:
        room, alice, _ = study_room
        await store.append(room.id, alice.id, "hello")

        assert await store.list_messages(room.id + 1) == []


class TestEdit:
    """Only the sender may edit; edits are last-write-wins."""

    async def test_sender_can_edit(
        self, store: MessageStore, transport: InMemoryTransport, study_room: StudyRoom
    ) -> None:
        room, alice, _ = study_room
        original = await store.append(room.id, alice.id, "typo")

        edited = await store.edit(original.id, alice.id, "fixed", room_id=room.id)

        assert edited.id == original.id
        assert edited.body == "fixed"
        assert edited.created_at == original.created_at
        assert edited.updated_at is not None
        assert _events(transport)[-1].type == "UPDATE"
        assert _events(transport)[-1].record == edited

    async def test_other_user_cannot_edit(
        self, store: MessageStore, transport: InMemoryTransport, study_room: StudyRoom
    ) -> None:
        room, alice, bob = study_room
        original = await store.append(room.id, alice.id, "mine")

        with pytest.raises(AuthorizationError):
            await store.edit(original.id, bob.id, "hijacked")

        [stored] = await store.list_messages(room.id)
        assert stored.body == "mine"
        assert [e.type for e in _events(transport)] == ["INSERT"]

    async def test_blank_edit_is_rejected(
        self, store: MessageStore, study_room: StudyRoom
    ) -> None:
        room, alice, _ = study_room
        original = await store.append(room.id, alice.id, "keep")

        with pytest.raises(EmptyMessageError):
            await store.edit(original.id, alice.id, "  ")

    async def test_missing_message(
        self, store: MessageStore, study_room: StudyRoom
    ) -> None:
        _, alice, _ = study_room

        with pytest.raises(MessageNotFoundError):
            await store.edit("does-not-exist", alice.id, "body")

    async def test_wrong_room_is_not_found(
        self, store: MessageStore, study_room: StudyRoom
    ) -> None:
        room, alice, _ = study_room
        original = await store.append(room.id, alice.id, "hello")

        with pytest.raises(MessageNotFoundError):
            await store.edit(original.id, alice.id, "body", room_id=room.id + 1)

    async def test_last_write_wins(
        self, store: MessageStore, study_room: StudyRoom
    ) -> None:
        room, alice, _ = study_room
        original = await store.append(room.id, alice.id, "v1")

        await store.edit(original.id, alice.id, "v2")
        await store.edit(original.id, alice.id, "v3")

        [stored] = await store.list_messages(room.id)
        assert stored.body == "v3"


class TestRemove:
    """Only the sender may delete."""

    async def test_sender_can_remove(
        self, store: MessageStore, transport: InMemoryTransport, study_room: StudyRoom
    ) -> None:
        room, alice, _ = study_room
        original = await store.append(room.id, alice.id, "bye")

        await store.remove(original.id, alice.id, room.id)

        assert await store.list_messages(room.id) == []
        event = _events(transport)[-1]
        assert event.type == "DELETE"
        assert event.old_id == original.id

    async def test_other_user_cannot_remove(
        self, store: MessageStore, study_room: StudyRoom
    ) -> None:
        room, alice, bob = study_room
        original = await store.append(room.id, alice.id, "mine")

        with pytest.raises(AuthorizationError):
            await store.remove(original.id, bob.id, room.id)
        assert len(await store.list_messages(room.id)) == 1

    async def test_remove_twice_is_not_found(
        self, store: MessageStore, study_room: StudyRoom
    ) -> None:
        room, alice, _ = study_room
        original = await store.append(room.id, alice.id, "once")
        await store.remove(original.id, alice.id, room.id)

        with pytest.raises(MessageNotFoundError):
            await store.remove(original.id, alice.id, room.id)
