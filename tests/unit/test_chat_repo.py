"""Tests for ChatRepository and UserRepository."""

from datetime import UTC, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from studychat.models.room import Room
from studychat.models.user import User
from studychat.repositories.chat_repo import ChatRepository
from studychat.repositories.user_repo import UserRepository
from tests.conftest import seed_room, seed_user

StudyRoom = tuple[Room, User, User]


class TestRoomMembership:
    """Creator or participant may see a room."""

    async def test_creator_and_participant_are_members(
        self, db_session: AsyncSession, study_room: StudyRoom
    ) -> None:
        room, alice, bob = study_room
        repo = ChatRepository(db_session)

        assert await repo.is_room_member(room.id, alice.id) is True
        assert await repo.is_room_member(room.id, bob.id) is True

    async def test_outsider_is_not_a_member(
        self, db_session: AsyncSession, study_room: StudyRoom
    ) -> None:
        room, _, _ = study_room
        carol = await seed_user("carol@test.com", "Carol")

        repo = ChatRepository(db_session)
        assert await repo.is_room_member(room.id, carol.id) is False

    async def test_missing_room(
        self, db_session: AsyncSession, study_room: StudyRoom
    ) -> None:
        _, alice, _ = study_room
        repo = ChatRepository(db_session)

        assert await repo.is_room_member(9999, alice.id) is False
        assert await repo.find_room_by_id(9999) is None

    async def test_rooms_for_user(
        self, db_session: AsyncSession, study_room: StudyRoom
    ) -> None:
        room, alice, bob = study_room
        other = await seed_room("Bob's room", bob.id)
        await seed_room("Private", (await seed_user("c@test.com", "Carol")).id)

        alice_rooms = await ChatRepository(db_session).find_rooms_for_user(alice.id)
        bob_rooms = await ChatRepository(db_session).find_rooms_for_user(bob.id)

        assert [r.id for r in alice_rooms] == [room.id]
        assert {r.id for r in bob_rooms} == {room.id, other.id}


class TestMessages:
    """Message rows."""

    async def test_messages_sorted_by_created_at(
        self, db_session: AsyncSession, study_room: StudyRoom
    ) -> None:
        room, alice, bob = study_room
        repo = ChatRepository(db_session)
        base = datetime(2024, 3, 1, tzinfo=UTC)
        late = await repo.create_message(
            room.id, alice.id, "late", [], created_at=base + timedelta(minutes=5)
        )
        early = await repo.create_message(
            room.id, bob.id, "early", [], created_at=base
        )
        await db_session.commit()

        messages = await repo.find_messages_by_room_id(room.id)

        assert [m.id for m in messages] == [early.id, late.id]

    async def test_create_assigns_uuid_and_defaults(
        self, db_session: AsyncSession, study_room: StudyRoom
    ) -> None:
        room, alice, _ = study_room
        repo = ChatRepository(db_session)

        message = await repo.create_message(
            room.id, alice.id, "", ["https://cdn.test/a.png"]
        )

        assert len(message.id) == 36
        assert message.attachments == ["https://cdn.test/a.png"]
        assert message.updated_at is None
        assert message.created_at is not None

    async def test_update_and_delete(
        self, db_session: AsyncSession, study_room: StudyRoom
    ) -> None:
        room, alice, _ = study_room
        repo = ChatRepository(db_session)
        message = await repo.create_message(room.id, alice.id, "before", [])

        updated = await repo.update_message_body(
            message, "after", datetime.now(UTC)
        )
        assert updated.body == "after"
        assert updated.updated_at is not None

        await repo.delete_message(message.id)
        assert await repo.find_message_by_id(message.id) is None


class TestUserRepository:
    """Profile lookups."""

    async def test_find_by_ids(
        self, db_session: AsyncSession, study_room: StudyRoom
    ) -> None:
        _, alice, bob = study_room
        repo = UserRepository(db_session)

        users = await repo.find_by_ids([alice.id, bob.id, 9999])

        assert set(users) == {alice.id, bob.id}
        assert users[alice.id].full_name == "Alice"
        assert await repo.find_by_ids([]) == {}

    async def test_exists_by_id(
        self, db_session: AsyncSession, study_room: StudyRoom
    ) -> None:
        _, alice, _ = study_room
        repo = UserRepository(db_session)

        assert await repo.exists_by_id(alice.id) is True
        assert await repo.exists_by_id(9999) is False
        assert (await repo.find_by_id(alice.id)).email == "alice@test.com"  # type: ignore[union-attr]
