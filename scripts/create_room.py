"""Create a chat room and its members in the database.

Usage:
    python -m scripts.create_room --title "Algebra study group" \
        --creator ana@test.com:Ana --member bob@test.com:Bob
"""

import argparse
import asyncio

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from studychat.core.database import Base, async_session_factory, engine
from studychat.models.room import Room, RoomParticipant
from studychat.models.user import User
from studychat.services.token_service import TokenService


def parse_identity(value: str) -> tuple[str, str]:
    """Split ``email:Full Name`` into its parts."""
    email, _, full_name = value.partition(":")
    if not email or not full_name:
        raise argparse.ArgumentTypeError("expected EMAIL:FULL NAME")
    return email.strip(), full_name.strip()


async def get_or_create_user(session: AsyncSession, email: str, full_name: str) -> User:
    """Return the user with this email, creating the row if missing."""
    result = await session.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    if user is None:
        user = User(email=email, full_name=full_name)
        session.add(user)
        await session.flush()
    return user


async def create_room(
    title: str, creator: tuple[str, str], members: list[tuple[str, str]]
) -> None:
    """Create a room owned by ``creator`` and join ``members`` to it."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    tokens = TokenService()
    async with async_session_factory() as session:
        owner = await get_or_create_user(session, *creator)
        room = Room(title=title, creator_id=owner.id)
        session.add(room)
        await session.flush()

        users = [owner]
        for email, full_name in members:
            member = await get_or_create_user(session, email, full_name)
            session.add(RoomParticipant(room_id=room.id, user_id=member.id))
            users.append(member)
        await session.commit()

        print(f"Room created: {title} (id={room.id})")
        for user in users:
            token = tokens.create_access_token(user.id, user.email, user.role)
            print(f"  {user.full_name} (id={user.id}) token: {token}")

    await engine.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Create a chat room")
    parser.add_argument("--title", required=True, help="Room title")
    parser.add_argument(
        "--creator", required=True, type=parse_identity, help="EMAIL:FULL NAME"
    )
    parser.add_argument(
        "--member",
        action="append",
        default=[],
        type=parse_identity,
        help="EMAIL:FULL NAME, repeatable",
    )
    args = parser.parse_args()

    asyncio.run(create_room(args.title, args.creator, args.member))


if __name__ == "__main__":
    main()
