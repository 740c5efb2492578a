"""Terminal chat client for one room.

Usage:
    python -m scripts.chat_client --room 1 --user 2

Lines are sent as messages. Commands:
    /edit <message-id> <text>   edit one of your messages
    /delete <message-id>        delete one of your messages
    /quit                       leave the room
"""

import argparse
import asyncio
import sys

from studychat.core.database import async_session_factory, engine
from studychat.core.exceptions import AppException
from studychat.core.redis import close_redis, init_redis
from studychat.realtime.change_feed import ChangeFeed
from studychat.realtime.presence import PresenceBroadcaster
from studychat.realtime.room_session import RoomSession
from studychat.realtime.transport import RedisPubSubTransport
from studychat.services.message_store import MessageStore
from studychat.services.profile_service import ProfileDirectory


def render(session: RoomSession) -> None:
    """Redraw the room transcript and typing line."""
    print("\033[2J\033[H", end="")
    for entry in session.messages:
        name = entry.sender.full_name if entry.sender else str(entry.record.sender_id)
        stamp = entry.record.created_at.strftime("%H:%M")
        edited = " (edited)" if entry.record.is_edited() else ""
        attachments = entry.record.attachments
        files = f" [{', '.join(attachments)}]" if attachments else ""
        print(f"{stamp} {name}: {entry.record.body}{files}{edited}  <{entry.id[:8]}>")
    if session.typing_text:
        print(f"... {session.typing_text}")
    print("> ", end="", flush=True)


def resolve_id(session: RoomSession, prefix: str) -> str | None:
    matches = [mid for mid in session.projection.message_ids if mid.startswith(prefix)]
    return matches[0] if len(matches) == 1 else None


async def run(room_id: int, user_id: int) -> None:
    client = await init_redis()
    transport = RedisPubSubTransport(client)
    feed = ChangeFeed(transport)
    profiles = ProfileDirectory(async_session_factory)
    me = await profiles.lookup(user_id)

    def redraw() -> None:
        render(session)

    session = RoomSession(
        room_id,
        me,
        MessageStore(async_session_factory, feed),
        feed,
        PresenceBroadcaster(transport),
        profiles.lookup,
        on_change=redraw,
    )

    try:
        async with session:
            render(session)
            while True:
                line = await asyncio.to_thread(sys.stdin.readline)
                if not line or line.strip() == "/quit":
                    break
                line = line.rstrip("\n")
                try:
                    if line.startswith("/edit "):
                        _, prefix, text = line.split(" ", 2)
                        message_id = resolve_id(session, prefix)
                        if message_id:
                            await session.edit_message(message_id, text)
                    elif line.startswith("/delete "):
                        message_id = resolve_id(session, line.split(" ", 1)[1])
                        if message_id:
                            await session.delete_message(message_id)
                    else:
                        await session.update_draft(line)
                        await session.send()
                except (AppException, ValueError) as exc:
                    print(f"! {exc}")
                render(session)
    finally:
        await close_redis()
        await engine.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Chat in a room from the terminal")
    parser.add_argument("--room", type=int, required=True, help="Room id")
    parser.add_argument("--user", type=int, required=True, help="Your user id")
    args = parser.parse_args()

    asyncio.run(run(args.room, args.user))


if __name__ == "__main__":
    main()
