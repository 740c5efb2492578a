"""Server-Sent Events relay of a room's change feed and typing signals."""

import asyncio
from collections.abc import AsyncGenerator, Awaitable, Callable

import structlog

from studychat.core.exceptions import TransportError
from studychat.realtime.change_feed import ChangeFeed, SubscriptionHandle
from studychat.realtime.presence import PresenceBroadcaster
from studychat.schemas.message_schema import ChatMessageRecord
from studychat.schemas.realtime_schema import ChangeEvent, TypingSignal

logger = structlog.get_logger()

HEARTBEAT_SECONDS = 15.0


class RoomEventStream:
    """Forwards one room's realtime traffic to a single HTTP client.

    Subscriptions are opened eagerly by ``open()`` so that a transport
    failure can still be reported as an error response; they are released
    when the event generator finishes or the client disconnects.
    """

    def __init__(
        self,
        room_id: int,
        user_id: int,
        feed: ChangeFeed,
        presence: PresenceBroadcaster,
        heartbeat_seconds: float = HEARTBEAT_SECONDS,
    ) -> None:
        self.room_id = room_id
        self.user_id = user_id
        self._feed = feed
        self._presence = presence
        self._heartbeat_seconds = heartbeat_seconds
        self._queue: asyncio.Queue[tuple[str, str]] = asyncio.Queue()
        self._handles: list[SubscriptionHandle] = []

    async def open(self) -> None:
        """Subscribe to the room. Raises TransportError if the feed is down.

        Any other failure, cancellation included, releases whatever was
        already subscribed before propagating.
        """
        try:
            self._handles.append(
                await self._feed.subscribe(
                    self.room_id, self._on_insert, self._on_update, self._on_delete
                )
            )
            try:
                self._handles.append(
                    await self._presence.subscribe(
                        self.room_id,
                        self._on_typing,
                        self._on_typing,
                        exclude_user_id=self.user_id,
                    )
                )
            except TransportError:
                logger.warning("Typing channel unavailable", room_id=self.room_id)
        except BaseException:
            await self.close()
            raise

    async def close(self) -> None:
        for handle in self._handles:
            await handle.close()
        self._handles.clear()

    async def events(
        self, is_disconnected: Callable[[], Awaitable[bool]] | None = None
    ) -> AsyncGenerator[str, None]:
        """Yield SSE frames until the client goes away."""
        try:
            while True:
                if is_disconnected is not None and await is_disconnected():
                    break
                try:
                    event, data = await asyncio.wait_for(
                        self._queue.get(), timeout=self._heartbeat_seconds
                    )
                except TimeoutError:
                    yield ": keep-alive\n\n"
                    continue
                yield f"event: {event}\ndata: {data}\n\n"
        finally:
            await self.close()
            logger.info(
                "Room stream closed", room_id=self.room_id, user_id=self.user_id
            )

    async def _on_insert(self, record: ChatMessageRecord) -> None:
        self._push(ChangeEvent(type="INSERT", room_id=self.room_id, record=record))

    async def _on_update(self, record: ChatMessageRecord) -> None:
        self._push(ChangeEvent(type="UPDATE", room_id=self.room_id, record=record))

    async def _on_delete(self, message_id: str) -> None:
        self._push(ChangeEvent(type="DELETE", room_id=self.room_id, old_id=message_id))

    async def _on_typing(self, signal: TypingSignal) -> None:
        self._queue.put_nowait(("typing", signal.model_dump_json()))

    def _push(self, event: ChangeEvent) -> None:
        self._queue.put_nowait(("message", event.model_dump_json()))
