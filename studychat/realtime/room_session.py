"""Room view lifetime: wires the store, change feed and typing channel.

A ``RoomSession`` is what a connected client holds while a room is open.
Opening subscribes to the change feed before loading the snapshot and
buffers whatever arrives in between, so no change is lost between the
bulk load and the live feed. Closing releases both subscriptions and all
typing timers together.
"""

from collections.abc import Awaitable, Callable, Sequence
from functools import partial

import structlog

from studychat.core.exceptions import AppException, NotFoundError, TransportError
from studychat.realtime.change_feed import ChangeFeed, SubscriptionHandle
from studychat.realtime.presence import PresenceBroadcaster, TypingDebouncer
from studychat.realtime.projection import (
    ProjectedMessage,
    RoomProjection,
    TypingTracker,
)
from studychat.realtime.scheduler import Scheduler
from studychat.schemas.message_schema import ChatMessageRecord, SenderProfile
from studychat.schemas.realtime_schema import TypingSignal
from studychat.services.message_store import MessageStore

logger = structlog.get_logger()

ProfileLookup = Callable[[int], Awaitable[SenderProfile]]

_PendingChange = Callable[[], Awaitable[None]]


class RoomSession:
    """One client's open view of one room."""

    def __init__(
        self,
        room_id: int,
        user: SenderProfile,
        store: MessageStore,
        feed: ChangeFeed,
        presence: PresenceBroadcaster,
        profiles: ProfileLookup,
        *,
        typing_timeout: float | None = None,
        scheduler: Scheduler | None = None,
        on_change: Callable[[], None] | None = None,
    ) -> None:
        self.room_id = room_id
        self.user = user
        self.draft = ""
        self.projection = RoomProjection(room_id)
        self.typing = TypingTracker(
            local_user_id=user.user_id,
            timeout=typing_timeout,
            scheduler=scheduler,
            on_change=on_change,
        )
        self._store = store
        self._feed = feed
        self._presence = presence
        self._profiles = profiles
        self._on_change = on_change
        self._debouncer = TypingDebouncer(
            presence,
            room_id,
            user.user_id,
            user.full_name,
            timeout=typing_timeout,
            scheduler=scheduler,
        )
        self._feed_handle: SubscriptionHandle | None = None
        self._presence_handle: SubscriptionHandle | None = None
        self._buffer: list[_PendingChange] | None = None
        self._mounted = False
        self._generation = 0

    # --- Lifecycle ---

    @property
    def is_open(self) -> bool:
        return self._mounted

    @property
    def is_live(self) -> bool:
        """Whether the change feed subscription is active."""
        return self._feed_handle is not None and self._feed_handle.active

    @property
    def messages(self) -> tuple[ProjectedMessage, ...]:
        return self.projection.messages

    @property
    def typing_text(self) -> str:
        return self.typing.text

    async def open(self) -> None:
        """Subscribe, load the snapshot, then replay buffered changes.

        Raises PersistenceError if the snapshot cannot be loaded; feed and
        typing subscription failures only degrade the view. If ``close()``
        runs while opening is still in progress, opening stops at its next
        step and releases anything it acquired in the meantime.
        """
        if self._mounted:
            return
        self._mounted = True
        self._generation += 1
        generation = self._generation
        self._buffer = []

        feed_handle: SubscriptionHandle | None = None
        try:
            feed_handle = await self._feed.subscribe(
                self.room_id, self._on_insert, self._on_update, self._on_delete
            )
        except TransportError:
            logger.warning(
                "Change feed unavailable, view will not update live",
                room_id=self.room_id,
            )
        if await self._abandoned(generation, feed_handle):
            return
        self._feed_handle = feed_handle

        try:
            snapshot = await self._store.list_messages(self.room_id)
        except AppException:
            if self._generation == generation:
                await self.close()
            raise
        if await self._abandoned(generation):
            return

        senders = await self._lookup_many({record.sender_id for record in snapshot})
        if await self._abandoned(generation):
            return
        self.projection.load_snapshot(snapshot, senders)

        while self._buffer:
            change = self._buffer.pop(0)
            await change()
            if await self._abandoned(generation):
                return
        self._buffer = None
        self._notify()

        presence_handle: SubscriptionHandle | None = None
        try:
            presence_handle = await self._presence.subscribe(
                self.room_id,
                self._on_typing_start,
                self._on_typing_stop,
                exclude_user_id=self.user.user_id,
            )
        except TransportError:
            logger.warning("Typing channel unavailable", room_id=self.room_id)
        if await self._abandoned(generation, presence_handle):
            return
        self._presence_handle = presence_handle

        logger.info("Room view opened", room_id=self.room_id, user_id=self.user.user_id)

    async def _abandoned(
        self, generation: int, handle: SubscriptionHandle | None = None
    ) -> bool:
        """Whether the view was closed while ``open()`` was awaiting.

        A handle acquired by that await is released here, since ``close()``
        could not see it.
        """
        if self._mounted and self._generation == generation:
            return False
        if handle is not None:
            await handle.close()
        logger.debug("Room view closed while opening", room_id=self.room_id)
        return True

    async def close(self) -> None:
        """Release both subscriptions and all typing timers. Idempotent."""
        if not self._mounted:
            return
        self._mounted = False
        self._buffer = None
        self._debouncer.cancel()
        self.typing.clear()
        for handle in (self._feed_handle, self._presence_handle):
            if handle is not None:
                await handle.close()
        self._feed_handle = None
        self._presence_handle = None
        logger.info("Room view closed", room_id=self.room_id, user_id=self.user.user_id)

    async def __aenter__(self) -> "RoomSession":
        await self.open()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # --- User actions ---

    async def update_draft(self, text: str) -> None:
        """Record composer input and announce typing."""
        self._ensure_open()
        self.draft = text
        await self._debouncer.keystroke()

    async def send(self, attachments: Sequence[str] = ()) -> ChatMessageRecord | None:
        """Send the current draft.

        On failure the draft is kept for a manual retry and the error is
        re-raised; nothing is retried automatically.
        """
        self._ensure_open()
        body = self.draft.strip()
        if not body and not attachments:
            return None
        await self._debouncer.message_sent()
        record = await self._store.append(
            self.room_id, self.user.user_id, body, list(attachments)
        )
        self.draft = ""
        await self._apply_insert(record)
        return record

    async def edit_message(
        self, message_id: str, body: str
    ) -> ChatMessageRecord | None:
        """Edit one of the user's messages optimistically.

        A blank or unchanged body is ignored. A message that is already gone
        is dropped from the view silently; any other failure rolls the view
        back and is re-raised.
        """
        self._ensure_open()
        new_body = body.strip()
        current = self.projection.get(message_id)
        if current is None or not new_body or new_body == current.record.body:
            return None

        previous = self.projection.apply_local_edit(message_id, new_body)
        self._notify()
        try:
            record = await self._store.edit(
                message_id, self.user.user_id, new_body, room_id=self.room_id
            )
        except NotFoundError:
            self.projection.apply_delete(message_id)
            self._notify()
            return None
        except AppException:
            if previous is not None:
                self.projection.restore(previous)
            self._notify()
            raise
        self.projection.apply_update(record)
        self._notify()
        return record

    async def delete_message(self, message_id: str) -> None:
        """Delete one of the user's messages optimistically."""
        self._ensure_open()
        previous = self.projection.apply_local_delete(message_id)
        if previous is None:
            return
        self._notify()
        try:
            await self._store.remove(message_id, self.user.user_id, self.room_id)
        except NotFoundError:
            pass
        except AppException:
            self.projection.restore(previous)
            self._notify()
            raise
        self.projection.apply_delete(message_id)

    # --- Feed handlers ---

    async def _on_insert(self, record: ChatMessageRecord) -> None:
        await self._receive(partial(self._apply_insert, record))

    async def _on_update(self, record: ChatMessageRecord) -> None:
        await self._receive(partial(self._apply_update, record))

    async def _on_delete(self, message_id: str) -> None:
        await self._receive(partial(self._apply_delete, message_id))

    async def _receive(self, change: _PendingChange) -> None:
        if not self._mounted:
            return
        if self._buffer is not None:
            self._buffer.append(change)
            return
        await change()

    async def _apply_insert(self, record: ChatMessageRecord) -> None:
        sender = await self._lookup(record.sender_id)
        # the view may have closed while the lookup was in flight
        if self._mounted and self.projection.apply_insert(record, sender):
            self._notify()

    async def _apply_update(self, record: ChatMessageRecord) -> None:
        sender = await self._lookup(record.sender_id)
        if self._mounted and self.projection.apply_update(record, sender):
            self._notify()

    async def _apply_delete(self, message_id: str) -> None:
        if self.projection.apply_delete(message_id):
            self._notify()

    async def _on_typing_start(self, signal: TypingSignal) -> None:
        if self._mounted:
            self.typing.start(signal.user_id, signal.user_display_name)

    async def _on_typing_stop(self, signal: TypingSignal) -> None:
        if self._mounted:
            self.typing.stop(signal.user_id)

    # --- Helpers ---

    async def _lookup(self, user_id: int) -> SenderProfile:
        if user_id == self.user.user_id:
            return self.user
        try:
            return await self._profiles(user_id)
        except Exception:
            logger.exception("Sender lookup failed", user_id=user_id)
            return SenderProfile(user_id=user_id)

    async def _lookup_many(self, user_ids: set[int]) -> dict[int, SenderProfile]:
        return {user_id: await self._lookup(user_id) for user_id in user_ids}

    def _ensure_open(self) -> None:
        if not self._mounted:
            raise RuntimeError(f"Room view {self.room_id} is not open")

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change()


class RoomRegistry:
    """Per-client registry holding at most one open view per room."""

    def __init__(self, factory: Callable[[int], RoomSession]) -> None:
        self._factory = factory
        self._sessions: dict[int, RoomSession] = {}

    def get(self, room_id: int) -> RoomSession | None:
        return self._sessions.get(room_id)

    def __contains__(self, room_id: object) -> bool:
        return room_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    async def open(self, room_id: int) -> RoomSession:
        """Return the open view for a room, opening one if needed."""
        existing = self._sessions.get(room_id)
        if existing is not None:
            return existing
        session = self._factory(room_id)
        self._sessions[room_id] = session
        try:
            await session.open()
        except Exception:
            self._sessions.pop(room_id, None)
            raise
        return session

    async def close(self, room_id: int) -> None:
        session = self._sessions.pop(room_id, None)
        if session is not None:
            await session.close()

    async def close_all(self) -> None:
        for room_id in list(self._sessions):
            await self.close(room_id)
