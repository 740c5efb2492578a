"""Ephemeral typing indicators broadcast per room."""

import asyncio
from collections.abc import Awaitable, Callable

import structlog
from pydantic import ValidationError

from studychat.core.config import settings
from studychat.core.exceptions import TransportError
from studychat.core.settings import ChatConfig
from studychat.realtime.change_feed import SubscriptionHandle
from studychat.realtime.scheduler import AsyncioScheduler, Scheduler, TimerHandle
from studychat.realtime.transport import PubSubTransport
from studychat.schemas.realtime_schema import TypingKind, TypingSignal

logger = structlog.get_logger()

SignalHandler = Callable[[TypingSignal], Awaitable[None]]


class PresenceBroadcaster:
    """Fire-and-forget publisher and subscriber for typing signals.

    Nothing here is persisted. A failed publish is logged and dropped;
    typing indicators never block or fail message sending.
    """

    def __init__(
        self, transport: PubSubTransport, config: ChatConfig | None = None
    ) -> None:
        self._transport = transport
        self._config = config or settings.chat

    async def announce_typing(
        self, room_id: int, user_id: int, user_display_name: str
    ) -> bool:
        """Publish a ``start`` signal. Returns False if the publish failed."""
        return await self._announce(room_id, user_id, user_display_name, "start")

    async def announce_stop_typing(
        self, room_id: int, user_id: int, user_display_name: str
    ) -> bool:
        """Publish a ``stop`` signal. Returns False if the publish failed."""
        return await self._announce(room_id, user_id, user_display_name, "stop")

    async def _announce(
        self, room_id: int, user_id: int, user_display_name: str, kind: TypingKind
    ) -> bool:
        signal = TypingSignal(
            room_id=room_id,
            user_id=user_id,
            user_display_name=user_display_name,
            kind=kind,
        )
        try:
            await self._transport.publish(
                self._config.typing_channel(str(room_id)), signal.model_dump_json()
            )
        except TransportError:
            logger.warning(
                "Typing signal not delivered",
                room_id=room_id,
                user_id=user_id,
                kind=kind,
            )
            return False
        return True

    async def subscribe(
        self,
        room_id: int,
        on_start: SignalHandler,
        on_stop: SignalHandler,
        exclude_user_id: int | None = None,
    ) -> SubscriptionHandle:
        """Receive other users' typing signals for a room.

        Signals from ``exclude_user_id`` (the local user) are dropped.
        Raises TransportError if the subscription cannot be established.
        """

        async def dispatch(data: str) -> None:
            try:
                signal = TypingSignal.model_validate_json(data)
            except ValidationError:
                logger.warning("Dropping malformed typing signal", room_id=room_id)
                return
            if signal.room_id != room_id or signal.user_id == exclude_user_id:
                return
            if signal.kind == "start":
                await on_start(signal)
            else:
                await on_stop(signal)

        subscription = await self._transport.subscribe(
            self._config.typing_channel(str(room_id)), dispatch
        )
        return SubscriptionHandle(room_id, subscription)


class TypingDebouncer:
    """Sender-side typing announcements for one user in one room.

    Every keystroke re-announces ``start`` and re-arms a single-shot quiet
    timer; when it fires a ``stop`` is announced. Sending a message
    announces ``stop`` right away.
    """

    def __init__(
        self,
        broadcaster: PresenceBroadcaster,
        room_id: int,
        user_id: int,
        user_display_name: str,
        timeout: float | None = None,
        scheduler: Scheduler | None = None,
    ) -> None:
        self._broadcaster = broadcaster
        self._room_id = room_id
        self._user_id = user_id
        self._user_display_name = user_display_name
        self._timeout = (
            timeout if timeout is not None else settings.chat.typing_timeout_seconds
        )
        self._scheduler = scheduler or AsyncioScheduler()
        self._timer: TimerHandle | None = None
        self._pending: set[asyncio.Task[bool]] = set()

    @property
    def armed(self) -> bool:
        """Whether a quiet-period stop is scheduled."""
        return self._timer is not None

    async def keystroke(self) -> None:
        self._arm()
        await self._broadcaster.announce_typing(
            self._room_id, self._user_id, self._user_display_name
        )

    async def message_sent(self) -> None:
        self.cancel()
        await self._broadcaster.announce_stop_typing(
            self._room_id, self._user_id, self._user_display_name
        )

    def cancel(self) -> None:
        """Drop the quiet timer without announcing anything."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _arm(self) -> None:
        self.cancel()
        self._timer = self._scheduler.call_later(self._timeout, self._on_quiet)

    def _on_quiet(self) -> None:
        self._timer = None
        task = asyncio.ensure_future(
            self._broadcaster.announce_stop_typing(
                self._room_id, self._user_id, self._user_display_name
            )
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
