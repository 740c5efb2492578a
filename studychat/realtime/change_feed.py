"""Per-room change feed for the chat_messages table."""

from collections.abc import Awaitable, Callable

import structlog
from pydantic import ValidationError

from studychat.core.config import settings
from studychat.core.settings import ChatConfig
from studychat.realtime.transport import PubSubTransport, TransportSubscription
from studychat.schemas.message_schema import ChatMessageRecord
from studychat.schemas.realtime_schema import ChangeEvent

logger = structlog.get_logger()

RecordHandler = Callable[[ChatMessageRecord], Awaitable[None]]
DeleteHandler = Callable[[str], Awaitable[None]]


class SubscriptionHandle:
    """Handle returned by subscribe(); releases the transport subscription."""

    def __init__(self, room_id: int, subscription: TransportSubscription) -> None:
        self.room_id = room_id
        self._subscription = subscription
        self._released = False

    @property
    def channel(self) -> str:
        return self._subscription.channel

    @property
    def active(self) -> bool:
        return not self._released and self._subscription.active

    async def close(self) -> None:
        """Release the subscription; repeated calls are no-ops."""
        if self._released:
            return
        self._released = True
        await self._subscription.close()


class ChangeFeed:
    """Publishes and delivers insert/update/delete notifications per room.

    Events are not replayed: a subscriber only sees changes published
    after its subscription is live. Updates carry the full row.
    """

    def __init__(
        self, transport: PubSubTransport, config: ChatConfig | None = None
    ) -> None:
        self._transport = transport
        self._config = config or settings.chat

    # --- Publishing (used by the message store) ---

    async def publish_insert(self, record: ChatMessageRecord) -> None:
        await self._publish(
            ChangeEvent(type="INSERT", room_id=record.room_id, record=record)
        )

    async def publish_update(self, record: ChatMessageRecord) -> None:
        await self._publish(
            ChangeEvent(type="UPDATE", room_id=record.room_id, record=record)
        )

    async def publish_delete(self, room_id: int, message_id: str) -> None:
        await self._publish(
            ChangeEvent(type="DELETE", room_id=room_id, old_id=message_id)
        )

    async def _publish(self, event: ChangeEvent) -> None:
        await self._transport.publish(
            self._config.messages_channel(str(event.room_id)),
            event.model_dump_json(),
        )

    # --- Subscribing ---

    async def subscribe(
        self,
        room_id: int,
        on_insert: RecordHandler,
        on_update: RecordHandler,
        on_delete: DeleteHandler,
    ) -> SubscriptionHandle:
        """Register callbacks for one room's changes.

        Raises TransportError if the subscription cannot be established.
        """

        async def dispatch(data: str) -> None:
            try:
                event = ChangeEvent.model_validate_json(data)
            except ValidationError:
                logger.warning("Dropping malformed change event", room_id=room_id)
                return
            if event.room_id != room_id:
                return
            record = event.record
            if record is None:
                await on_delete(event.message_id)
            elif event.type == "INSERT":
                await on_insert(record)
            else:
                await on_update(record)

        subscription = await self._transport.subscribe(
            self._config.messages_channel(str(room_id)), dispatch
        )
        return SubscriptionHandle(room_id, subscription)

    async def unsubscribe(self, handle: SubscriptionHandle) -> None:
        """Release a subscription. Idempotent."""
        await handle.close()
