"""Pub/sub transport used by the change feed and the typing channel.

The transport only moves strings between named channels. Delivery is
at-least-once and best-effort ordered: messages published by one writer
arrive in publish order, nothing is promised across writers.
"""

import asyncio
import contextlib
from collections.abc import Awaitable, Callable
from typing import Protocol

import redis.asyncio as redis
import structlog
from redis.exceptions import RedisError

from studychat.core.exceptions import TransportError

logger = structlog.get_logger()

MessageHandler = Callable[[str], Awaitable[None]]

RESUBSCRIBE_DELAY_SECONDS = 0.5


class TransportSubscription(Protocol):
    """Live subscription to one channel."""

    channel: str

    @property
    def active(self) -> bool: ...

    async def close(self) -> None: ...


class PubSubTransport(Protocol):
    """Named-channel publish/subscribe."""

    async def publish(self, channel: str, data: str) -> None: ...

    async def subscribe(
        self, channel: str, handler: MessageHandler
    ) -> TransportSubscription: ...


class RedisSubscription:
    """One Redis pub/sub connection feeding one handler from a listener task."""

    def __init__(
        self,
        client: redis.Redis,  # type: ignore[type-arg]
        channel: str,
        handler: MessageHandler,
        max_resubscribe_attempts: int = 1,
    ) -> None:
        self.channel = channel
        self._client = client
        self._handler = handler
        self._max_resubscribe_attempts = max_resubscribe_attempts
        self._pubsub = client.pubsub()
        self._task: asyncio.Task[None] | None = None
        self._closed = False

    @property
    def active(self) -> bool:
        return not self._closed and self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Subscribe and spawn the listener task."""
        try:
            await self._pubsub.subscribe(self.channel)
        except RedisError as exc:
            await self._release()
            raise TransportError(f"Subscribe to {self.channel} failed") from exc
        self._task = asyncio.create_task(
            self._listen(), name=f"pubsub-listener:{self.channel}"
        )

    async def _listen(self) -> None:
        attempts = 0
        while not self._closed:
            try:
                async for message in self._pubsub.listen():
                    if message.get("type") != "message":
                        continue
                    await self._dispatch(message["data"])
                return
            except RedisError:
                if attempts >= self._max_resubscribe_attempts:
                    logger.exception("Subscription dropped", channel=self.channel)
                    return
                attempts += 1
                logger.warning(
                    "Subscription interrupted, resubscribing",
                    channel=self.channel,
                    attempt=attempts,
                )
                await asyncio.sleep(RESUBSCRIBE_DELAY_SECONDS)
                with contextlib.suppress(RedisError):
                    await self._release()
                self._pubsub = self._client.pubsub()
                try:
                    await self._pubsub.subscribe(self.channel)
                except RedisError:
                    logger.exception("Resubscribe failed", channel=self.channel)
                    return

    async def _dispatch(self, data: str | bytes) -> None:
        if isinstance(data, bytes):
            data = data.decode()
        try:
            await self._handler(data)
        except Exception:
            logger.exception("Subscription handler failed", channel=self.channel)

    async def close(self) -> None:
        """Stop listening and release the connection. Safe to call twice."""
        if self._closed:
            return
        self._closed = True
        if self._task is not None and self._task is not asyncio.current_task():
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        try:
            await self._pubsub.unsubscribe(self.channel)
        except RedisError:
            logger.warning("Unsubscribe failed", channel=self.channel)
        await self._release()

    async def _release(self) -> None:
        try:
            await self._pubsub.aclose()
        except RedisError:
            logger.warning("Pub/sub connection close failed", channel=self.channel)


class RedisPubSubTransport:
    """Pub/sub transport backed by Redis PUBLISH/SUBSCRIBE."""

    def __init__(self, client: redis.Redis) -> None:  # type: ignore[type-arg]
        self._client = client

    async def publish(self, channel: str, data: str) -> None:
        """Publish a payload; raises TransportError when Redis is unreachable."""
        try:
            await self._client.publish(channel, data)
        except RedisError as exc:
            raise TransportError(f"Publish to {channel} failed") from exc

    async def subscribe(
        self, channel: str, handler: MessageHandler
    ) -> RedisSubscription:
        """Subscribe a handler to a channel."""
        subscription = RedisSubscription(self._client, channel, handler)
        await subscription.start()
        logger.debug("Subscribed", channel=channel)
        return subscription
