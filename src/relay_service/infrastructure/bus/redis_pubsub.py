"""Redis Pub/Sub event bus for running several relay instances.

The webhook lands on one instance; it publishes each normalized event to a
channel and every instance's subscriber broadcasts it to its own hub.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Coroutine

import redis.asyncio as aioredis
from redis.exceptions import ConnectionError as RedisConnectionError

from relay_service.application.exceptions import MalformedEventError
from relay_service.infrastructure.bus.serializer import deserialize_event, serialize_event
from relay_service.infrastructure.ws.protocol import IncomingMessageEvent, StatusUpdateEvent

logger = logging.getLogger(__name__)

RESUBSCRIBE_DELAY_SECONDS = 1.0

OnEventCallback = Callable[
    [IncomingMessageEvent | StatusUpdateEvent], Coroutine[Any, Any, Any]
]


class RedisPubSubPublisher:
    """EventPublisher over a single Pub/Sub channel."""

    def __init__(self, redis: aioredis.Redis, channel: str) -> None:
        self._redis = redis
        self._channel = channel

    async def publish(self, event: IncomingMessageEvent | StatusUpdateEvent) -> None:
        receivers = await self._redis.publish(self._channel, serialize_event(event))
        logger.debug("Published %s %s to %d instance(s)", event.type, event.message_id, receivers)


class RedisPubSubSubscriber:
    """Feeds channel messages to ``callback`` until stopped.

    A lost Redis connection is retried after ``retry_delay``; events
    published while disconnected are not replayed.
    """

    def __init__(
        self,
        redis: aioredis.Redis,
        channel: str,
        callback: OnEventCallback,
        *,
        retry_delay: float = RESUBSCRIBE_DELAY_SECONDS,
    ) -> None:
        self._redis = redis
        self._channel = channel
        self._callback = callback
        self._retry_delay = retry_delay
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="relay-pubsub-subscriber")
        logger.info("Pub/Sub subscriber started on channel=%s", self._channel)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Pub/Sub subscriber stopped")

    async def _run(self) -> None:
        while True:
            try:
                await self._listen()
            except RedisConnectionError as exc:
                logger.warning(
                    "Pub/Sub connection lost (%s), resubscribing in %.1fs",
                    exc,
                    self._retry_delay,
                )
                await asyncio.sleep(self._retry_delay)

    async def _listen(self) -> None:
        pubsub = self._redis.pubsub(ignore_subscribe_messages=True)
        await pubsub.subscribe(self._channel)
        try:
            async for message in pubsub.listen():
                if message["type"] == "message":
                    await self._dispatch(message["data"])
        finally:
            await pubsub.aclose()

    async def _dispatch(self, raw: str | bytes) -> None:
        try:
            event = deserialize_event(raw)
        except MalformedEventError as exc:
            logger.warning("Dropping malformed bus message: %s", exc)
            return
        try:
            await self._callback(event)
        except Exception:
            logger.exception("Broadcast of %s %s failed", event.type, event.message_id)
