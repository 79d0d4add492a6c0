"""
Redis Message Bus

IMessageBus implementation over Redis Pub/Sub.

Routing keys are used as channel names and messages travel as JSON
(see dmsync.messaging.messages). A single listener task receives every
subscribed channel and hands decoded messages to the registered handler.
"""

import asyncio
from typing import Any

import redis.asyncio as redis
import structlog  # type: ignore[import-untyped]
from redis.exceptions import RedisError

from ..core.exceptions import MessageDecodeError, PublishFailure
from ..core.interfaces import IMessageBus, MessageHandler
from .messages import BaseMessage, deserialize_message, serialize_message

logger = structlog.get_logger()


class RedisMessageBus(IMessageBus):
    """
    Redis Pub/Sub message bus

    Usage:
        bus = RedisMessageBus(redis.from_url(settings.redis_url))
        await bus.start()

        await bus.subscribe(routing_key_to_dm("app"), on_message)
        await bus.publish(routing_key_for_agent("app", root), InstanceAdd.from_instance(root))
    """

    def __init__(self, redis_client: redis.Redis):
        """
        Initialize Redis Message Bus

        Args:
            redis_client: Redis async client instance
        """
        self.redis = redis_client

        # routing key -> handler
        self._handlers: dict[str, MessageHandler] = {}

        self._pubsub: Any = None
        self._listener_task: asyncio.Task | None = None

    @classmethod
    def from_url(cls, redis_url: str) -> "RedisMessageBus":
        """Create a bus from a Redis URL"""
        return cls(redis.from_url(redis_url, decode_responses=True))

    async def start(self) -> None:
        """Start the Pub/Sub listener"""
        self._pubsub = self.redis.pubsub()

        # Channels registered before start
        if self._handlers:
            await self._pubsub.subscribe(*self._handlers.keys())

        self._listener_task = asyncio.create_task(self._listen())
        logger.info("message_bus_started", channels=len(self._handlers))

    async def stop(self) -> None:
        """Stop the listener and close the Pub/Sub connection"""
        if self._listener_task:
            self._listener_task.cancel()
            try:
                await self._listener_task
            except asyncio.CancelledError:
                pass
            self._listener_task = None

        if self._pubsub:
            await self._pubsub.aclose()
            self._pubsub = None

        logger.info("message_bus_stopped")

    async def publish(self, routing_key: str, message: BaseMessage) -> None:
        """Publish a message on a channel"""
        payload = serialize_message(message)
        try:
            receivers = await self.redis.publish(routing_key, payload)
        except RedisError as e:
            raise PublishFailure(routing_key, str(e)) from e

        logger.debug(
            "message_published",
            routing_key=routing_key,
            kind=message.kind,  # type: ignore[attr-defined]
            message_id=message.message_id,
            receivers=receivers,
        )

    async def subscribe(self, routing_key: str, handler: MessageHandler) -> None:
        """Register a handler and subscribe to its channel"""
        already_subscribed = routing_key in self._handlers
        self._handlers[routing_key] = handler

        if self._pubsub and not already_subscribed:
            await self._pubsub.subscribe(routing_key)

        logger.debug("message_bus_subscribed", routing_key=routing_key)

    async def unsubscribe(self, routing_key: str) -> None:
        """Remove a handler and unsubscribe from its channel"""
        if self._handlers.pop(routing_key, None) is None:
            return

        if self._pubsub:
            await self._pubsub.unsubscribe(routing_key)

        logger.debug("message_bus_unsubscribed", routing_key=routing_key)

    async def _listen(self) -> None:
        """Listen for Redis Pub/Sub messages"""
        if not self._pubsub:
            return

        try:
            while True:
                # listen() ends immediately while nothing is subscribed
                if not self._pubsub.subscribed:
                    await asyncio.sleep(0.1)
                    continue

                async for raw in self._pubsub.listen():
                    if raw["type"] != "message":
                        continue
                    await self._dispatch(raw["channel"], raw["data"])

        except asyncio.CancelledError:
            pass
        except Exception:
            logger.exception("message_bus_listener_failed")

    async def _dispatch(self, channel: str | bytes, data: str | bytes) -> None:
        """Decode a payload and call the handler of its channel"""
        if isinstance(channel, bytes):
            channel = channel.decode()

        handler = self._handlers.get(channel)
        if handler is None:
            logger.warning("message_on_unhandled_channel", routing_key=channel)
            return

        try:
            message = deserialize_message(data)
        except MessageDecodeError as e:
            logger.warning("message_decode_failed", routing_key=channel, error=str(e))
            return

        try:
            await handler(message)
        except Exception:
            logger.exception("message_handler_failed", routing_key=channel, kind=message.kind)
