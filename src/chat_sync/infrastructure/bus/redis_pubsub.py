"""Redis Pub/Sub: backend-side publisher and client-side conversation channel."""
from __future__ import annotations

import asyncio
import logging
from typing import Any

import redis.asyncio as aioredis
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from chat_sync.application.ports.realtime import OnHealth, OnMessage, Unsubscribe
from chat_sync.application.retry import calc_backoff
from chat_sync.config import settings
from chat_sync.domain.value_objects.enums import ChannelHealth
from chat_sync.infrastructure.bus.protocol import (
    MESSAGE_INSERTED,
    MESSAGE_UPDATED,
    MessageRowPayload,
)
from chat_sync.infrastructure.bus.serializer import deserialize_event, serialize_event

logger = logging.getLogger(__name__)


def conversation_channel(conversation_id: str, prefix: str = settings.REALTIME_CHANNEL_PREFIX) -> str:
    return f"{prefix}{conversation_id}"


class RedisPubSubPublisher:
    """Implements application.ports.bus.EventPublisher."""

    def __init__(self, redis: aioredis.Redis) -> None:
        self._redis = redis

    async def publish(self, channel: str, event_type: str, payload: dict[str, Any]) -> None:
        raw = serialize_event(event_type, payload)
        await self._redis.publish(channel, raw)


class RedisRealtimeChannel:
    """Implements application.ports.realtime.RealtimeChannel.

    Each subscription is a background task that reconnects with exponential
    backoff and reports health transitions to its subscriber.
    """

    def __init__(
        self,
        redis: aioredis.Redis,
        *,
        prefix: str = settings.REALTIME_CHANNEL_PREFIX,
        subscribe_timeout: float = settings.REALTIME_SUBSCRIBE_TIMEOUT,
        reconnect_delay: float = settings.REALTIME_RECONNECT_DELAY,
        max_reconnect_delay: float = settings.REALTIME_RECONNECT_MAX_DELAY,
    ) -> None:
        self._redis = redis
        self._prefix = prefix
        self._subscribe_timeout = subscribe_timeout
        self._reconnect_delay = reconnect_delay
        self._max_reconnect_delay = max_reconnect_delay
        self._tasks: set[asyncio.Task[None]] = set()

    def subscribe(
        self,
        conversation_id: str,
        on_insert: OnMessage,
        on_update: OnMessage,
        on_health: OnHealth,
    ) -> Unsubscribe:
        channel = conversation_channel(conversation_id, self._prefix)
        task = asyncio.get_running_loop().create_task(
            self._listen(channel, on_insert, on_update, on_health),
            name=f"realtime-{conversation_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        def unsubscribe() -> None:
            if not task.done():
                task.cancel()

        return unsubscribe

    async def close(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)

    async def _listen(
        self,
        channel: str,
        on_insert: OnMessage,
        on_update: OnMessage,
        on_health: OnHealth,
    ) -> None:
        attempt = 0
        while True:
            pubsub = self._redis.pubsub()
            try:
                await asyncio.wait_for(pubsub.subscribe(channel), timeout=self._subscribe_timeout)
                attempt = 0
                logger.info("Realtime subscribed channel=%s", channel)
                on_health(ChannelHealth.SUBSCRIBED)
                async for message in pubsub.listen():
                    if message["type"] != "message":
                        continue
                    self._dispatch(message["data"], on_insert, on_update)
                logger.warning("Realtime stream ended channel=%s", channel)
                on_health(ChannelHealth.CHANNEL_ERROR)
            except asyncio.CancelledError:
                on_health(ChannelHealth.CLOSED)
                raise
            except (asyncio.TimeoutError, RedisTimeoutError):
                logger.warning("Realtime subscribe timed out channel=%s", channel)
                on_health(ChannelHealth.TIMED_OUT)
            except (RedisError, OSError):
                logger.exception("Realtime channel error channel=%s", channel)
                on_health(ChannelHealth.CHANNEL_ERROR)
            finally:
                await self._release(pubsub, channel)

            delay = calc_backoff(attempt, self._reconnect_delay, self._max_reconnect_delay)
            attempt += 1
            await asyncio.sleep(delay)

    @staticmethod
    def _dispatch(raw: str | bytes, on_insert: OnMessage, on_update: OnMessage) -> None:
        try:
            event_type, data = deserialize_event(raw)
            message = MessageRowPayload.model_validate(data).to_entity()
        except ValueError:
            logger.exception("Malformed realtime event")
            return

        try:
            if event_type == MESSAGE_INSERTED:
                on_insert(message)
            elif event_type == MESSAGE_UPDATED:
                on_update(message)
            else:
                logger.debug("Ignoring realtime event %s", event_type)
        except Exception:
            logger.exception("Error processing realtime event %s", event_type)

    @staticmethod
    async def _release(pubsub: Any, channel: str) -> None:
        try:
            await pubsub.unsubscribe(channel)
            await pubsub.aclose()
        except (RedisError, OSError):
            logger.debug("Realtime pubsub cleanup failed channel=%s", channel, exc_info=True)
