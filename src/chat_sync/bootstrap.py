"""Wire the reference adapters into a ChatSession from settings."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator

import redis.asyncio as aioredis
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from chat_sync.application.dto.events import ChatHooks
from chat_sync.application.ports.drafts import DraftStorage
from chat_sync.config import settings
from chat_sync.infrastructure.bus.redis_pubsub import RedisPubSubPublisher, RedisRealtimeChannel
from chat_sync.infrastructure.db.gateway import SqlAlchemyBackend
from chat_sync.infrastructure.db.session import create_engine, create_session_factory
from chat_sync.infrastructure.drafts.sql_storage import SqlDraftStorage
from chat_sync.infrastructure.rate_limit.redis_limiter import RedisRateLimiter
from chat_sync.services.chat_session import ChatSession
from chat_sync.services.unread import UnreadCounter

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Infrastructure:
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    redis: aioredis.Redis
    channel: RedisRealtimeChannel
    drafts: DraftStorage


@asynccontextmanager
async def connect() -> AsyncIterator[Infrastructure]:
    """Open the database engine and redis pool; close them on exit."""
    engine = create_engine()
    redis = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    logger.info("Redis connection pool created")
    channel = RedisRealtimeChannel(redis)
    try:
        yield Infrastructure(
            engine=engine,
            session_factory=create_session_factory(engine),
            redis=redis,
            channel=channel,
            drafts=SqlDraftStorage.from_url(),
        )
    finally:
        await channel.close()
        await redis.aclose()
        await engine.dispose()
        logger.info("Connections closed")


def create_chat_session(
    viewer_id: str,
    infra: Infrastructure,
    *,
    hooks: ChatHooks | None = None,
    unread: UnreadCounter | None = None,
) -> ChatSession:
    backend = SqlAlchemyBackend(
        infra.session_factory,
        viewer_id,
        publisher=RedisPubSubPublisher(infra.redis),
    )
    return ChatSession(
        viewer_id,
        messages=backend,
        conversations=backend,
        channel=infra.channel,
        drafts=infra.drafts,
        rate_limiter=RedisRateLimiter(infra.redis),
        unread=unread or UnreadCounter(backend),
        hooks=hooks,
    )
