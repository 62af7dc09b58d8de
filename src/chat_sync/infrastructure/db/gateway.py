"""Postgres-backed MessageGateway and ConversationGateway for one viewer."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterator

from sqlalchemy.exc import DBAPIError, IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from chat_sync.application.exceptions import BackendError, UniqueViolationError
from chat_sync.application.ports.bus import EventPublisher
from chat_sync.config import settings
from chat_sync.domain.entities.conversation import Conversation
from chat_sync.domain.entities.message import Message
from chat_sync.domain.value_objects.cursor import MessageCursor
from chat_sync.infrastructure.bus.protocol import (
    MESSAGE_INSERTED,
    MESSAGE_UPDATED,
    MessageRowPayload,
)
from chat_sync.infrastructure.bus.redis_pubsub import conversation_channel
from chat_sync.infrastructure.db.uow import SqlAlchemyUoW

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"


def _sqlstate(exc: DBAPIError) -> str | None:
    orig = exc.orig
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


@contextmanager
def translate_db_errors() -> Iterator[None]:
    """Re-raise driver errors as application errors."""
    try:
        yield
    except IntegrityError as exc:
        code = _sqlstate(exc)
        if code in (UNIQUE_VIOLATION, None):
            raise UniqueViolationError(str(exc.orig)) from exc
        raise BackendError(str(exc.orig), code=code) from exc
    except DBAPIError as exc:
        retryable = exc.connection_invalidated or isinstance(exc, (OperationalError, InterfaceError))
        raise BackendError(str(exc.orig), code=_sqlstate(exc), retryable=retryable) from exc


class SqlAlchemyBackend:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        viewer_id: str,
        *,
        publisher: EventPublisher | None = None,
        channel_prefix: str = settings.REALTIME_CHANNEL_PREFIX,
    ) -> None:
        self._session_factory = session_factory
        self._viewer_id = viewer_id
        self._publisher = publisher
        self._channel_prefix = channel_prefix

    async def list_messages(
        self,
        conversation_id: str,
        *,
        before: MessageCursor | None = None,
        limit: int = settings.MESSAGES_PAGE_SIZE,
    ) -> list[Message]:
        with translate_db_errors():
            async with self._uow() as uow:
                return await uow.messages.list_messages(
                    conversation_id, before=before, limit=limit,
                )

    async def insert_message(
        self,
        conversation_id: str,
        sender_id: str,
        content: str,
        idempotency_key: str,
        metadata: dict[str, Any] | None = None,
    ) -> Message:
        with translate_db_errors():
            async with self._uow() as uow:
                message, created = await uow.messages_w.create_if_not_exists(
                    conversation_id, sender_id, content, idempotency_key, metadata,
                )
                await uow.commit()
        if created:
            await self._publish(MESSAGE_INSERTED, message)
        else:
            logger.info("Duplicate idempotency key, returning message %s", message.id)
        return message

    async def mark_read_before(self, conversation_id: str, before: datetime) -> int:
        with translate_db_errors():
            async with self._uow() as uow:
                changed = await uow.messages_w.mark_read_before(
                    conversation_id, self._viewer_id, before,
                )
                await uow.commit()
        for message in changed:
            await self._publish(MESSAGE_UPDATED, message)
        return len(changed)

    async def count_unread(self) -> int:
        with translate_db_errors():
            async with self._uow() as uow:
                return await uow.messages.count_unread(self._viewer_id)

    async def find_conversation(
        self, participant_a: str, participant_b: str
    ) -> Conversation | None:
        with translate_db_errors():
            async with self._uow() as uow:
                return await uow.conversations.get_by_pair(
                    participant_a, participant_b, viewer_id=self._viewer_id,
                )

    async def create_conversation(
        self, participant_a: str, participant_b: str
    ) -> Conversation:
        with translate_db_errors():
            async with self._uow() as uow:
                conversation = await uow.conversations_w.create(
                    participant_a, participant_b, viewer_id=self._viewer_id,
                )
                await uow.commit()
        return conversation

    async def delete_conversation(self, conversation_id: str) -> None:
        with translate_db_errors():
            async with self._uow() as uow:
                await uow.conversations_w.delete(conversation_id)
                await uow.commit()

    def _uow(self) -> SqlAlchemyUoW:
        return SqlAlchemyUoW(self._session_factory)

    async def _publish(self, event_type: str, message: Message) -> None:
        if self._publisher is None:
            return
        channel = conversation_channel(message.conversation_id, self._channel_prefix)
        payload = MessageRowPayload.from_entity(message).model_dump()
        try:
            await self._publisher.publish(channel, event_type, payload)
        except Exception:
            # Row is committed; subscribers recover through resync.
            logger.exception("Failed to publish %s for message %s", event_type, message.id)
