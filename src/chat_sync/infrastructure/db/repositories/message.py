from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import func, select, tuple_, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from chat_sync.domain.entities.message import Message
from chat_sync.domain.value_objects.cursor import MessageCursor
from chat_sync.infrastructure.db.mappers import message as mapper
from chat_sync.infrastructure.db.models.conversation import ConversationModel
from chat_sync.infrastructure.db.models.message import MessageModel


class MessageReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def list_messages(
        self,
        conversation_id: str,
        *,
        before: MessageCursor | None = None,
        limit: int = 50,
    ) -> list[Message]:
        stmt = (
            select(MessageModel)
            .where(MessageModel.conversation_id == conversation_id)
            .order_by(MessageModel.sent_at.desc(), MessageModel.id.desc())
            .limit(limit)
        )
        if before is not None:
            stmt = stmt.where(
                tuple_(MessageModel.sent_at, MessageModel.id)
                < (before.sent_at, before.message_id),
            )
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]

    async def get_by_idempotency_key(
        self,
        sender_id: str,
        idempotency_key: str,
    ) -> Message | None:
        stmt = select(MessageModel).where(
            MessageModel.sender_id == sender_id,
            MessageModel.idempotency_key == idempotency_key,
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None

    async def count_unread(self, viewer_id: str) -> int:
        stmt = (
            select(func.count(MessageModel.id))
            .join(ConversationModel, ConversationModel.id == MessageModel.conversation_id)
            .where(
                (ConversationModel.participant_one_id == viewer_id)
                | (ConversationModel.participant_two_id == viewer_id),
                MessageModel.sender_id != viewer_id,
                MessageModel.read_at.is_(None),
            )
        )
        result = await self._session.execute(stmt)
        return int(result.scalar_one())


class MessageWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create_if_not_exists(
        self,
        conversation_id: str,
        sender_id: str,
        content: str,
        idempotency_key: str,
        metadata: dict[str, Any] | None = None,
    ) -> tuple[Message, bool]:
        """Insert message idempotently. Returns (message, created_flag)."""
        stmt = (
            pg_insert(MessageModel)
            .values(
                conversation_id=conversation_id,
                sender_id=sender_id,
                content=content,
                meta=metadata,
                idempotency_key=idempotency_key,
            )
            .on_conflict_do_nothing(constraint="uq_message_idempotency")
            .returning(MessageModel)
        )
        result = await self._session.execute(stmt)
        row = result.scalar_one_or_none()
        if row is not None:
            return mapper.model_to_entity(row), True

        existing = await MessageReaderRepo(self._session).get_by_idempotency_key(
            sender_id, idempotency_key,
        )
        assert existing is not None
        return existing, False

    async def mark_read_before(
        self,
        conversation_id: str,
        reader_id: str,
        before: datetime,
    ) -> list[Message]:
        """Mark the peer's unread messages up to ``before`` read; return changed rows."""
        stmt = (
            update(MessageModel)
            .where(
                MessageModel.conversation_id == conversation_id,
                MessageModel.sender_id != reader_id,
                MessageModel.read_at.is_(None),
                MessageModel.sent_at <= before,
            )
            .values(read_at=func.now())
            .returning(MessageModel)
        )
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]
