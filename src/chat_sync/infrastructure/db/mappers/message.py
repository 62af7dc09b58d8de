from __future__ import annotations

from chat_sync.domain.entities.message import Message
from chat_sync.infrastructure.db.models.message import MessageModel


def model_to_entity(model: MessageModel) -> Message:
    return Message(
        id=str(model.id),
        conversation_id=str(model.conversation_id),
        sender_id=model.sender_id,
        content=model.content,
        sent_at=model.sent_at,
        read_at=model.read_at,
        metadata=model.meta,
    )
