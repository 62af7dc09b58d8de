"""Realtime wire models for message row changes."""
from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel

from chat_sync.domain.entities.message import Message

MESSAGE_INSERTED = "message.inserted"
MESSAGE_UPDATED = "message.updated"


class MessageRowPayload(BaseModel):
    """A durable ``messages`` row as pushed by the backend."""

    id: str
    conversation_id: str
    sender_id: str
    content: str
    sent_at: datetime
    read_at: datetime | None = None
    metadata: dict[str, Any] | None = None

    @classmethod
    def from_entity(cls, message: Message) -> MessageRowPayload:
        return cls(
            id=message.id,
            conversation_id=message.conversation_id,
            sender_id=message.sender_id,
            content=message.content,
            sent_at=message.sent_at,
            read_at=message.read_at,
            metadata=message.metadata,
        )

    def to_entity(self) -> Message:
        return Message(
            id=self.id,
            conversation_id=self.conversation_id,
            sender_id=self.sender_id,
            content=self.content,
            sent_at=self.sent_at,
            read_at=self.read_at,
            metadata=self.metadata,
        )
