"""Backend contracts. Implementations are bound to the viewing user."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol

from chat_sync.domain.entities.conversation import Conversation
from chat_sync.domain.entities.message import Message
from chat_sync.domain.value_objects.cursor import MessageCursor


class MessageGateway(Protocol):
    async def list_messages(
        self,
        conversation_id: str,
        *,
        before: MessageCursor | None = None,
        limit: int = 50,
    ) -> list[Message]:
        """Newest first. ``before`` is an exclusive (sent_at, id) bound."""
        ...

    async def insert_message(
        self,
        conversation_id: str,
        sender_id: str,
        content: str,
        idempotency_key: str,
        metadata: dict[str, Any] | None = None,
    ) -> Message:
        """Persist a message. A repeated idempotency key never inserts twice."""
        ...

    async def mark_read_before(self, conversation_id: str, before: datetime) -> int:
        """Mark peer messages sent at or before ``before`` read; return affected rows."""
        ...

    async def count_unread(self) -> int: ...


class ConversationGateway(Protocol):
    async def find_conversation(
        self, participant_a: str, participant_b: str
    ) -> Conversation | None:
        """Order-independent lookup by participant pair."""
        ...

    async def create_conversation(
        self, participant_a: str, participant_b: str
    ) -> Conversation:
        """Raises UniqueViolationError when the pair already has a conversation."""
        ...

    async def delete_conversation(self, conversation_id: str) -> None: ...
