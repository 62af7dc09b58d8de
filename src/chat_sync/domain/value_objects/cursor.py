"""Keyset cursor over the (sent_at, id) message ordering."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from chat_sync.domain.entities.message import Message


@dataclass(frozen=True, slots=True)
class MessageCursor:
    sent_at: datetime
    message_id: str

    @classmethod
    def from_message(cls, message: Message) -> MessageCursor:
        return cls(sent_at=message.sent_at, message_id=message.id)

    @property
    def key(self) -> tuple[datetime, str]:
        return self.sent_at, self.message_id

    def admits(self, message: Message) -> bool:
        """True when ``message`` is strictly older than the cursor."""
        return message.sort_key < self.key
