from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any

from chat_sync.domain.value_objects.enums import DeliveryStatus
from chat_sync.domain.value_objects.ids import is_optimistic_id

_TRANSITIONS: dict[DeliveryStatus, frozenset[DeliveryStatus]] = {
    DeliveryStatus.SENDING: frozenset({DeliveryStatus.DELIVERED, DeliveryStatus.FAILED}),
    DeliveryStatus.FAILED: frozenset({DeliveryStatus.SENDING}),
    DeliveryStatus.DELIVERED: frozenset(),
}


class InvalidTransitionError(ValueError):
    pass


@dataclass(frozen=True, slots=True)
class Message:
    id: str
    conversation_id: str
    sender_id: str
    content: str
    sent_at: datetime
    read_at: datetime | None = None
    status: DeliveryStatus = DeliveryStatus.DELIVERED
    metadata: dict[str, Any] | None = None
    error: str | None = None

    def __post_init__(self) -> None:
        # Local rows are sending/failed, durable rows are delivered.
        local = is_optimistic_id(self.id)
        if local and self.status == DeliveryStatus.DELIVERED:
            raise InvalidTransitionError(f"placeholder {self.id} cannot be delivered")
        if not local and self.status != DeliveryStatus.DELIVERED:
            raise InvalidTransitionError(f"durable message {self.id} cannot be {self.status}")

    @property
    def is_optimistic(self) -> bool:
        return is_optimistic_id(self.id)

    @property
    def is_read(self) -> bool:
        return self.read_at is not None

    @property
    def sort_key(self) -> tuple[datetime, str]:
        return self.sent_at, self.id

    def transition(self, status: DeliveryStatus, error: str | None = None) -> Message:
        if status not in _TRANSITIONS[self.status]:
            raise InvalidTransitionError(f"{self.status} -> {status} for message {self.id}")
        return replace(self, status=status, error=error)

    def mark_read(self, at: datetime) -> Message:
        return replace(self, read_at=at)

    def mark_unread(self) -> Message:
        return replace(self, read_at=None)
