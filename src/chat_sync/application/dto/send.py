from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from chat_sync.domain.entities.message import Message


class SendStatus(StrEnum):
    DELIVERED = "delivered"
    FAILED = "failed"
    REJECTED = "rejected"


@dataclass(frozen=True, slots=True)
class SendResult:
    status: SendStatus
    message: Message | None = None
    detail: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == SendStatus.DELIVERED
