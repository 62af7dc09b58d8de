from __future__ import annotations

from enum import StrEnum


class DeliveryStatus(StrEnum):
    SENDING = "sending"
    DELIVERED = "delivered"
    FAILED = "failed"


class ConversationStatus(StrEnum):
    PENDING = "pending"
    ACTIVE = "active"


class ChatEventType(StrEnum):
    SENT = "sent"
    RECEIVED = "received"
    READ = "read"


class ChannelHealth(StrEnum):
    SUBSCRIBED = "subscribed"
    CHANNEL_ERROR = "channel_error"
    TIMED_OUT = "timed_out"
    CLOSED = "closed"

    @property
    def degraded(self) -> bool:
        return self in (ChannelHealth.CHANNEL_ERROR, ChannelHealth.TIMED_OUT)
