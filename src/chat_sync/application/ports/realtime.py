from __future__ import annotations

from typing import Callable, Protocol

from chat_sync.domain.entities.message import Message
from chat_sync.domain.value_objects.enums import ChannelHealth

OnMessage = Callable[[Message], None]
OnHealth = Callable[[ChannelHealth], None]
Unsubscribe = Callable[[], None]


class RealtimeChannel(Protocol):
    def subscribe(
        self,
        conversation_id: str,
        on_insert: OnMessage,
        on_update: OnMessage,
        on_health: OnHealth,
    ) -> Unsubscribe: ...
