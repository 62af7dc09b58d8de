from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from chat_sync.domain.entities.conversation import Conversation
from chat_sync.domain.entities.message import Message
from chat_sync.domain.value_objects.enums import ChatEventType

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ChatEvent:
    type: ChatEventType
    conversation_id: str
    message: Message | None = None
    message_ids: tuple[str, ...] = ()


@dataclass(slots=True)
class ChatHooks:
    """Callbacks into the hosting view. Exceptions raised by a hook are logged and dropped."""

    on_message_event: Callable[[ChatEvent], None] | None = None
    on_conversation_created: Callable[[Conversation], None] | None = None
    on_conversation_read: Callable[[str], None] | None = None
    notify: Callable[[str], None] | None = None

    def message_event(self, event: ChatEvent) -> None:
        self._call(self.on_message_event, event)

    def conversation_created(self, conversation: Conversation) -> None:
        self._call(self.on_conversation_created, conversation)

    def conversation_read(self, conversation_id: str) -> None:
        self._call(self.on_conversation_read, conversation_id)

    def notice(self, text: str) -> None:
        self._call(self.notify, text)

    @staticmethod
    def _call(hook: Callable[..., None] | None, arg: object) -> None:
        if hook is None:
            return
        try:
            hook(arg)
        except Exception:
            logger.exception("Chat hook %s failed", getattr(hook, "__name__", hook))
