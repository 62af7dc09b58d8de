"""Single source of truth for the active conversation's messages."""
from __future__ import annotations

import logging
from typing import Callable, Iterable

from chat_sync.domain.entities.message import Message

logger = logging.getLogger(__name__)

Listener = Callable[[list[Message]], None]


def normalize(messages: Iterable[Message]) -> list[Message]:
    """De-duplicate by id (first occurrence wins) and sort by (sent_at, id)."""
    seen: set[str] = set()
    unique: list[Message] = []
    for message in messages:
        if message.id in seen:
            continue
        seen.add(message.id)
        unique.append(message)
    unique.sort(key=lambda m: m.sort_key)
    return unique


class MessageStore:
    """Owns the message list and its synchronously readable mirror.

    ``replace`` and ``update`` are the only write paths. Both are synchronous,
    so a mutation is never interleaved with another one.
    """

    def __init__(self) -> None:
        self._messages: tuple[Message, ...] = ()
        self._listeners: list[Listener] = []

    @property
    def current(self) -> list[Message]:
        return list(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def get(self, message_id: str) -> Message | None:
        for message in self._messages:
            if message.id == message_id:
                return message
        return None

    def ids(self) -> set[str]:
        return {m.id for m in self._messages}

    def replace(self, messages: Iterable[Message]) -> list[Message]:
        return self._commit(normalize(messages))

    def update(self, fn: Callable[[list[Message]], Iterable[Message]]) -> list[Message]:
        return self._commit(normalize(fn(self.current)))

    def clear(self) -> None:
        self._commit([])

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener. Returns a function that removes it."""
        self._listeners.append(listener)

        def remove() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return remove

    def _commit(self, messages: list[Message]) -> list[Message]:
        snapshot = tuple(messages)
        if snapshot == self._messages:
            return messages
        self._messages = snapshot
        for listener in list(self._listeners):
            try:
                listener(list(snapshot))
            except Exception:
                logger.exception("Message store listener failed")
        return messages
