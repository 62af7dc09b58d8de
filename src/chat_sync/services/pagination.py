"""Newest-page loading and backward keyset pagination."""
from __future__ import annotations

import asyncio
import logging
from typing import Callable

from chat_sync.application.ports.backend import MessageGateway
from chat_sync.config import settings
from chat_sync.domain.entities.conversation import Conversation
from chat_sync.domain.entities.message import Message
from chat_sync.domain.value_objects.cursor import MessageCursor
from chat_sync.services.message_store import MessageStore

logger = logging.getLogger(__name__)


class CursorPaginator:
    def __init__(
        self,
        store: MessageStore,
        backend: MessageGateway,
        *,
        page_size: int = settings.MESSAGES_PAGE_SIZE,
        on_rows: Callable[[list[Message]], None] | None = None,
    ) -> None:
        self._store = store
        self._backend = backend
        self._page_size = page_size
        self._on_rows = on_rows
        self._conversation: Conversation | None = None
        self._generation = 0
        self._cursor: MessageCursor | None = None
        self._has_more = True
        self._loading_more = False
        self._initial: asyncio.Task[list[Message]] | None = None

    @property
    def cursor(self) -> MessageCursor | None:
        return self._cursor

    @property
    def has_more(self) -> bool:
        return self._has_more

    @property
    def loading_more(self) -> bool:
        return self._loading_more

    @property
    def loading_initial(self) -> bool:
        return self._initial is not None

    def bind(self, conversation: Conversation | None, *, fresh: bool = False) -> None:
        """Point at a new conversation; results from the previous one are discarded.

        ``fresh`` marks a conversation created locally, which has no history.
        """
        self._conversation = conversation
        self._generation += 1
        self._cursor = None
        self._has_more = not fresh
        self._loading_more = False
        self._initial = None

    async def load_initial(self) -> list[Message]:
        conversation = self._conversation
        if conversation is None or conversation.is_pending:
            self._store.clear()
            self._has_more = False
            return []

        if self._initial is not None:
            return await asyncio.shield(self._initial)

        task = asyncio.get_running_loop().create_task(
            self._fetch_initial(conversation.id, self._generation),
            name=f"load-initial-{conversation.id}",
        )
        self._initial = task
        try:
            return await asyncio.shield(task)
        finally:
            if self._initial is task:
                self._initial = None

    async def _fetch_initial(self, conversation_id: str, generation: int) -> list[Message]:
        try:
            rows = await self._backend.list_messages(conversation_id, limit=self._page_size)
        except Exception:
            logger.exception("Error fetching messages for conversation %s", conversation_id)
            return []

        if generation != self._generation:
            logger.debug("Discarding stale initial page for conversation %s", conversation_id)
            return []

        fetched = list(reversed(rows))
        newest = fetched[-1].sort_key if fetched else None
        # Local rows in flight and rows pushed after the snapshot survive a reload.
        self._store.update(
            lambda prev: fetched + [
                m for m in prev
                if m.is_optimistic or newest is None or m.sort_key > newest
            ]
        )
        self._cursor = MessageCursor.from_message(fetched[0]) if fetched else None
        self._has_more = len(rows) == self._page_size
        logger.debug("Loaded %d messages for conversation %s", len(fetched), conversation_id)
        if self._on_rows and fetched:
            self._on_rows(fetched)
        return fetched

    async def load_older(self) -> bool:
        """Prepend the next older page. Returns whether any rows were loaded."""
        conversation = self._conversation
        if conversation is None or conversation.is_pending:
            return False
        if self._loading_more or not self._has_more:
            return False
        cursor = self._cursor
        if cursor is None:
            return False

        generation = self._generation
        self._loading_more = True
        try:
            rows = await self._backend.list_messages(
                conversation.id, before=cursor, limit=self._page_size,
            )
        except Exception:
            logger.exception(
                "Error loading older messages for conversation %s before %s",
                conversation.id,
                cursor.message_id,
            )
            return False
        finally:
            if generation == self._generation:
                self._loading_more = False

        if generation != self._generation:
            return False

        older = [m for m in reversed(rows) if cursor.admits(m)]
        if len(older) != len(rows):
            logger.warning(
                "Backend returned %d rows not older than cursor for conversation %s",
                len(rows) - len(older),
                conversation.id,
            )
        self._has_more = len(rows) == self._page_size
        if not older:
            self._has_more = False
            return False

        self._cursor = MessageCursor.from_message(older[0])
        existing = self._store.ids()
        fresh = [m for m in older if m.id not in existing]
        if fresh:
            self._store.update(lambda prev: fresh + prev)
            if self._on_rows:
                self._on_rows(fresh)
        return True
