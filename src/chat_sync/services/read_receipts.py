"""Debounced, batched read acknowledgment for peer messages."""
from __future__ import annotations

import asyncio
import logging
from typing import Iterable

from chat_sync.application.dto.events import ChatEvent, ChatHooks
from chat_sync.application.ports.backend import MessageGateway
from chat_sync.application.ports.clock import Clock, SystemClock
from chat_sync.config import settings
from chat_sync.domain.entities.conversation import Conversation
from chat_sync.domain.entities.message import Message
from chat_sync.domain.value_objects.enums import ChatEventType
from chat_sync.services.debounce import Debouncer
from chat_sync.services.message_store import MessageStore
from chat_sync.services.unread import UnreadCounter

logger = logging.getLogger(__name__)


class ReadReceiptBatcher:
    """Collects unread peer messages and acknowledges them with one watermark call.

    Only one flush runs at a time. Ids queued while a flush is outstanding wait
    for the next timer cycle instead of joining the request in flight.
    """

    def __init__(
        self,
        store: MessageStore,
        backend: MessageGateway,
        viewer_id: str,
        *,
        unread: UnreadCounter | None = None,
        hooks: ChatHooks | None = None,
        clock: Clock | None = None,
        delay: float = settings.READ_RECEIPT_DEBOUNCE_SECONDS,
    ) -> None:
        self._store = store
        self._backend = backend
        self._viewer_id = viewer_id
        self._unread = unread
        self._hooks = hooks or ChatHooks()
        self._clock = clock or SystemClock()
        self._timer = Debouncer(delay, self._on_timer, name="read-receipts")
        self._conversation: Conversation | None = None
        self._generation = 0
        self._pending: set[str] = set()
        self._inflight: asyncio.Task[None] | None = None
        self._queued_in_flight = False

    @property
    def pending(self) -> frozenset[str]:
        return frozenset(self._pending)

    @property
    def flushing(self) -> bool:
        return self._inflight is not None

    def bind(self, conversation: Conversation | None) -> None:
        """Callers flush the previous conversation before rebinding."""
        if self._pending:
            logger.warning(
                "Dropping %d unacknowledged read receipts on conversation change",
                len(self._pending),
            )
        self._timer.cancel()
        self._pending.clear()
        self._queued_in_flight = False
        self._conversation = conversation
        self._generation += 1

    def queue(self, message: Message) -> bool:
        conversation = self._conversation
        if conversation is None or conversation.is_pending:
            return False
        if message.conversation_id != conversation.id:
            return False
        if message.sender_id == self._viewer_id or message.is_read or message.is_optimistic:
            return False
        if message.id in self._pending:
            return False

        self._pending.add(message.id)
        if self._inflight is not None:
            self._queued_in_flight = True
        self._timer.arm()
        return True

    def queue_many(self, messages: Iterable[Message]) -> int:
        return sum(1 for message in messages if self.queue(message))

    async def mark_conversation_read(self, *, immediate: bool = False) -> int:
        """Queue every unread peer message in the store; optionally flush now."""
        queued = self.queue_many(self._store.current)
        if immediate:
            await self.flush()
        return queued

    async def flush(self) -> None:
        """Acknowledge pending ids now, after any flush already in flight."""
        self._timer.cancel()
        while self._inflight is not None:
            await asyncio.shield(self._inflight)
        if not self._pending:
            return
        task = asyncio.get_running_loop().create_task(self._run_flush(), name="read-receipt-flush")
        self._inflight = task
        await asyncio.shield(task)

    async def close(self) -> None:
        await self.flush()
        await self._timer.drain()

    async def _on_timer(self) -> None:
        if self._inflight is not None:
            self._queued_in_flight = True
            return
        await self.flush()

    async def _run_flush(self) -> None:
        try:
            await self._flush_batch()
        finally:
            self._inflight = None
            if self._queued_in_flight:
                self._queued_in_flight = False
                if self._pending:
                    self._timer.arm()

    async def _flush_batch(self) -> None:
        conversation = self._conversation
        generation = self._generation
        if conversation is None or conversation.is_pending:
            self._pending.clear()
            return

        ids = frozenset(self._pending)
        self._pending.clear()
        batch = [m for m in self._store.current if m.id in ids]
        if not batch:
            return
        batch_ids = frozenset(m.id for m in batch)
        # Watermark: backend marks every peer message sent at or before it.
        watermark = max(m.sent_at for m in batch)
        now = self._clock.now()
        self._store.update(
            lambda prev: [m.mark_read(now) if m.id in batch_ids else m for m in prev]
        )

        try:
            affected = await self._backend.mark_read_before(conversation.id, watermark)
        except Exception:
            logger.exception(
                "Error marking %d messages read in conversation %s",
                len(batch_ids),
                conversation.id,
            )
            if generation != self._generation:
                return
            self._store.update(
                lambda prev: [m.mark_unread() if m.id in batch_ids else m for m in prev]
            )
            self._pending |= batch_ids
            return

        if affected > len(batch_ids):
            logger.warning(
                "Watermark %s acknowledged %d rows for a batch of %d in conversation %s",
                watermark.isoformat(),
                affected,
                len(batch_ids),
                conversation.id,
            )
        if self._unread is not None:
            self._unread.decrement(affected)
        self._hooks.conversation_read(conversation.id)
        self._hooks.message_event(
            ChatEvent(
                type=ChatEventType.READ,
                conversation_id=conversation.id,
                message_ids=tuple(sorted(batch_ids)),
            )
        )
