from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from chat_sync.application.dto.events import ChatEvent, ChatHooks
from chat_sync.application.ports.realtime import RealtimeChannel, Unsubscribe
from chat_sync.domain.entities.conversation import Conversation
from chat_sync.domain.entities.message import Message
from chat_sync.domain.value_objects.enums import ChannelHealth, ChatEventType
from chat_sync.services.message_store import MessageStore

logger = logging.getLogger(__name__)


class RealtimeReconciler:
    """Merges pushed inserts/updates for the active conversation into the store."""

    def __init__(
        self,
        store: MessageStore,
        channel: RealtimeChannel,
        viewer_id: str,
        resync: Callable[[], Awaitable[object]],
        *,
        hooks: ChatHooks | None = None,
        on_observed: Callable[[Message], object] | None = None,
    ) -> None:
        self._store = store
        self._channel = channel
        self._viewer_id = viewer_id
        self._resync = resync
        self._hooks = hooks or ChatHooks()
        self._on_observed = on_observed
        self._conversation_id: str | None = None
        self._unsubscribe: Unsubscribe | None = None
        self._needs_sync = False
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def conversation_id(self) -> str | None:
        return self._conversation_id

    @property
    def attached(self) -> bool:
        return self._unsubscribe is not None

    def attach(self, conversation: Conversation | None) -> None:
        self.detach()
        if conversation is None or conversation.is_pending or conversation.id is None:
            return
        self._conversation_id = conversation.id
        # Rows committed before the subscription is live are fetched on SUBSCRIBED.
        self._needs_sync = True
        self._unsubscribe = self._channel.subscribe(
            conversation.id, self._on_insert, self._on_update, self._on_health,
        )
        logger.debug("Realtime attached to conversation %s", conversation.id)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            logger.debug("Realtime detached from conversation %s", self._conversation_id)
        self._unsubscribe = None
        self._conversation_id = None

    async def close(self) -> None:
        self.detach()
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)

    async def drain(self) -> None:
        """Wait for resyncs started by health changes."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _on_insert(self, message: Message) -> None:
        if message.conversation_id != self._conversation_id:
            return
        inserted = False

        def append(prev: list[Message]) -> list[Message]:
            nonlocal inserted
            if any(m.id == message.id for m in prev):
                return prev
            inserted = True
            return [*prev, message]

        self._store.update(append)
        if not inserted:
            return
        if self._on_observed is not None:
            self._on_observed(message)
        if message.sender_id != self._viewer_id:
            self._hooks.message_event(
                ChatEvent(
                    type=ChatEventType.RECEIVED,
                    conversation_id=message.conversation_id,
                    message=message,
                )
            )

    def _on_update(self, message: Message) -> None:
        if message.conversation_id != self._conversation_id:
            return
        if self._store.get(message.id) is None:
            return
        self._store.update(lambda prev: [message if m.id == message.id else m for m in prev])

    def _on_health(self, health: ChannelHealth) -> None:
        conversation_id = self._conversation_id
        if health.degraded:
            logger.error("Realtime %s for conversation %s, refetching", health, conversation_id)
            self._needs_sync = True
            self._schedule_resync()
        elif health == ChannelHealth.SUBSCRIBED:
            logger.debug("Realtime subscribed for conversation %s", conversation_id)
            if self._needs_sync:
                self._needs_sync = False
                self._schedule_resync()

    def _schedule_resync(self) -> None:
        if self._conversation_id is None:
            return
        task = asyncio.get_running_loop().create_task(self._run_resync(), name="realtime-resync")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_resync(self) -> None:
        try:
            await self._resync()
        except Exception:
            logger.exception("Resync after realtime degradation failed")
