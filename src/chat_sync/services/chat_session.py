"""Per-view facade wiring the synchronization components together.

The hosting UI owns one ``ChatSession`` per conversation view and forwards its
events: open, type, send, retry, discard, scroll-to-top, visibility, close.
"""
from __future__ import annotations

import logging
from typing import Any, Iterable

from chat_sync.application.dto.events import ChatHooks
from chat_sync.application.dto.send import SendResult
from chat_sync.application.ports.backend import ConversationGateway, MessageGateway
from chat_sync.application.ports.clock import Clock, SystemClock
from chat_sync.application.ports.drafts import DraftStorage
from chat_sync.application.ports.rate_limit import RateLimiter
from chat_sync.application.ports.realtime import RealtimeChannel
from chat_sync.config import settings
from chat_sync.domain.entities.conversation import Conversation
from chat_sync.domain.entities.message import Message
from chat_sync.services.conversation_resolver import ConversationResolver, ResolvedConversation
from chat_sync.services.drafts import DraftManager
from chat_sync.services.message_store import MessageStore
from chat_sync.services.pagination import CursorPaginator
from chat_sync.services.read_receipts import ReadReceiptBatcher
from chat_sync.services.realtime import RealtimeReconciler
from chat_sync.services.send_pipeline import SendPipeline
from chat_sync.services.unread import UnreadCounter

logger = logging.getLogger(__name__)


def same_conversation(a: Conversation | None, b: Conversation | None) -> bool:
    if a is None or b is None:
        return a is b
    return (a.id, a.status, a.participant_one_id, a.participant_two_id) == (
        b.id, b.status, b.participant_one_id, b.participant_two_id,
    )


class ChatSession:
    def __init__(
        self,
        viewer_id: str,
        *,
        messages: MessageGateway,
        conversations: ConversationGateway,
        channel: RealtimeChannel,
        drafts: DraftStorage,
        rate_limiter: RateLimiter | None = None,
        unread: UnreadCounter | None = None,
        hooks: ChatHooks | None = None,
        clock: Clock | None = None,
        page_size: int = settings.MESSAGES_PAGE_SIZE,
        read_delay: float = settings.READ_RECEIPT_DEBOUNCE_SECONDS,
        draft_delay: float = settings.DRAFT_DEBOUNCE_SECONDS,
        max_retries: int = settings.SEND_MAX_RETRIES,
        retry_base_delay: float = settings.SEND_RETRY_BASE_DELAY,
    ) -> None:
        self.viewer_id = viewer_id
        self.hooks = hooks or ChatHooks()
        self.store = MessageStore()
        self.unread = unread or UnreadCounter(messages)
        clock = clock or SystemClock()

        self._conversation: Conversation | None = None
        self._visible = True

        self._drafts = DraftManager(drafts, viewer_id, delay=draft_delay)
        self._receipts = ReadReceiptBatcher(
            self.store, messages, viewer_id,
            unread=self.unread, hooks=self.hooks, clock=clock, delay=read_delay,
        )
        self._paginator = CursorPaginator(
            self.store, messages, page_size=page_size, on_rows=self._observe,
        )
        self._resolver = ConversationResolver(
            conversations, viewer_id, max_retries=max_retries, base_delay=retry_base_delay,
        )
        self._sender = SendPipeline(
            self.store, messages, self._resolver, self._drafts, viewer_id,
            rate_limiter=rate_limiter,
            hooks=self.hooks,
            clock=clock,
            on_conversation_resolved=self._adopt,
            max_retries=max_retries,
            base_delay=retry_base_delay,
        )
        self._realtime = RealtimeReconciler(
            self.store, channel, viewer_id, self._paginator.load_initial,
            hooks=self.hooks, on_observed=lambda m: self._observe([m]),
        )

    @property
    def conversation(self) -> Conversation | None:
        return self._conversation

    @property
    def messages(self) -> list[Message]:
        return self.store.current

    @property
    def draft(self) -> str:
        return self._drafts.text

    @property
    def sending(self) -> bool:
        return self._sender.sending

    @property
    def has_more(self) -> bool:
        return self._paginator.has_more

    @property
    def loading_more(self) -> bool:
        return self._paginator.loading_more

    @property
    def pending_reads(self) -> frozenset[str]:
        return self._receipts.pending

    async def open(self, conversation: Conversation) -> None:
        """Make ``conversation`` the active one.

        Work queued for the previous conversation (read receipts, draft
        writes) is delivered before the new one is loaded.
        """
        if same_conversation(self._conversation, conversation):
            return
        await self._leave()
        logger.debug("Opening conversation %s", conversation.id or "pending")

        self._conversation = conversation
        self.store.clear()
        self._paginator.bind(conversation)
        self._receipts.bind(conversation)
        self._sender.bind(conversation)
        await self._drafts.bind(conversation)

        # Subscribe first so rows committed during the page fetch are not missed.
        self._realtime.attach(conversation)
        await self._paginator.load_initial()
        if not same_conversation(self._conversation, conversation):
            return
        if self._visible:
            await self._receipts.mark_conversation_read(immediate=True)

    async def close(self) -> None:
        await self._leave()
        await self._realtime.close()
        await self._receipts.close()
        self._drafts.cancel()
        self._conversation = None
        self._paginator.bind(None)
        self._receipts.bind(None)
        self._sender.bind(None)

    def set_draft(self, text: str) -> None:
        self._drafts.set_text(text)

    async def send(
        self,
        content: str | None = None,
        *,
        metadata: dict[str, Any] | None = None,
    ) -> SendResult:
        text = self._drafts.text if content is None else content
        return await self._sender.send(text, metadata=metadata)

    async def retry(self, message_id: str) -> SendResult:
        return await self._sender.retry(message_id)

    def discard(self, message_id: str) -> bool:
        return self._sender.discard(message_id)

    async def load_older(self) -> bool:
        return await self._paginator.load_older()

    async def refresh(self) -> list[Message]:
        return await self._paginator.load_initial()

    async def mark_read(self, *, immediate: bool = False) -> int:
        return await self._receipts.mark_conversation_read(immediate=immediate)

    async def set_visible(self, visible: bool) -> None:
        self._visible = visible
        if visible:
            await self.mark_read(immediate=True)

    async def _leave(self) -> None:
        self._realtime.detach()
        await self._receipts.flush()
        await self._drafts.flush()

    async def _adopt(self, resolved: ResolvedConversation) -> None:
        """A send created or found the durable row for the pending conversation."""
        conversation = resolved.conversation
        self._conversation = conversation
        self._paginator.bind(conversation, fresh=resolved.created)
        self._receipts.bind(conversation)
        await self._drafts.bind(conversation)
        self._realtime.attach(conversation)
        if not resolved.created:
            # Found an existing row: it may already hold the peer's history.
            await self._paginator.load_initial()

    def _observe(self, messages: Iterable[Message]) -> None:
        if self._visible:
            self._receipts.queue_many(messages)
