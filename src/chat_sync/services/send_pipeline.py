"""Optimistic message sending with retry and rollback.

A send goes through: validation, rate limit, recipient and conversation
resolution, optimistic insert, durable insert, then either in-place
replacement with the durable row or a ``failed`` mark plus rollback of a
conversation created for this attempt. Nothing raises out of ``send``.
"""
from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

from chat_sync.application.dto.events import ChatEvent, ChatHooks
from chat_sync.application.dto.send import SendResult, SendStatus
from chat_sync.application.ports.backend import MessageGateway
from chat_sync.application.ports.clock import Clock, SystemClock
from chat_sync.application.ports.rate_limit import RateLimiter
from chat_sync.application.policies.rate_limit import format_rate_limit_error
from chat_sync.application.retry import with_retry
from chat_sync.config import settings
from chat_sync.domain.entities.conversation import Conversation
from chat_sync.domain.entities.message import Message
from chat_sync.domain.value_objects.enums import ChatEventType, DeliveryStatus
from chat_sync.domain.value_objects.ids import new_idempotency_key, optimistic_id
from chat_sync.services.conversation_resolver import ConversationResolver, ResolvedConversation
from chat_sync.services.drafts import DraftManager
from chat_sync.services.message_store import MessageStore

logger = logging.getLogger(__name__)

SEND_FAILED_REASON = "Failed to send"
SEND_FAILED_NOTICE = "Failed to send message. Please try again."
RECIPIENT_UNKNOWN_NOTICE = "Cannot determine who to send this message to."


class SendPipeline:
    def __init__(
        self,
        store: MessageStore,
        backend: MessageGateway,
        resolver: ConversationResolver,
        drafts: DraftManager,
        viewer_id: str,
        *,
        rate_limiter: RateLimiter | None = None,
        hooks: ChatHooks | None = None,
        clock: Clock | None = None,
        on_conversation_resolved: Callable[[ResolvedConversation], Awaitable[None]] | None = None,
        max_length: int = settings.MESSAGE_MAX_LENGTH,
        max_retries: int = settings.SEND_MAX_RETRIES,
        base_delay: float = settings.SEND_RETRY_BASE_DELAY,
        max_delay: float = settings.SEND_RETRY_MAX_DELAY,
    ) -> None:
        self._store = store
        self._backend = backend
        self._resolver = resolver
        self._drafts = drafts
        self._viewer_id = viewer_id
        self._rate_limiter = rate_limiter
        self._hooks = hooks or ChatHooks()
        self._clock = clock or SystemClock()
        self._on_conversation_resolved = on_conversation_resolved
        self._max_length = max_length
        self._max_retries = max_retries
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._conversation: Conversation | None = None
        self._sending = False

    @property
    def sending(self) -> bool:
        return self._sending

    @property
    def conversation(self) -> Conversation | None:
        return self._conversation

    def bind(self, conversation: Conversation | None) -> None:
        self._conversation = conversation

    async def send(
        self,
        content: str,
        *,
        metadata: dict[str, Any] | None = None,
        retry_of: str | None = None,
    ) -> SendResult:
        text = content.strip()
        if not text:
            return SendResult(SendStatus.REJECTED, detail="Message is empty")
        if self._sending:
            return SendResult(SendStatus.REJECTED, detail="A message is already being sent")
        if len(text) > self._max_length:
            detail = f"Message is too long. Maximum {self._max_length} characters."
            self._hooks.notice(detail)
            return SendResult(SendStatus.REJECTED, detail=detail)
        conversation = self._conversation
        if conversation is None:
            return SendResult(SendStatus.REJECTED, detail="No active conversation")

        self._sending = True
        try:
            return await self._send(conversation, text, metadata, retry_of)
        finally:
            self._sending = False

    async def retry(self, message_id: str) -> SendResult:
        failed = self._store.get(message_id)
        if failed is None or failed.status != DeliveryStatus.FAILED:
            return SendResult(SendStatus.REJECTED, detail="Message is not retryable")
        return await self.send(failed.content, metadata=failed.metadata, retry_of=failed.id)

    def discard(self, message_id: str) -> bool:
        """Drop a local row that never reached the backend."""
        target = self._store.get(message_id)
        if target is None or not target.is_optimistic:
            return False
        self._store.update(lambda prev: [m for m in prev if m.id != message_id])
        return True

    async def _send(
        self,
        conversation: Conversation,
        text: str,
        metadata: dict[str, Any] | None,
        retry_of: str | None,
    ) -> SendResult:
        rejection = await self._check_rate_limit()
        if rejection is not None:
            self._hooks.notice(rejection)
            return SendResult(SendStatus.REJECTED, detail=rejection)

        recipient_id = conversation.peer_id(self._viewer_id)
        if not recipient_id:
            logger.error("Cannot determine recipient for conversation %s", conversation.id)
            self._hooks.notice(RECIPIENT_UNKNOWN_NOTICE)
            return SendResult(SendStatus.REJECTED, detail=RECIPIENT_UNKNOWN_NOTICE)

        try:
            resolved = await self._resolver.resolve(conversation)
        except Exception:
            logger.exception("Could not resolve conversation for send")
            self._hooks.notice(SEND_FAILED_NOTICE)
            return SendResult(SendStatus.FAILED, detail=SEND_FAILED_REASON)

        idempotency_key = new_idempotency_key(self._viewer_id)
        local_id = retry_of
        if not self._is_bound(conversation):
            # The view moved on; the message is still delivered but not shown here.
            logger.info("Conversation changed during send of %s", local_id or idempotency_key)
            local_id = local_id or optimistic_id(idempotency_key)
        elif local_id is None:
            local_id = optimistic_id(idempotency_key)
            optimistic = Message(
                id=local_id,
                conversation_id=resolved.id,
                sender_id=self._viewer_id,
                content=text,
                sent_at=self._clock.now(),
                status=DeliveryStatus.SENDING,
                metadata=metadata,
            )
            self._store.update(lambda prev: [*prev, optimistic])
            self._drafts.clear()
        else:
            self._set_status(local_id, DeliveryStatus.SENDING)

        try:
            persisted = await with_retry(
                lambda: self._backend.insert_message(
                    resolved.id, self._viewer_id, text, idempotency_key, metadata,
                ),
                max_retries=self._max_retries,
                base_delay=self._base_delay,
                max_delay=self._max_delay,
            )
        except Exception:
            logger.exception(
                "Error sending message %s in conversation %s", local_id, resolved.id,
            )
            return await self._fail(local_id, resolved, shown=self._is_bound(conversation))

        if self._is_bound(conversation):
            self._store.update(
                lambda prev: [persisted if m.id == local_id else m for m in prev]
            )
        logger.debug("Message %s delivered as %s", local_id, persisted.id)

        if resolved.newly_observed and self._is_bound(conversation):
            self._conversation = resolved.conversation
            if self._on_conversation_resolved is not None:
                await self._on_conversation_resolved(resolved)
        self._hooks.message_event(
            ChatEvent(type=ChatEventType.SENT, conversation_id=resolved.id, message=persisted)
        )
        if resolved.newly_observed:
            self._hooks.conversation_created(resolved.conversation)
        return SendResult(SendStatus.DELIVERED, message=persisted)

    async def _fail(self, local_id: str, resolved: ResolvedConversation, *, shown: bool) -> SendResult:
        if shown:
            self._set_status(local_id, DeliveryStatus.FAILED, SEND_FAILED_REASON)
        await self._resolver.rollback(resolved)
        self._hooks.notice(SEND_FAILED_NOTICE)
        return SendResult(SendStatus.FAILED, message=self._store.get(local_id), detail=SEND_FAILED_REASON)

    def _is_bound(self, conversation: Conversation) -> bool:
        return self._conversation is conversation

    async def _check_rate_limit(self) -> str | None:
        if self._rate_limiter is None:
            return None
        try:
            decision = await self._rate_limiter.check_send_allowed(self._viewer_id)
        except Exception:
            logger.warning("Send rate limit check failed, allowing send", exc_info=True)
            return None
        if decision.allowed:
            return None
        return format_rate_limit_error(decision, self._clock.now())

    def _set_status(self, message_id: str, status: DeliveryStatus, error: str | None = None) -> None:
        self._store.update(
            lambda prev: [
                m.transition(status, error) if m.id == message_id and m.status != status else m
                for m in prev
            ]
        )
