from __future__ import annotations

import logging
from dataclasses import dataclass

from chat_sync.application.exceptions import (
    ConversationResolutionError,
    UniqueViolationError,
    ValidationError,
)
from chat_sync.application.ports.backend import ConversationGateway
from chat_sync.application.retry import with_retry
from chat_sync.config import settings
from chat_sync.domain.entities.conversation import Conversation

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ResolvedConversation:
    conversation: Conversation
    created: bool
    newly_observed: bool

    @property
    def id(self) -> str:
        assert self.conversation.id is not None
        return self.conversation.id


class ConversationResolver:
    """Find-or-create the durable conversation row for a viewer/peer pair."""

    def __init__(
        self,
        backend: ConversationGateway,
        viewer_id: str,
        *,
        max_retries: int = settings.SEND_MAX_RETRIES,
        base_delay: float = settings.SEND_RETRY_BASE_DELAY,
        max_delay: float = settings.SEND_RETRY_MAX_DELAY,
    ) -> None:
        self._backend = backend
        self._viewer_id = viewer_id
        self._max_retries = max_retries
        self._base_delay = base_delay
        self._max_delay = max_delay

    async def resolve(self, conversation: Conversation) -> ResolvedConversation:
        """Return a conversation with a durable id.

        A unique violation on create means a concurrent sender got there first;
        the existing row is looked up instead. Other errors propagate.
        """
        if not conversation.is_pending:
            return ResolvedConversation(conversation, created=False, newly_observed=False)

        peer_id = conversation.peer_id(self._viewer_id)
        if not peer_id:
            raise ValidationError("Cannot determine recipient for conversation")

        try:
            created = await with_retry(
                lambda: self._backend.create_conversation(self._viewer_id, peer_id),
                max_retries=self._max_retries,
                base_delay=self._base_delay,
                max_delay=self._max_delay,
            )
        except UniqueViolationError as exc:
            logger.info("Conversation with peer already exists, fetching it")
            existing = await self._backend.find_conversation(self._viewer_id, peer_id)
            if existing is None:
                raise ConversationResolutionError(
                    "Conversation exists but could not be found"
                ) from exc
            return ResolvedConversation(
                conversation.activate(existing), created=False, newly_observed=True,
            )

        logger.info("Created conversation %s", created.id)
        return ResolvedConversation(
            conversation.activate(created), created=True, newly_observed=True,
        )

    async def rollback(self, resolved: ResolvedConversation) -> None:
        """Best-effort delete of a conversation this resolver created."""
        if not resolved.created:
            return
        try:
            await self._backend.delete_conversation(resolved.id)
        except Exception:
            logger.exception("Failed to roll back empty conversation %s", resolved.id)
        else:
            logger.info("Rolled back empty conversation %s", resolved.id)
