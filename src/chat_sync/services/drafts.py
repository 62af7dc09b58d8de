from __future__ import annotations

import logging

from chat_sync.application.ports.drafts import DraftStorage
from chat_sync.config import settings
from chat_sync.domain.entities.conversation import Conversation
from chat_sync.domain.value_objects.ids import PENDING_KEY_PREFIX
from chat_sync.services.debounce import Debouncer

logger = logging.getLogger(__name__)


def derive_conversation_key(conversation: Conversation, viewer_id: str | None) -> str | None:
    """Durable id once one exists, otherwise a key derived from the peer."""
    if not viewer_id:
        return None
    if conversation.id and not conversation.is_pending:
        return conversation.id
    return pending_key(conversation, viewer_id)


def pending_key(conversation: Conversation, viewer_id: str) -> str | None:
    peer = conversation.peer_id(viewer_id)
    return f"{PENDING_KEY_PREFIX}{peer}" if peer else None


def storage_key(viewer_id: str, conversation_key: str) -> str:
    return f"message-draft:{viewer_id}:{conversation_key}"


class DraftManager:
    """Compose-field text with debounced, per-viewer persistence."""

    def __init__(
        self,
        storage: DraftStorage,
        viewer_id: str,
        *,
        delay: float = settings.DRAFT_DEBOUNCE_SECONDS,
    ) -> None:
        self._storage = storage
        self._viewer_id = viewer_id
        self._text = ""
        self._key: str | None = None
        self._timer = Debouncer(delay, self._persist, name="draft")

    @property
    def text(self) -> str:
        return self._text

    @property
    def key(self) -> str | None:
        return self._key

    async def bind(self, conversation: Conversation | None) -> str:
        """Switch drafts to ``conversation`` and return its stored text."""
        await self._timer.flush()
        if conversation is None:
            self._key = None
            self._text = ""
            return ""

        self._key = derive_conversation_key(conversation, self._viewer_id)
        if self._key is None:
            self._text = ""
            return ""

        draft = self._storage.get(storage_key(self._viewer_id, self._key))
        if not draft and not conversation.is_pending:
            draft = self._adopt_pending_draft(conversation)
        self._text = draft or ""
        return self._text

    def set_text(self, text: str) -> None:
        self._text = text
        if self._key is not None:
            self._timer.restart()

    def clear(self) -> None:
        """Empty the field and drop the stored draft, e.g. after a send."""
        self._timer.cancel()
        self._text = ""
        if self._key is not None:
            self._storage.clear(storage_key(self._viewer_id, self._key))

    async def flush(self) -> None:
        await self._timer.flush()

    def cancel(self) -> None:
        self._timer.cancel()

    def _persist(self) -> None:
        if self._key is None:
            return
        key = storage_key(self._viewer_id, self._key)
        if not self._text.strip():
            self._storage.clear(key)
            return
        self._storage.set(key, self._text)

    def _adopt_pending_draft(self, conversation: Conversation) -> str | None:
        """Move a draft typed before the conversation existed onto its durable key."""
        synthetic = pending_key(conversation, self._viewer_id)
        if synthetic is None or self._key is None:
            return None
        old = storage_key(self._viewer_id, synthetic)
        draft = self._storage.get(old)
        if not draft:
            return None
        self._storage.set(storage_key(self._viewer_id, self._key), draft)
        self._storage.clear(old)
        logger.debug("Migrated pending draft to conversation %s", self._key)
        return draft
