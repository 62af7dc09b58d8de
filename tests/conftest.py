"""Shared test fixtures and in-memory fakes of the backend ports."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import pytest

from chat_sync.application.dto.events import ChatEvent, ChatHooks
from chat_sync.application.exceptions import UniqueViolationError
from chat_sync.application.ports.rate_limit import RateLimitDecision
from chat_sync.domain.entities.conversation import Conversation
from chat_sync.domain.entities.message import Message
from chat_sync.domain.entities.participant import ParticipantSummary
from chat_sync.domain.value_objects.cursor import MessageCursor
from chat_sync.domain.value_objects.enums import ChannelHealth

VIEWER = "user-a"
PEER = "user-b"
CONV_ID = "conv-1"
T0 = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def at(seconds: float) -> datetime:
    return T0 + timedelta(seconds=seconds)


def make_message(
    n: int,
    *,
    conversation_id: str = CONV_ID,
    sender_id: str = PEER,
    content: str | None = None,
    sent_at: datetime | None = None,
    read_at: datetime | None = None,
) -> Message:
    return Message(
        id=f"msg-{n:04d}",
        conversation_id=conversation_id,
        sender_id=sender_id,
        content=content if content is not None else f"message {n}",
        sent_at=sent_at or at(n),
        read_at=read_at,
    )


def make_conversation(
    *,
    conversation_id: str = CONV_ID,
    viewer_id: str = VIEWER,
    peer_id: str = PEER,
) -> Conversation:
    return Conversation(
        id=conversation_id,
        participant_one_id=viewer_id,
        participant_two_id=peer_id,
        other_participant=ParticipantSummary(id=peer_id, full_name="Peer"),
        created_at=T0,
    )


def make_pending(*, viewer_id: str = VIEWER, peer_id: str = PEER) -> Conversation:
    return Conversation.pending(viewer_id, ParticipantSummary(id=peer_id, full_name="Peer"))


class FixedClock:
    def __init__(self, now: datetime = at(3600)) -> None:
        self.current = now

    def now(self) -> datetime:
        return self.current


@dataclass
class FakeMessageGateway:
    """Newest-first listing, idempotent inserts, watermark reads."""

    messages: list[Message] = field(default_factory=list)
    viewer_id: str = VIEWER
    unread: int = 0
    list_errors: list[Exception] = field(default_factory=list)
    insert_errors: list[Exception] = field(default_factory=list)
    mark_errors: list[Exception] = field(default_factory=list)
    list_gate: asyncio.Event | None = None
    insert_gate: asyncio.Event | None = None
    mark_gate: asyncio.Event | None = None
    calls: list[tuple[Any, ...]] = field(default_factory=list)
    _by_key: dict[tuple[str, str], Message] = field(default_factory=dict)
    _seq: int = 0

    def call_names(self) -> list[str]:
        return [c[0] for c in self.calls]

    def calls_to(self, name: str) -> list[tuple[Any, ...]]:
        return [c for c in self.calls if c[0] == name]

    async def list_messages(
        self,
        conversation_id: str,
        *,
        before: MessageCursor | None = None,
        limit: int = 50,
    ) -> list[Message]:
        self.calls.append(("list_messages", conversation_id, before))
        if self.list_gate is not None:
            await self.list_gate.wait()
        if self.list_errors:
            raise self.list_errors.pop(0)
        rows = [m for m in self.messages if m.conversation_id == conversation_id]
        if before is not None:
            rows = [m for m in rows if m.sort_key < before.key]
        rows.sort(key=lambda m: m.sort_key, reverse=True)
        return rows[:limit]

    async def insert_message(
        self,
        conversation_id: str,
        sender_id: str,
        content: str,
        idempotency_key: str,
        metadata: dict[str, Any] | None = None,
    ) -> Message:
        self.calls.append(("insert_message", conversation_id, idempotency_key))
        if self.insert_gate is not None:
            await self.insert_gate.wait()
        if self.insert_errors:
            raise self.insert_errors.pop(0)
        key = (sender_id, idempotency_key)
        if key in self._by_key:
            return self._by_key[key]
        self._seq += 1
        message = Message(
            id=f"srv-{self._seq:04d}",
            conversation_id=conversation_id,
            sender_id=sender_id,
            content=content,
            sent_at=at(7200 + self._seq),
            metadata=metadata,
        )
        self._by_key[key] = message
        self.messages.append(message)
        return message

    async def mark_read_before(self, conversation_id: str, before: datetime) -> int:
        self.calls.append(("mark_read_before", conversation_id, before))
        if self.mark_gate is not None:
            await self.mark_gate.wait()
        if self.mark_errors:
            raise self.mark_errors.pop(0)
        affected = 0
        for i, m in enumerate(self.messages):
            if (
                m.conversation_id == conversation_id
                and m.sender_id != self.viewer_id
                and m.read_at is None
                and m.sent_at <= before
            ):
                self.messages[i] = m.mark_read(at(9000))
                affected += 1
        return affected

    async def count_unread(self) -> int:
        self.calls.append(("count_unread",))
        return self.unread


@dataclass
class FakeConversationGateway:
    """Enforces one conversation per unordered participant pair."""

    conversations: dict[str, Conversation] = field(default_factory=dict)
    create_errors: list[Exception] = field(default_factory=list)
    delete_errors: list[Exception] = field(default_factory=list)
    hidden: bool = False
    calls: list[tuple[Any, ...]] = field(default_factory=list)
    _seq: int = 0

    def _by_pair(self, a: str, b: str) -> Conversation | None:
        for conversation in self.conversations.values():
            if {conversation.participant_one_id, conversation.participant_two_id} == {a, b}:
                return conversation
        return None

    async def find_conversation(self, participant_a: str, participant_b: str) -> Conversation | None:
        self.calls.append(("find_conversation", participant_a, participant_b))
        if self.hidden:
            return None
        return self._by_pair(participant_a, participant_b)

    async def create_conversation(self, participant_a: str, participant_b: str) -> Conversation:
        self.calls.append(("create_conversation", participant_a, participant_b))
        await asyncio.sleep(0)
        if self.create_errors:
            raise self.create_errors.pop(0)
        if self._by_pair(participant_a, participant_b) is not None:
            raise UniqueViolationError("duplicate key value violates unique constraint")
        self._seq += 1
        conversation = Conversation(
            id=f"conv-new-{self._seq}",
            participant_one_id=participant_a,
            participant_two_id=participant_b,
            created_at=T0,
        )
        self.conversations[conversation.id] = conversation
        return conversation

    async def delete_conversation(self, conversation_id: str) -> None:
        self.calls.append(("delete_conversation", conversation_id))
        if self.delete_errors:
            raise self.delete_errors.pop(0)
        self.conversations.pop(conversation_id, None)


@dataclass
class FakeRealtimeChannel:
    subscriptions: dict[str, tuple[Callable[..., None], ...]] = field(default_factory=dict)
    history: list[tuple[str, str]] = field(default_factory=list)

    def subscribe(self, conversation_id, on_insert, on_update, on_health):
        self.subscriptions[conversation_id] = (on_insert, on_update, on_health)
        self.history.append(("subscribe", conversation_id))

        def unsubscribe() -> None:
            self.subscriptions.pop(conversation_id, None)
            self.history.append(("unsubscribe", conversation_id))

        return unsubscribe

    def push_insert(self, message: Message) -> None:
        self.subscriptions[message.conversation_id][0](message)

    def push_update(self, message: Message) -> None:
        self.subscriptions[message.conversation_id][1](message)

    def push_health(self, conversation_id: str, health: ChannelHealth) -> None:
        self.subscriptions[conversation_id][2](health)


@dataclass
class FakeRateLimiter:
    decision: RateLimitDecision = field(
        default_factory=lambda: RateLimitDecision(allowed=True, remaining=10, limit=30)
    )
    error: Exception | None = None
    calls: list[str] = field(default_factory=list)

    async def check_send_allowed(self, user_id: str) -> RateLimitDecision:
        self.calls.append(user_id)
        if self.error is not None:
            raise self.error
        return self.decision


@dataclass
class RecordingHooks:
    events: list[ChatEvent] = field(default_factory=list)
    created: list[Conversation] = field(default_factory=list)
    read: list[str] = field(default_factory=list)
    notices: list[str] = field(default_factory=list)

    def as_hooks(self) -> ChatHooks:
        return ChatHooks(
            on_message_event=self.events.append,
            on_conversation_created=self.created.append,
            on_conversation_read=self.read.append,
            notify=self.notices.append,
        )


@pytest.fixture
def gateway() -> FakeMessageGateway:
    return FakeMessageGateway()


@pytest.fixture
def conversations() -> FakeConversationGateway:
    return FakeConversationGateway()


@pytest.fixture
def recorder() -> RecordingHooks:
    return RecordingHooks()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()
