from __future__ import annotations

import pytest

from chat_sync.domain.entities.conversation import Conversation
from chat_sync.domain.entities.message import InvalidTransitionError, Message
from chat_sync.domain.entities.participant import ParticipantSummary
from chat_sync.domain.value_objects.cursor import MessageCursor
from chat_sync.domain.value_objects.enums import ConversationStatus, DeliveryStatus
from chat_sync.domain.value_objects.ids import is_optimistic_id, new_idempotency_key, optimistic_id
from tests.conftest import PEER, VIEWER, at, make_conversation, make_message, make_pending


def _local(status: DeliveryStatus = DeliveryStatus.SENDING) -> Message:
    return Message(
        id=optimistic_id("k1"),
        conversation_id="conv-1",
        sender_id=VIEWER,
        content="hi",
        sent_at=at(1),
        status=status,
    )


def test_idempotency_key_contains_sender_and_is_unique():
    a = new_idempotency_key(VIEWER)
    b = new_idempotency_key(VIEWER)
    assert a.startswith(f"{VIEWER}-")
    assert a != b
    assert is_optimistic_id(optimistic_id(a))
    assert not is_optimistic_id("msg-0001")


def test_placeholder_cannot_be_delivered():
    with pytest.raises(InvalidTransitionError):
        _local(DeliveryStatus.DELIVERED)


def test_durable_row_must_be_delivered():
    with pytest.raises(InvalidTransitionError):
        Message(
            id="msg-1", conversation_id="c", sender_id=VIEWER, content="x",
            sent_at=at(1), status=DeliveryStatus.FAILED,
        )


def test_status_transitions():
    sending = _local()
    failed = sending.transition(DeliveryStatus.FAILED, "Failed to send")
    assert failed.status == DeliveryStatus.FAILED
    assert failed.error == "Failed to send"
    assert failed.id == sending.id

    retried = failed.transition(DeliveryStatus.SENDING)
    assert retried.error is None

    with pytest.raises(InvalidTransitionError):
        failed.transition(DeliveryStatus.DELIVERED)


def test_mark_read_and_unread():
    message = make_message(1)
    read = message.mark_read(at(50))
    assert read.is_read
    assert not read.mark_unread().is_read
    assert not message.is_read


def test_pending_conversation_has_no_id():
    pending = make_pending()
    assert pending.id is None
    assert pending.is_pending
    assert pending.peer_id(VIEWER) == PEER

    with pytest.raises(ValueError):
        Conversation(id=None, participant_one_id=VIEWER, participant_two_id=PEER)
    with pytest.raises(ValueError):
        Conversation(
            id="c", participant_one_id=VIEWER, participant_two_id=PEER,
            status=ConversationStatus.PENDING,
        )


def test_peer_id_is_order_independent():
    conversation = make_conversation()
    assert conversation.peer_id(VIEWER) == PEER
    assert conversation.peer_id(PEER) == VIEWER


def test_activate_keeps_profile_summary():
    pending = make_pending()
    durable = Conversation(id="conv-9", participant_one_id=PEER, participant_two_id=VIEWER)

    active = pending.activate(durable)

    assert active.id == "conv-9"
    assert not active.is_pending
    assert active.other_participant == ParticipantSummary(id=PEER, full_name="Peer")


def test_cursor_admits_strictly_older_rows():
    cursor = MessageCursor.from_message(make_message(5))
    assert cursor.admits(make_message(4))
    assert not cursor.admits(make_message(5))
    assert not cursor.admits(make_message(6))

    same_time_lower_id = Message(
        id="msg-0000", conversation_id="conv-1", sender_id=PEER, content="x", sent_at=at(5),
    )
    assert cursor.admits(same_time_lower_id)
