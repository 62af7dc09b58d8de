from __future__ import annotations

import json
import uuid
from datetime import datetime

import pytest

from chat_sync.infrastructure.bus.protocol import MESSAGE_INSERTED, MessageRowPayload
from chat_sync.infrastructure.bus.serializer import deserialize_event, serialize_event
from tests.conftest import T0, make_message


def test_envelope_encodes_uuid_and_datetime():
    event_id = uuid.uuid4()
    raw = serialize_event("conversation.created", {"id": event_id, "at": T0})

    decoded = json.loads(raw)
    assert decoded["event"] == "conversation.created"
    assert decoded["data"]["id"] == str(event_id)
    assert datetime.fromisoformat(decoded["data"]["at"]) == T0


@pytest.mark.parametrize("raw", ["[]", '{"data": {}}', '{"event": "x", "data": 3}', "{"])
def test_malformed_envelope_raises_value_error(raw):
    with pytest.raises(ValueError):
        deserialize_event(raw)


def test_message_row_round_trips_through_the_wire():
    message = make_message(3, read_at=T0)
    raw = serialize_event(MESSAGE_INSERTED, MessageRowPayload.from_entity(message).model_dump())

    event_type, data = deserialize_event(raw)

    assert event_type == MESSAGE_INSERTED
    assert MessageRowPayload.model_validate(data).to_entity() == message
