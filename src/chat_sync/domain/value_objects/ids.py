from __future__ import annotations

import time
import uuid
from typing import NewType

MessageId = NewType("MessageId", str)

OPTIMISTIC_PREFIX = "optimistic-"
PENDING_KEY_PREFIX = "pending-"


def new_idempotency_key(sender_id: str) -> str:
    """Unique per send attempt: sender, wall clock millis and a random part."""
    return f"{sender_id}-{int(time.time() * 1000)}-{uuid.uuid4().hex}"


def optimistic_id(idempotency_key: str) -> MessageId:
    return MessageId(f"{OPTIMISTIC_PREFIX}{idempotency_key}")


def is_optimistic_id(message_id: str) -> bool:
    return message_id.startswith(OPTIMISTIC_PREFIX)
