from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime

from chat_sync.domain.entities.participant import ParticipantSummary
from chat_sync.domain.value_objects.enums import ConversationStatus


@dataclass(frozen=True, slots=True)
class Conversation:
    id: str | None
    participant_one_id: str
    participant_two_id: str
    other_participant: ParticipantSummary | None = None
    status: ConversationStatus = ConversationStatus.ACTIVE
    created_at: datetime | None = None

    def __post_init__(self) -> None:
        if (self.id is None) != (self.status == ConversationStatus.PENDING):
            raise ValueError(f"conversation id={self.id!r} inconsistent with status={self.status}")

    @classmethod
    def pending(
        cls,
        viewer_id: str,
        other: ParticipantSummary,
    ) -> Conversation:
        return cls(
            id=None,
            participant_one_id=viewer_id,
            participant_two_id=other.id,
            other_participant=other,
            status=ConversationStatus.PENDING,
        )

    @property
    def is_pending(self) -> bool:
        return self.status == ConversationStatus.PENDING

    def peer_id(self, viewer_id: str) -> str | None:
        other = self.other_participant.id if self.other_participant else None
        if self.participant_one_id == viewer_id:
            return self.participant_two_id or other
        if self.participant_two_id == viewer_id:
            return self.participant_one_id or other
        return other

    def activate(self, durable: Conversation) -> Conversation:
        """Pending view switched onto its durable row, keeping the profile summary."""
        return replace(
            durable,
            other_participant=durable.other_participant or self.other_participant,
        )
