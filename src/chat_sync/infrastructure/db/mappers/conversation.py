from __future__ import annotations

from chat_sync.domain.entities.conversation import Conversation
from chat_sync.domain.entities.participant import ParticipantSummary
from chat_sync.infrastructure.db.models.conversation import ConversationModel
from chat_sync.infrastructure.db.models.profile import ProfileModel


def profile_to_summary(model: ProfileModel) -> ParticipantSummary:
    return ParticipantSummary(
        id=model.id,
        full_name=model.full_name,
        avatar_url=model.avatar_url,
        role=model.role,
    )


def model_to_entity(
    model: ConversationModel,
    other: ProfileModel | None = None,
) -> Conversation:
    return Conversation(
        id=str(model.id),
        participant_one_id=model.participant_one_id,
        participant_two_id=model.participant_two_id,
        other_participant=profile_to_summary(other) if other is not None else None,
        created_at=model.created_at,
    )
