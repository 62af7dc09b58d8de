from __future__ import annotations

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from chat_sync.domain.entities.conversation import Conversation
from chat_sync.infrastructure.db.mappers import conversation as mapper
from chat_sync.infrastructure.db.models.conversation import ConversationModel, pair_key
from chat_sync.infrastructure.db.models.profile import ProfileModel


class ConversationReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_pair(
        self,
        participant_a: str,
        participant_b: str,
        *,
        viewer_id: str | None = None,
    ) -> Conversation | None:
        stmt = select(ConversationModel).where(
            ConversationModel.pair_key == pair_key(participant_a, participant_b),
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        if model is None:
            return None
        return await self._to_entity(model, viewer_id)

    async def _to_entity(self, model: ConversationModel, viewer_id: str | None) -> Conversation:
        other = None
        if viewer_id is not None:
            other_id = (
                model.participant_two_id
                if model.participant_one_id == viewer_id
                else model.participant_one_id
            )
            other = await self._session.get(ProfileModel, other_id)
        return mapper.model_to_entity(model, other)


class ConversationWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(
        self,
        participant_one_id: str,
        participant_two_id: str,
        *,
        viewer_id: str | None = None,
    ) -> Conversation:
        """Insert a conversation; a duplicate pair raises IntegrityError on flush."""
        model = ConversationModel(
            participant_one_id=participant_one_id,
            participant_two_id=participant_two_id,
            pair_key=pair_key(participant_one_id, participant_two_id),
        )
        self._session.add(model)
        await self._session.flush()
        await self._session.refresh(model)
        return await ConversationReaderRepo(self._session)._to_entity(model, viewer_id)

    async def delete(self, conversation_id: str) -> None:
        stmt = delete(ConversationModel).where(ConversationModel.id == conversation_id)
        await self._session.execute(stmt)
