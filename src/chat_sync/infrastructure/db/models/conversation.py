from __future__ import annotations

from datetime import datetime

from sqlalchemy import String, UniqueConstraint, text
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from chat_sync.infrastructure.db.base import Base


def pair_key(participant_a: str, participant_b: str) -> str:
    """Order-independent key of an unordered participant pair."""
    low, high = sorted((participant_a, participant_b))
    return f"{low}:{high}"


class ConversationModel(Base):
    __tablename__ = "conversations"

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    )
    participant_one_id: Mapped[str] = mapped_column(String(64), nullable=False)
    participant_two_id: Mapped[str] = mapped_column(String(64), nullable=False)
    pair_key: Mapped[str] = mapped_column(String(129), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=text("now()"),
    )

    messages = relationship("MessageModel", back_populates="conversation", lazy="noload")

    __table_args__ = (
        UniqueConstraint("pair_key", name="uq_conversation_pair"),
    )
