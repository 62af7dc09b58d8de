from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class ParticipantSummary:
    """Denormalized public profile of the other side of a conversation."""

    id: str
    full_name: str | None = None
    avatar_url: str | None = None
    role: str | None = None
