from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol


@dataclass(frozen=True, slots=True)
class RateLimitDecision:
    allowed: bool
    remaining: int
    limit: int
    reset_at: datetime | None = None


class RateLimiter(Protocol):
    async def check_send_allowed(self, user_id: str) -> RateLimitDecision: ...
