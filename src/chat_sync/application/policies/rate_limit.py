from __future__ import annotations

import math
from datetime import datetime, timezone

from chat_sync.application.ports.rate_limit import RateLimitDecision


def format_rate_limit_error(
    decision: RateLimitDecision,
    now: datetime | None = None,
) -> str:
    """User-facing text for a rejected send."""
    if decision.reset_at is None:
        return "Too many attempts. Please try again later."
    now = now or datetime.now(timezone.utc)
    minutes = math.ceil((decision.reset_at - now).total_seconds() / 60)
    if minutes <= 1:
        return "Too many attempts. Please try again in a minute."
    if minutes < 60:
        return f"Too many attempts. Please try again in {minutes} minutes."
    hours = math.ceil(minutes / 60)
    return f"Too many attempts. Please try again in {hours} hour{'s' if hours > 1 else ''}."
