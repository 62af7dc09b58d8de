"""Retry helpers for transient backend failures."""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from chat_sync.application.exceptions import BackendError, ConflictError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Postgres / PostgREST codes that indicate a transient condition.
RETRYABLE_CODES = frozenset({"PGRST504", "53300", "08006", "08001", "08003", "57P01", "40001"})
RETRYABLE_HINTS = ("network", "timeout", "timed out", "rate limit", "connection", "fetch failed")


def is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, ConflictError):
        return False
    if isinstance(exc, BackendError):
        if exc.retryable or exc.code in RETRYABLE_CODES:
            return True
        if exc.status is not None:
            return exc.status >= 500 or exc.status == 429
    if isinstance(exc, (ConnectionError, TimeoutError)):
        return True
    text = str(exc).lower()
    return any(hint in text for hint in RETRYABLE_HINTS)


def calc_backoff(attempt: int, base_delay: float, max_delay: float) -> float:
    return min(base_delay * (2 ** attempt), max_delay)


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    *,
    max_retries: int = 3,
    base_delay: float = 0.5,
    max_delay: float = 5.0,
    on_retry: Callable[[BaseException, int], None] | None = None,
) -> T:
    """Call ``fn`` until it succeeds, a non-retryable error occurs, or retries run out."""
    attempt = 0
    while True:
        try:
            return await fn()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if attempt >= max_retries or not is_retryable(exc):
                raise
            attempt += 1
            delay = calc_backoff(attempt - 1, base_delay, max_delay)
            logger.warning(
                "Retrying after %s (attempt %d/%d, delay %.2fs)",
                type(exc).__name__, attempt, max_retries, delay,
            )
            if on_retry is not None:
                on_retry(exc, attempt)
            await asyncio.sleep(delay)

