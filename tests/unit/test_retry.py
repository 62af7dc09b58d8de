from __future__ import annotations

import pytest

from chat_sync.application.exceptions import BackendError, UniqueViolationError
from chat_sync.application.retry import calc_backoff, is_retryable, with_retry


@pytest.mark.parametrize(
    "exc, expected",
    [
        (BackendError("pool exhausted", code="53300"), True),
        (BackendError("gateway timeout", code="PGRST504"), True),
        (BackendError("upstream", status=503), True),
        (BackendError("slow down", status=429), True),
        (BackendError("bad request", status=400), False),
        (BackendError("new row violates row-level security policy", code="42501"), False),
        (UniqueViolationError("duplicate key"), False),
        (ConnectionError("reset by peer"), True),
        (TimeoutError(), True),
        (RuntimeError("Network request failed"), True),
        (RuntimeError("rate limit exceeded"), True),
        (ValueError("invalid input"), False),
    ],
)
def test_is_retryable(exc, expected):
    assert is_retryable(exc) is expected


def test_backoff_is_exponential_and_capped():
    assert [calc_backoff(n, 0.5, 3.0) for n in range(5)] == [0.5, 1.0, 2.0, 3.0, 3.0]


@pytest.mark.asyncio
async def test_with_retry_recovers_from_transient_errors():
    attempts: list[int] = []
    retried: list[int] = []

    async def flaky():
        attempts.append(1)
        if len(attempts) < 3:
            raise BackendError("upstream", status=502)
        return "ok"

    result = await with_retry(
        flaky, max_retries=3, base_delay=0, on_retry=lambda exc, n: retried.append(n),
    )

    assert result == "ok"
    assert len(attempts) == 3
    assert retried == [1, 2]


@pytest.mark.asyncio
async def test_with_retry_gives_up_after_max_retries():
    calls = 0

    async def down():
        nonlocal calls
        calls += 1
        raise ConnectionError("offline")

    with pytest.raises(ConnectionError):
        await with_retry(down, max_retries=2, base_delay=0)
    assert calls == 3


@pytest.mark.asyncio
async def test_with_retry_does_not_retry_client_errors():
    calls = 0

    async def rejected():
        nonlocal calls
        calls += 1
        raise UniqueViolationError("duplicate key")

    with pytest.raises(UniqueViolationError):
        await with_retry(rejected, max_retries=5, base_delay=0)
    assert calls == 1

