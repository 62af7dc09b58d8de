from __future__ import annotations

import asyncio

import pytest

from chat_sync.services.unread import UnreadCounter
from tests.conftest import FakeMessageGateway


def test_count_is_clamped_and_listeners_notified():
    counter = UnreadCounter(count=3)
    seen: list[int] = []
    counter.add_listener(seen.append)

    counter.decrement(2)
    counter.decrement(5)
    counter.set(0)
    counter.decrement(0)

    assert counter.count == 0
    assert seen == [1, 0]


@pytest.mark.asyncio
async def test_concurrent_refreshes_share_one_request():
    gateway = FakeMessageGateway(unread=7)
    counter = UnreadCounter(gateway)

    results = await asyncio.gather(counter.refresh(), counter.refresh(), counter.refresh())

    assert results == [7, 7, 7]
    assert gateway.call_names() == ["count_unread"]
    assert counter.count == 7


class _Failing(FakeMessageGateway):
    async def count_unread(self) -> int:
        raise ConnectionError("offline")


@pytest.mark.asyncio
async def test_failed_refresh_keeps_last_count():
    counter = UnreadCounter(_Failing(), count=4)
    assert await counter.refresh() == 4
    assert counter.count == 4


@pytest.mark.asyncio
async def test_refresh_without_backend_returns_local_count():
    counter = UnreadCounter(count=2)
    assert await counter.refresh() == 2
