"""Viewer-wide unread message counter shared by every open conversation."""
from __future__ import annotations

import asyncio
import logging
from typing import Callable

from chat_sync.application.ports.backend import MessageGateway

logger = logging.getLogger(__name__)


class UnreadCounter:
    def __init__(self, backend: MessageGateway | None = None, count: int = 0) -> None:
        self._backend = backend
        self._count = max(0, count)
        self._listeners: list[Callable[[int], None]] = []
        self._refreshing: asyncio.Task[int] | None = None

    @property
    def count(self) -> int:
        return self._count

    def add_listener(self, listener: Callable[[int], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return remove

    def set(self, count: int) -> None:
        count = max(0, count)
        if count == self._count:
            return
        self._count = count
        for listener in list(self._listeners):
            try:
                listener(count)
            except Exception:
                logger.exception("Unread counter listener failed")

    def decrement(self, by: int) -> None:
        if by > 0:
            self.set(self._count - by)

    async def refresh(self) -> int:
        """Reload the count from the backend; concurrent callers share one request."""
        if self._backend is None:
            return self._count
        if self._refreshing is None:
            self._refreshing = asyncio.get_running_loop().create_task(self._fetch())
        task = self._refreshing
        try:
            return await asyncio.shield(task)
        finally:
            if self._refreshing is task and task.done():
                self._refreshing = None

    async def _fetch(self) -> int:
        assert self._backend is not None
        try:
            count = await self._backend.count_unread()
        except Exception:
            logger.exception("Failed to fetch unread count")
            return self._count
        self.set(count)
        return self._count
