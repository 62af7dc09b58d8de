from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


class Debouncer:
    """Owned timer handle: runs ``callback`` once ``delay`` seconds after arming.

    Pending timers are never left to garbage collection; owners call
    ``cancel`` or ``flush`` on conversation change and shutdown.
    """

    def __init__(
        self,
        delay: float,
        callback: Callable[[], Awaitable[None] | None],
        *,
        name: str,
    ) -> None:
        self._delay = delay
        self._callback = callback
        self._name = name
        self._handle: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def armed(self) -> bool:
        return self._handle is not None

    def arm(self) -> None:
        """Start the timer unless it is already running."""
        if self._handle is not None:
            return
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self._delay, self._fire)

    def restart(self) -> None:
        self.cancel()
        self.arm()

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    async def flush(self) -> None:
        """Run the callback now if the timer is armed."""
        if self._handle is None:
            return
        self.cancel()
        await self._run()

    async def drain(self) -> None:
        """Wait for callbacks already started by the timer."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _fire(self) -> None:
        self._handle = None
        task = asyncio.get_running_loop().create_task(self._run(), name=f"debounce-{self._name}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self) -> None:
        try:
            result = self._callback()
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Debounced callback %s failed", self._name)
