from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class Debouncer:
    """Single-owner delayed action: scheduling again replaces the pending one.

    Of a burst of schedule() calls only the last one fires, and the action it
    runs is built when the timer fires, not when it was scheduled.
    """

    def __init__(self, name: str = "debounce") -> None:
        self._name = name
        self._task: asyncio.Task[None] | None = None
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def schedule(self, delay_s: float, action: Callable[[], Awaitable[None]]) -> None:
        """Cancel any pending run and schedule ``action`` after ``delay_s`` seconds."""
        self.cancel()
        task = asyncio.get_running_loop().create_task(self._run(delay_s, action), name=self._name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        self._task = task

    def cancel(self) -> bool:
        """Cancel the pending run, returning whether one was pending."""
        task, self._task = self._task, None
        if task is None or task.done():
            return False
        task.cancel()
        return True

    async def drain(self) -> None:
        """Wait for every scheduled or running action to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _run(self, delay_s: float, action: Callable[[], Awaitable[None]]) -> None:
        await asyncio.sleep(delay_s)
        # once fired the action runs to completion, cancel() only drops timers
        if self._task is asyncio.current_task():
            self._task = None
        try:
            await action()
        except Exception:
            logger.exception("Debounced action %s failed", self._name)
