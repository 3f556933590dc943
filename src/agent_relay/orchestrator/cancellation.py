"""Cancellation token that owns every timer spawned for one task."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

TimerCallback = Callable[[], Awaitable[None]]


class CancellationToken:
    """Cooperative cancellation shared by a task, its runner and its timers.

    Timers are asyncio tasks registered on the token, so a single ``cancel()``
    tears all of them down. Scheduling on an already cancelled token does
    nothing.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._tasks: set[asyncio.Task[None]] = set()
        self._callbacks: list[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def pending_timers(self) -> int:
        return len(self._tasks)

    def cancel(self) -> None:
        if self._event.is_set():
            return
        self._event.set()
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()
        tasks, self._tasks = self._tasks, set()
        current = asyncio.current_task() if _has_running_loop() else None
        for task in tasks:
            if task is not current:
                task.cancel()

    async def wait(self) -> None:
        await self._event.wait()

    def add_callback(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Run ``callback`` on cancellation; returns a function that unregisters it."""

        if self.cancelled:
            callback()
            return _noop

        self._callbacks.append(callback)

        def _remove() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return _remove

    def call_later(self, delay: float, callback: TimerCallback) -> asyncio.Task[None] | None:
        """Run ``callback`` once after ``delay`` seconds unless cancelled first."""

        if self.cancelled:
            return None

        async def _fire() -> None:
            await asyncio.sleep(max(0.0, delay))
            await callback()

        return self._track(asyncio.create_task(_fire()))

    def call_every(
        self,
        interval: float,
        callback: TimerCallback,
        *,
        immediately: bool = False,
    ) -> asyncio.Task[None] | None:
        """Run ``callback`` every ``interval`` seconds until cancelled."""

        if self.cancelled:
            return None

        async def _loop() -> None:
            if immediately:
                await callback()
            while True:
                await asyncio.sleep(interval)
                await callback()

        return self._track(asyncio.create_task(_loop()))

    def _track(self, task: asyncio.Task[None]) -> asyncio.Task[None]:
        self._tasks.add(task)
        task.add_done_callback(self._on_timer_done)
        return task

    def _on_timer_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("Task timer failed: %s", error, exc_info=error)


def _has_running_loop() -> bool:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True


def _noop() -> None:
    return None
