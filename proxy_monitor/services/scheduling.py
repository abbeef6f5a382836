"""
Timer policies shared by the event bridge and the dashboard orchestrator.

- Debouncer: trailing edge; every call re-arms the timer.
- Throttler: leading edge; calls inside the cooldown are collapsed into one
  call scheduled for the remainder of the cooldown.
- PeriodicTask: cancellable polling loop.

Callbacks may be plain functions or coroutine functions. Every policy exposes
`cancel()` / `stop()` so owners can guarantee nothing fires after teardown.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable

from proxy_monitor.logging_config import logger

Callback = Callable[[], Awaitable[None] | None]


class _TimerPolicy:
    def __init__(self, delay: float, callback: Callback, *, name: str) -> None:
        self._delay = float(delay)
        self._callback = callback
        self._name = name
        self._handle: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def _arm(self, delay: float) -> None:
        if self._handle is not None:
            self._handle.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(max(0.0, delay), self._fire)

    def _fire(self) -> None:
        self._handle = None
        self._invoke()

    def _invoke(self) -> None:
        try:
            result = self._callback()
        except Exception:
            logger.exception("%s callback failed", self._name)
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("%s callback failed: %r", self._name, exc, exc_info=exc)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()


class Debouncer(_TimerPolicy):
    def __init__(self, delay: float, callback: Callback, *, name: str = "debouncer") -> None:
        super().__init__(delay, callback, name=name)

    def __call__(self) -> None:
        self._arm(self._delay)


class Throttler(_TimerPolicy):
    def __init__(self, interval: float, callback: Callback, *, name: str = "throttler") -> None:
        super().__init__(interval, callback, name=name)
        self._last_run: float | None = None

    def __call__(self) -> None:
        now = asyncio.get_running_loop().time()
        elapsed = None if self._last_run is None else now - self._last_run
        if elapsed is None or elapsed >= self._delay:
            if self._handle is not None:
                self._handle.cancel()
                self._handle = None
            self._last_run = now
            self._invoke()
            return
        self._arm(self._delay - elapsed)

    def _fire(self) -> None:
        self._handle = None
        self._last_run = asyncio.get_running_loop().time()
        self._invoke()


class PeriodicTask:
    """
    以固定间隔重复执行回调，直到 stop()。回调异常只记录日志，不中断轮询。
    """

    def __init__(
        self,
        interval: float,
        callback: Callable[[], Awaitable[None]],
        *,
        name: str = "periodic-task",
    ) -> None:
        self.interval = float(interval)
        self._callback = callback
        self._name = name
        self._task: asyncio.Task[None] | None = None

    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_running():
            return
        self._task = asyncio.create_task(self._run_loop(), name=self._name)

    async def stop(self) -> None:
        task = self._task
        self._task = None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run_loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self._callback()
            except Exception:
                logger.exception("%s tick failed", self._name)


__all__ = ["Callback", "Debouncer", "PeriodicTask", "Throttler"]
