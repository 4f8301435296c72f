"""
Named periodic tasks on a single asyncio loop (impulse generator)

Each registered task fires on its own interval. Invocations of the same task
never overlap: a tick that arrives while the previous invocation is still
running is dropped, not queued, so a slow or unreachable receiver cannot pile
up requests. Different tasks run independently.

Features:
- Start/stop are idempotent; restarting with a new task list adjusts
  intervals without duplicating timers
- Deadlines follow the loop's monotonic clock, ticks missed while the loop
  was stalled are skipped instead of fired in a burst
- Task failures are published on ``errors`` with the task name and do not
  stop the schedule
- ``lifecycle`` publishes True/False when scheduling starts/stops
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

from .events import EventChannel, Notice
from .models import TaskDescriptor

LOGGER = logging.getLogger(__name__)

TaskHandler = Callable[[], Awaitable[Any]]


class ImpulseGenerator:
    def __init__(
        self,
        handlers: dict[str, TaskHandler] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._logger = logger or LOGGER
        self._handlers: dict[str, TaskHandler] = dict(handlers or {})
        self._intervals: dict[str, float] = {}
        self._timers: dict[str, asyncio.Task] = {}
        self._inflight: dict[str, asyncio.Task] = {}
        self._last_fire: dict[str, float] = {}
        self._running = False
        self.errors: EventChannel[Notice] = EventChannel("scheduler.errors", self._logger)
        self.lifecycle: EventChannel[bool] = EventChannel("scheduler.lifecycle", self._logger)

    @property
    def running(self) -> bool:
        return self._running

    @property
    def busy(self) -> frozenset[str]:
        """Names of tasks with an invocation still in flight."""
        return frozenset(self._inflight)

    @property
    def intervals(self) -> dict[str, float]:
        return dict(self._intervals)

    def last_fire(self, name: str) -> float | None:
        return self._last_fire.get(name)

    async def start(self, tasks: Iterable[TaskDescriptor]) -> None:
        descriptors = {task.name: task for task in tasks}
        missing = [name for name in descriptors if name not in self._handlers]
        if missing:
            raise ValueError(f"No handler registered for task(s): {', '.join(sorted(missing))}")

        transition = not self._running
        if transition:
            self._last_fire.clear()

        for name in [name for name in self._timers if name not in descriptors]:
            await self._cancel_timer(name)
            self._intervals.pop(name, None)

        for name, task in descriptors.items():
            if name in self._timers and self._intervals.get(name) == task.interval:
                continue
            if name in self._timers:
                await self._cancel_timer(name)
                self._logger.debug("[scheduler] Interval of '%s' changed to %.2fs", name, task.interval)
            self._intervals[name] = task.interval
            self._timers[name] = asyncio.create_task(self._run_timer(name, task.interval), name=f"impulse-{name}")

        self._running = True
        if transition:
            self._logger.debug("[scheduler] Started: %s", ", ".join(f"{n}={i}s" for n, i in self._intervals.items()))
            self.lifecycle.publish(True)

    async def stop(self) -> None:
        """Cancel all pending fires. In-flight invocations are left to finish."""
        if not self._running:
            return
        self._running = False
        for name in list(self._timers):
            await self._cancel_timer(name)
        self._intervals.clear()
        self._logger.debug("[scheduler] Stopped")
        self.lifecycle.publish(False)

    def trigger(self, name: str) -> bool:
        """Fire ``name`` immediately unless it is already running.

        Returns:
            True if an invocation was started
        """
        if name not in self._handlers:
            raise KeyError(name)
        return self._fire(name)

    async def wait_idle(self, timeout: float | None = None) -> None:
        """Wait for in-flight invocations to finish (bounded by ``timeout``)."""
        pending = list(self._inflight.values())
        if not pending:
            return
        await asyncio.wait(pending, timeout=timeout)

    async def _cancel_timer(self, name: str) -> None:
        timer = self._timers.pop(name, None)
        if timer is None:
            return
        timer.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await timer

    async def _run_timer(self, name: str, interval: float) -> None:
        loop = asyncio.get_running_loop()
        next_fire = loop.time() + interval
        while True:
            await asyncio.sleep(max(0.0, next_fire - loop.time()))
            self._fire(name)
            next_fire += interval
            now = loop.time()
            if next_fire <= now:
                skipped = int((now - next_fire) // interval) + 1
                next_fire += skipped * interval
                self._logger.debug("[scheduler] '%s' skipped %d tick(s) after a stalled loop", name, skipped)

    def _fire(self, name: str) -> bool:
        if name in self._inflight:
            self._logger.debug("[scheduler] '%s' still running, tick dropped", name)
            return False
        self._last_fire[name] = asyncio.get_running_loop().time()
        task = asyncio.create_task(self._invoke(name), name=f"impulse-{name}-run")
        self._inflight[name] = task

        def _cleanup(_task: asyncio.Task) -> None:
            if self._inflight.get(name) is _task:
                del self._inflight[name]

        task.add_done_callback(_cleanup)
        return True

    async def _invoke(self, name: str) -> None:
        try:
            await self._handlers[name]()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._logger.debug("[scheduler] Task '%s' failed: %s", name, exc)
            self.errors.publish(Notice(level="error", message=str(exc), task=name, cause=exc))
