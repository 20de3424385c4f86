"""Cancellable delayed and periodic jobs owned by a session."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger("wakit.jobs")

JobFn = Callable[[], Awaitable[None]]


class SingleDelayedJobRunner:
    """Runs at most one pending job after a fixed delay.

    Scheduling while a job is already pending is a no-op, so a burst of
    requests collapses into a single run.  Once the job starts it is no
    longer pending and may schedule the next run itself.
    """

    def __init__(self, name: str, delay_seconds: float) -> None:
        self.name = name
        self._delay = delay_seconds
        self._task: asyncio.Task[None] | None = None
        self._pending = False

    @property
    def scheduled(self) -> bool:
        return self._pending

    def schedule(self, fn: JobFn) -> bool:
        """Schedule *fn*; return ``False`` when a run is already pending."""
        if self._pending:
            logger.debug("Job '%s' already scheduled, skipping", self.name)
            return False
        self._pending = True
        self._task = asyncio.create_task(self._run(fn), name=f"job:{self.name}")
        logger.debug("Job '%s' scheduled in %.1fs", self.name, self._delay)
        return True

    async def _run(self, fn: JobFn) -> None:
        await asyncio.sleep(self._delay)
        self._pending = False
        try:
            await fn()
        except Exception:
            logger.exception("Job '%s' failed", self.name)

    def cancel(self) -> None:
        """Drop the pending run, if any."""
        if self._pending and self._task is not None:
            self._task.cancel()
            logger.debug("Job '%s' cancelled", self.name)
        self._pending = False
        self._task = None


class SinglePeriodicJobRunner:
    """Runs one job every *interval_seconds* until stopped."""

    def __init__(self, name: str, interval_seconds: float) -> None:
        self.name = name
        self.interval = interval_seconds
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, fn: JobFn) -> bool:
        if self.running:
            return False
        self._task = asyncio.create_task(self._loop(fn), name=f"periodic:{self.name}")
        return True

    async def _loop(self, fn: JobFn) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await fn()
            except Exception:
                logger.exception("Periodic job '%s' failed", self.name)

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None


class DeferredTasks:
    """One-shot background tasks that must not outlive their owner."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[None]] = set()

    def __len__(self) -> int:
        return len(self._tasks)

    def schedule(self, delay_seconds: float, fn: JobFn, name: str) -> asyncio.Task[None]:
        async def run() -> None:
            await asyncio.sleep(delay_seconds)
            try:
                await fn()
            except Exception:
                logger.exception("Deferred task '%s' failed", name)

        task = asyncio.create_task(run(), name=f"deferred:{name}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def cancel_all(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._tasks.clear()
