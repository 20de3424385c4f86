"""Session status bookkeeping helpers."""

from __future__ import annotations

import asyncio
import inspect
import time
from collections.abc import Awaitable, Callable

from wakit.models.enums import SessionStatus

STUCK_IN_STARTING_SECONDS = 60.0


class StatusTracker:
    """Remembers how long the session has been in ``STARTING`` without a break.

    Re-entering ``STARTING`` (a restart that did not reach any other status)
    keeps the original timestamp.
    """

    def __init__(self, stuck_after_seconds: float = STUCK_IN_STARTING_SECONDS) -> None:
        self._stuck_after = stuck_after_seconds
        self._starting_since: float | None = None
        self.last: SessionStatus | None = None

    def track(self, status: SessionStatus) -> None:
        if status == SessionStatus.STARTING:
            if self._starting_since is None:
                self._starting_since = time.monotonic()
        else:
            self._starting_since = None
        self.last = status

    def is_stuck_in_starting(self) -> bool:
        if self._starting_since is None:
            return False
        return time.monotonic() - self._starting_since > self._stuck_after


async def wait_until(
    condition: Callable[[], bool | Awaitable[bool]],
    interval: float,
    timeout: float,
) -> bool:
    """Poll *condition* every *interval* seconds; give up after *timeout*.

    Returns whether the condition became true.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while True:
        result = condition()
        if inspect.isawaitable(result):
            result = await result
        if result:
            return True
        if loop.time() >= deadline:
            return False
        await asyncio.sleep(interval)
