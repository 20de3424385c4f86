"""Small async-iterator operators for building event pipelines.

Each operator takes already-subscribed iterators (for example
``AsyncEventEmitter.stream``) and closes them when it finishes.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import time
from collections.abc import AsyncIterator, Callable, Iterable
from typing import Any

_ITEM = "item"
_ERROR = "error"
_DONE = "done"


async def aclose(source: Any) -> None:
    close = getattr(source, "aclose", None)
    if close is not None:
        await close()


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


async def amap(source: AsyncIterator[Any], fn: Callable[[Any], Any]) -> AsyncIterator[Any]:
    """Yield ``fn(item)`` (awaited when *fn* is async)."""
    try:
        async for item in source:
            yield await _resolve(fn(item))
    finally:
        await aclose(source)


async def afilter(
    source: AsyncIterator[Any], predicate: Callable[[Any], Any]
) -> AsyncIterator[Any]:
    try:
        async for item in source:
            if await _resolve(predicate(item)):
                yield item
    finally:
        await aclose(source)


async def aflatten(source: AsyncIterator[Iterable[Any]]) -> AsyncIterator[Any]:
    """Yield the elements of every list-like item."""
    try:
        async for items in source:
            for item in items or ():
                yield item
    finally:
        await aclose(source)


async def amerge(*sources: AsyncIterator[Any]) -> AsyncIterator[Any]:
    """Interleave several sources in arrival order; the first error wins."""
    queue: asyncio.Queue[tuple[str, Any]] = asyncio.Queue()

    async def pump(source: AsyncIterator[Any]) -> None:
        try:
            async for item in source:
                await queue.put((_ITEM, item))
        except Exception as exc:
            await queue.put((_ERROR, exc))
        finally:
            await queue.put((_DONE, None))

    tasks = [asyncio.create_task(pump(source)) for source in sources]
    remaining = len(tasks)
    try:
        while remaining:
            kind, value = await queue.get()
            if kind == _DONE:
                remaining -= 1
            elif kind == _ERROR:
                raise value
            else:
                yield value
    finally:
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        for source in sources:
            await aclose(source)


async def distinct_acks(
    source: AsyncIterator[dict[str, Any]], flush_every: float = 60.0
) -> AsyncIterator[dict[str, Any]]:
    """Drop ack events already seen (same id, ack and participant) since the last flush."""
    seen: set[str] = set()
    flushed_at = time.monotonic()
    try:
        async for body in source:
            now = time.monotonic()
            if now - flushed_at >= flush_every:
                seen.clear()
                flushed_at = now
            key = f"{body.get('id')}-{body.get('ack')}-{body.get('participant')}"
            if key in seen:
                continue
            seen.add(key)
            yield body
    finally:
        await aclose(source)
