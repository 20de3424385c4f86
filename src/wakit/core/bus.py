"""Per-event-kind live streams with hot-swappable producers."""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any
from uuid import uuid4

from pydantic import BaseModel

from wakit.core.streams import aclose
from wakit.models.enums import WAEvent

logger = logging.getLogger("wakit.bus")

SourceFactory = Callable[[], AsyncIterator[Any]]
EventCallback = Callable[[dict[str, Any]], Awaitable[None] | None]

_STOP = object()


def generate_event_id() -> str:
    return f"evt_{uuid4().hex}"


class SwitchableStream:
    """One event kind: a replaceable producer fanned out to stable subscribers.

    The producer is a zero-argument factory returning an async iterator.
    ``switch`` swaps it without touching subscribers.  When the producer
    raises, the error is logged and the factory is called again; the stream
    keeps retrying for as long as it lives.  A producer that simply ends
    leaves the stream idle until the next ``switch``.

    Every delivered event is a dict tagged once with ``_eventId`` and
    ``_timestampMs``; all subscribers receive that same dict.
    """

    def __init__(self, kind: str, retry_delay: float = 0.1, max_queue_size: int = 1000) -> None:
        self.kind = kind
        self._retry_delay = retry_delay
        self._max_queue_size = max_queue_size
        self._factory: SourceFactory | None = None
        self._pump_task: asyncio.Task[None] | None = None
        self._subscribers: dict[str, _Subscriber] = {}
        self._completed = False

    @property
    def completed(self) -> bool:
        return self._completed

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def switch(self, factory: SourceFactory) -> None:
        """Replace the producer; the old one is closed."""
        if self._completed:
            logger.debug("Stream '%s' is completed, ignoring switch", self.kind)
            return
        self._cancel_pump()
        self._factory = factory
        source = self._build_source(factory)
        self._pump_task = asyncio.create_task(self._pump(factory, source), name=f"bus:{self.kind}")

    def _cancel_pump(self) -> None:
        if self._pump_task is not None:
            self._pump_task.cancel()
            self._pump_task = None

    def _build_source(self, factory: SourceFactory) -> AsyncIterator[Any] | None:
        try:
            return factory()
        except Exception:
            logger.exception("Failed to build '%s' event source", self.kind)
            return None

    async def _pump(self, factory: SourceFactory, source: AsyncIterator[Any] | None) -> None:
        while True:
            if source is not None:
                try:
                    async for item in source:
                        self._deliver(item)
                    return
                except Exception:
                    logger.exception(
                        "Caught error in '%s' event source, resubscribing", self.kind
                    )
                finally:
                    await aclose(source)
            await asyncio.sleep(self._retry_delay)
            if self._factory is not factory or self._completed:
                return
            source = self._build_source(factory)

    def _deliver(self, item: Any) -> None:
        if not item:
            return
        if isinstance(item, BaseModel):
            item = item.model_dump(by_alias=True)
        if isinstance(item, dict):
            item["_eventId"] = generate_event_id()
            item["_timestampMs"] = int(time.time() * 1000)
        for subscriber in list(self._subscribers.values()):
            subscriber.enqueue(item)

    def subscribe(self, callback: EventCallback) -> str | None:
        if self._completed:
            return None
        sub_id = uuid4().hex
        subscriber = _Subscriber(sub_id, self.kind, callback, self._max_queue_size)
        self._subscribers[sub_id] = subscriber
        subscriber.start()
        return sub_id

    async def unsubscribe(self, sub_id: str) -> bool:
        subscriber = self._subscribers.pop(sub_id, None)
        if subscriber is None:
            return False
        await subscriber.stop()
        return True

    async def wait_drained(self, timeout: float) -> bool:
        """Wait up to *timeout* seconds for the current producer to run out."""
        task = self._pump_task
        if task is None:
            return True
        done, _ = await asyncio.wait({task}, timeout=timeout)
        return bool(done)

    async def complete(self) -> None:
        """Stop the producer, deliver what is queued, then drop subscribers."""
        if self._completed:
            return
        self._completed = True
        task = self._pump_task
        self._cancel_pump()
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._factory = None
        subscribers = list(self._subscribers.values())
        self._subscribers.clear()
        for subscriber in subscribers:
            await subscriber.stop()


class EventBus:
    """Lazily created ``SwitchableStream`` per event kind."""

    def __init__(self, retry_delay: float = 0.1) -> None:
        self._retry_delay = retry_delay
        self._streams: dict[str, SwitchableStream] = {}
        self._completed = False

    def get(self, kind: WAEvent | str) -> SwitchableStream:
        stream = self._streams.get(kind)
        if stream is None:
            stream = SwitchableStream(str(kind), retry_delay=self._retry_delay)
            if self._completed:
                stream._completed = True
            self._streams[kind] = stream
        return stream

    def switch(self, kind: WAEvent | str, factory: SourceFactory) -> None:
        self.get(kind).switch(factory)

    def subscribe(self, kind: WAEvent | str, callback: EventCallback) -> str | None:
        return self.get(kind).subscribe(callback)

    async def unsubscribe(self, sub_id: str) -> bool:
        for stream in self._streams.values():
            if await stream.unsubscribe(sub_id):
                return True
        return False

    @property
    def completed(self) -> bool:
        return self._completed

    async def complete(self) -> None:
        """Finalize every stream, in creation order."""
        self._completed = True
        for stream in list(self._streams.values()):
            await stream.complete()


class _Subscriber:
    """Ordered per-subscriber delivery through a queue and a task."""

    def __init__(
        self, sub_id: str, kind: str, callback: EventCallback, max_queue_size: int
    ) -> None:
        self.sub_id = sub_id
        self.kind = kind
        self.callback = callback
        self._max_queue_size = max_queue_size
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._task: asyncio.Task[None] | None = None

    def enqueue(self, event: Any) -> None:
        if self._queue.qsize() >= self._max_queue_size:
            dropped = self._queue.get_nowait()
            logger.warning(
                "Subscriber %s of '%s' is slow, dropping oldest event",
                self.sub_id,
                self.kind,
                extra={"event_id": dropped.get("_eventId") if isinstance(dropped, dict) else None},
            )
        self._queue.put_nowait(event)

    def start(self) -> None:
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._queue.put_nowait(_STOP)
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def _run(self) -> None:
        while True:
            event = await self._queue.get()
            if event is _STOP:
                return
            try:
                result = self.callback(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Error in '%s' callback for subscription %s", self.kind, self.sub_id)
