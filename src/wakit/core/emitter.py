"""Async event emitter used as the engine socket event surface."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections import defaultdict
from collections.abc import AsyncIterator, Callable
from typing import Any

logger = logging.getLogger("wakit.emitter")

Listener = Callable[[Any], Any]
AnyListener = Callable[[str, Any], Any]

_CLOSED = object()


class AsyncEventEmitter:
    """Named-event emitter with sync and async listeners.

    Listeners run in registration order.  Sync listeners run inline, so a
    listener registered first may patch the payload in place before later
    listeners see it.  Async listeners are started as tasks in the same
    order; their failures are logged and never reach the emitter.
    """

    def __init__(self) -> None:
        self._listeners: defaultdict[str, list[Listener]] = defaultdict(list)
        self._any_listeners: list[AnyListener] = []
        self._streams: set[EventStream] = set()
        self._tasks: set[asyncio.Task[Any]] = set()

    def on(self, event: str, listener: Listener) -> Listener:
        self._listeners[event].append(listener)
        return listener

    def off(self, event: str, listener: Listener) -> None:
        listeners = self._listeners.get(event)
        if listeners and listener in listeners:
            listeners.remove(listener)

    def process(self, listener: AnyListener) -> AnyListener:
        """Register a listener that receives every ``(event, data)`` pair."""
        self._any_listeners.append(listener)
        return listener

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, ()))

    def emit(self, event: str, data: Any) -> None:
        for listener in list(self._listeners.get(event, ())):
            self._call(event, listener, data)
        for any_listener in list(self._any_listeners):
            self._call(event, any_listener, event, data)

    def _call(self, event: str, listener: Callable[..., Any], *args: Any) -> None:
        try:
            result = listener(*args)
        except Exception:
            logger.exception("Listener for '%s' failed", event)
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(lambda t: self._on_task_done(event, t))

    def _on_task_done(self, event: str, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Async listener for '%s' failed", event, exc_info=exc)

    async def drain(self) -> None:
        """Wait for async listeners started so far (and the ones they start)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def stream(self, event: str | None = None) -> EventStream:
        """Queue-backed async iterator over one event (or all events).

        The stream subscribes immediately, so nothing emitted after this
        call is missed.  With ``event=None`` items are
        ``{"event": name, "data": payload}`` dicts.
        """
        stream = EventStream(self, event)
        self._streams.add(stream)
        return stream

    def remove_all_listeners(self) -> None:
        """Detach every listener and finish every open stream."""
        self._listeners.clear()
        self._any_listeners.clear()
        for stream in list(self._streams):
            stream.close()
        self._streams.clear()


class EventStream:
    """Async iterator fed by an ``AsyncEventEmitter``."""

    def __init__(self, emitter: AsyncEventEmitter, event: str | None) -> None:
        self._emitter = emitter
        self._event = event
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._closed = False
        if event is None:
            emitter.process(self._on_any)
        else:
            emitter.on(event, self._on_event)

    def _on_event(self, data: Any) -> None:
        self._queue.put_nowait(data)

    def _on_any(self, event: str, data: Any) -> None:
        self._queue.put_nowait({"event": event, "data": data})

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._event is None:
            if self._on_any in self._emitter._any_listeners:
                self._emitter._any_listeners.remove(self._on_any)
        else:
            self._emitter.off(self._event, self._on_event)
        self._emitter._streams.discard(self)
        self._queue.put_nowait(_CLOSED)

    async def aclose(self) -> None:
        self.close()

    def __aiter__(self) -> AsyncIterator[Any]:
        return self

    async def __anext__(self) -> Any:
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item
