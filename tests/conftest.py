"""Shared test fixtures and helpers."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Coroutine
from typing import Any
from unittest.mock import AsyncMock

import pytest

from wakit.core.session import SessionParams
from wakit.engines.noweb import SocketClient, WhatsappSessionNoWebCore
from wakit.models.config import (
    NowebConfig,
    NowebEngineConfig,
    NowebStoreConfig,
    RetryPolicy,
    SessionConfig,
)

ME_JID = "999:1@s.whatsapp.net"
ALICE = "111@s.whatsapp.net"
BOB = "222@s.whatsapp.net"
GROUP = "123-456@g.us"


@pytest.fixture
def advance() -> Callable[[int], Coroutine[Any, Any, None]]:
    """Yield control to let pending tasks run without real delay.

    Replaces ``await asyncio.sleep(0.05)`` patterns with zero-delay
    event loop yields::

        await advance()       # 5 yields (default)
        await advance(10)     # 10 yields for heavier workloads
    """

    async def _advance(n: int = 5) -> None:
        for _ in range(n):
            await asyncio.sleep(0)

    return _advance


class FakeSocket(SocketClient):
    """In-process socket client; every call is an ``AsyncMock``."""

    def __init__(self, me: dict[str, Any] | None = None) -> None:
        super().__init__()
        self.me = me
        self.sent: list[tuple[str, dict[str, Any], dict[str, Any] | None]] = []
        self.connect = AsyncMock(side_effect=self._connect)  # type: ignore[method-assign]
        self.end = AsyncMock()  # type: ignore[method-assign]
        self.logout = AsyncMock()  # type: ignore[method-assign]
        self.read_messages = AsyncMock()  # type: ignore[method-assign]
        self.send_message = AsyncMock(side_effect=self._send_message)  # type: ignore[method-assign]
        self.send_presence_update = AsyncMock()  # type: ignore[method-assign]
        self.presence_subscribe = AsyncMock()  # type: ignore[method-assign]
        self.profile_picture_url = AsyncMock(return_value="https://pps.whatsapp.net/p.jpg")  # type: ignore[method-assign]
        self.chat_modify = AsyncMock()  # type: ignore[method-assign]
        self.add_label = AsyncMock()  # type: ignore[method-assign]
        self.add_chat_label = AsyncMock()  # type: ignore[method-assign]
        self.remove_chat_label = AsyncMock()  # type: ignore[method-assign]
        self.group_fetch_all_participating = AsyncMock(return_value={})  # type: ignore[method-assign]
        self.group_setting_update = AsyncMock()  # type: ignore[method-assign]

    async def _connect(self) -> None:
        pass

    async def _send_message(
        self, jid: str, content: dict[str, Any], options: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        self.sent.append((jid, content, options))
        message_id = (options or {}).get("messageId") or self.generate_message_id()
        return {
            "key": {"remoteJid": jid, "fromMe": True, "id": message_id},
            "message": {"conversation": content.get("text")} if content.get("text") else {},
            "messageTimestamp": 1700000000,
            "status": 1,
        }

    # Shadowed per instance by the mocks set up in __init__
    async def connect(self) -> None: ...

    async def end(self) -> None: ...

    async def logout(self) -> None: ...

    async def send_message(
        self, jid: str, content: dict[str, Any], options: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        return await self._send_message(jid, content, options)

    async def read_messages(self, keys: list[dict[str, Any]]) -> None: ...


def make_session(
    *,
    store: bool = True,
    auto_restart: bool = False,
    name: str = "default",
    me: dict[str, Any] | None = None,
    status_batch_size: int = 5000,
) -> tuple[WhatsappSessionNoWebCore, list[FakeSocket]]:
    """Session wired to ``FakeSocket``; the list collects every socket built."""
    sockets: list[FakeSocket] = []

    def factory(_session: WhatsappSessionNoWebCore) -> FakeSocket:
        sock = FakeSocket(me={"id": ME_JID, "name": "Me"} if me is None else me)
        sockets.append(sock)
        return sock

    params = SessionParams(
        name=name,
        session_config=SessionConfig(noweb=NowebConfig(store=NowebStoreConfig(enabled=store))),
        engine_config=NowebEngineConfig(
            start_attempt_delay_seconds=0,
            auto_restart_enabled=auto_restart,
            status_batch_size=status_batch_size,
            status_retry=RetryPolicy(max_retries=2, base_delay_seconds=0.001, max_delay_seconds=0.001),
        ),
    )
    return WhatsappSessionNoWebCore(params, socket_factory=factory), sockets


def text_message(
    jid: str,
    id: str,
    text: str = "hi",
    *,
    from_me: bool = False,
    participant: str | None = None,
    timestamp: int = 1700000000,
    status: int | None = None,
) -> dict[str, Any]:
    key: dict[str, Any] = {"remoteJid": jid, "fromMe": from_me, "id": id}
    if participant:
        key["participant"] = participant
    message: dict[str, Any] = {
        "key": key,
        "message": {"conversation": text},
        "messageTimestamp": timestamp,
    }
    if status is not None:
        message["status"] = status
    return message
