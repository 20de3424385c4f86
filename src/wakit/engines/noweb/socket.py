"""Protocol client surface the NOWEB adapter drives.

A ``SocketClient`` exposes Baileys-shaped events on ``ev`` and the calls the
adapter needs.  Calls a client cannot serve keep the default and raise
``NotSupportedByEngineError``.

Events emitted on ``ev``:

- ``connection.update``: ``{"connection": "connecting"|"open"|"close",
  "qr": str, "isNewLogin": bool, "lastDisconnect": {"statusCode": int,
  "error": str}}`` (any subset)
- ``creds.update``: ``{"me": {"id": ..., "name": ...}}``
- ``messaging-history.set``: ``{"chats", "contacts", "messages", "isLatest"}``
- ``messages.upsert``: ``{"messages": [...], "type": "notify"|"append"}``
- ``messages.update``: ``[{"key": {...}, "update": {...}}]``
- ``messages.delete``: ``{"keys": [...]}`` or ``{"jid": ..., "all": True}``
- ``messages.reaction``: ``[{"key": {...}, "reaction": {...}}]``
- ``message-receipt.update``: ``[{"key": {...}, "receipt": {...}}]``
- ``chats.upsert`` / ``chats.update``: ``[chat, ...]``; ``chats.delete``: ``[id, ...]``
- ``contacts.upsert`` / ``contacts.update``: ``[contact, ...]``
- ``groups.upsert`` / ``groups.update``: ``[group, ...]``
- ``group-participants.update``: ``{"id", "participants", "action", "author"}``
- ``presence.update``: ``{"id": chat, "presences": {participant: {...}}}``
- ``labels.edit``: label; ``labels.association``: ``{"type": "add"|"remove",
  "association": {...}}``
- ``call``: ``[call, ...]``
"""

from __future__ import annotations

import asyncio
import secrets
from abc import ABC, abstractmethod
from enum import IntEnum
from typing import Any

from wakit.core.emitter import AsyncEventEmitter
from wakit.core.errors import NotSupportedByEngineError

MESSAGE_ID_PREFIX = "3EB0"


class DisconnectReason(IntEnum):
    CONNECTION_CLOSED = 428
    CONNECTION_LOST = 408
    CONNECTION_REPLACED = 440
    TIMED_OUT = 408
    LOGGED_OUT = 401
    BAD_SESSION = 500
    RESTART_REQUIRED = 515
    MULTIDEVICE_MISMATCH = 411
    FORBIDDEN = 403
    UNAVAILABLE_SERVICE = 503


class SocketClient(ABC):
    """Engine protocol client (one connection attempt)."""

    def __init__(self) -> None:
        self.ev = AsyncEventEmitter()
        self.me: dict[str, Any] | None = None
        self.is_connecting = False

    @abstractmethod
    async def connect(self) -> None:
        """Start connecting; progress is reported through ``connection.update``."""
        ...

    @abstractmethod
    async def end(self) -> None:
        """Close the connection without logging out; emits a ``close`` update."""
        ...

    @abstractmethod
    async def logout(self) -> None: ...

    @abstractmethod
    async def send_message(
        self, jid: str, content: dict[str, Any], options: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        """Send *content* and return the sent message dict."""
        ...

    @abstractmethod
    async def read_messages(self, keys: list[dict[str, Any]]) -> None: ...

    def generate_message_id(self) -> str:
        return MESSAGE_ID_PREFIX + secrets.token_hex(9).upper()

    async def wait_for_connection_update(self, field: str, timeout: float = 60.0) -> dict[str, Any]:
        """Wait for the next ``connection.update`` that carries *field*."""
        future: asyncio.Future[dict[str, Any]] = asyncio.get_running_loop().create_future()

        def listener(update: dict[str, Any]) -> None:
            if update.get(field) and not future.done():
                future.set_result(update)

        self.ev.on("connection.update", listener)
        try:
            return await asyncio.wait_for(future, timeout)
        finally:
            self.ev.off("connection.update", listener)

    async def request_pairing_code(self, phone_number: str) -> str:
        raise NotSupportedByEngineError()

    async def send_presence_update(self, presence: str, jid: str | None = None) -> None:
        raise NotSupportedByEngineError()

    async def presence_subscribe(self, jid: str) -> None:
        raise NotSupportedByEngineError()

    async def profile_picture_url(self, jid: str, kind: str = "image") -> str | None:
        raise NotSupportedByEngineError()

    async def fetch_status(self, jid: str) -> dict[str, Any] | None:
        raise NotSupportedByEngineError()

    async def on_whatsapp(self, *phones: str) -> list[dict[str, Any]]:
        raise NotSupportedByEngineError()

    async def update_profile_name(self, name: str) -> None:
        raise NotSupportedByEngineError()

    async def update_profile_status(self, status: str) -> None:
        raise NotSupportedByEngineError()

    async def chat_modify(self, modification: dict[str, Any], jid: str) -> None:
        raise NotSupportedByEngineError()

    async def add_label(self, jid: str, label: dict[str, Any]) -> None:
        raise NotSupportedByEngineError()

    async def add_chat_label(self, jid: str, label_id: str) -> None:
        raise NotSupportedByEngineError()

    async def remove_chat_label(self, jid: str, label_id: str) -> None:
        raise NotSupportedByEngineError()

    async def download_media(self, message: dict[str, Any]) -> bytes:
        raise NotSupportedByEngineError()

    # -- groups ------------------------------------------------------------

    async def group_create(self, subject: str, participants: list[str]) -> dict[str, Any]:
        raise NotSupportedByEngineError()

    async def group_metadata(self, jid: str) -> dict[str, Any]:
        raise NotSupportedByEngineError()

    async def group_fetch_all_participating(self) -> dict[str, dict[str, Any]]:
        """Fetch every joined group and emit them as ``groups.update``."""
        raise NotSupportedByEngineError()

    async def group_accept_invite(self, code: str) -> str:
        raise NotSupportedByEngineError()

    async def group_get_invite_info(self, code: str) -> dict[str, Any]:
        raise NotSupportedByEngineError()

    async def group_leave(self, jid: str) -> None:
        raise NotSupportedByEngineError()

    async def group_update_subject(self, jid: str, subject: str) -> None:
        raise NotSupportedByEngineError()

    async def group_update_description(self, jid: str, description: str) -> None:
        raise NotSupportedByEngineError()

    async def group_setting_update(self, jid: str, setting: str) -> None:
        """*setting* is one of ``announcement``, ``not_announcement``, ``locked``, ``unlocked``."""
        raise NotSupportedByEngineError()

    async def group_invite_code(self, jid: str) -> str:
        raise NotSupportedByEngineError()

    async def group_revoke_invite(self, jid: str) -> str:
        raise NotSupportedByEngineError()

    async def group_participants_update(
        self, jid: str, participants: list[str], action: str
    ) -> list[dict[str, Any]]:
        raise NotSupportedByEngineError()

    # -- channels (newsletters) ---------------------------------------------

    async def newsletter_subscribed(self) -> list[dict[str, Any]]:
        raise NotSupportedByEngineError()

    async def newsletter_create(self, name: str, description: str | None) -> dict[str, Any]:
        raise NotSupportedByEngineError()

    async def newsletter_metadata(self, kind: str, key: str) -> dict[str, Any] | None:
        """*kind* is ``jid`` or ``invite``."""
        raise NotSupportedByEngineError()

    async def newsletter_delete(self, jid: str) -> None:
        raise NotSupportedByEngineError()

    async def newsletter_follow(self, jid: str) -> None:
        raise NotSupportedByEngineError()

    async def newsletter_unfollow(self, jid: str) -> None:
        raise NotSupportedByEngineError()

    async def newsletter_mute(self, jid: str) -> None:
        raise NotSupportedByEngineError()

    async def newsletter_unmute(self, jid: str) -> None:
        raise NotSupportedByEngineError()

    async def newsletter_react_message(self, jid: str, server_id: str, reaction: str) -> None:
        raise NotSupportedByEngineError()
