"""neonize (whatsmeow) socket client for the NOWEB session.

Bridges the neonize async client to the ``SocketClient`` surface: neonize
events are converted into the Baileys-shaped payloads the NOWEB adapter
consumes, and outgoing Baileys-style content is encoded into protobuf
messages.  neonize is an optional dependency; install it with
``pip install wakit[neonize]``.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import secrets
import time
from enum import StrEnum, unique
from pathlib import Path
from typing import TYPE_CHECKING, Any, assert_never

from pydantic import BaseModel

from wakit.core.acks import MessageAck, ack_to_status
from wakit.core.errors import NotSupportedByEngineError, PreconditionFailedError
from wakit.core.jids import STATUS_BROADCAST, is_jid_group
from wakit.engines.noweb.content import extract_media_content
from wakit.engines.noweb.socket import DisconnectReason, SocketClient

if TYPE_CHECKING:
    from wakit.engines.noweb.session import SocketFactory, WhatsappSessionNoWebCore

# Optional dependency --------------------------------------------------------
try:
    from neonize.aioze.client import NewAClient  # type: ignore[import-untyped]

    HAS_NEONIZE = True
except ImportError:
    NewAClient = None  # type: ignore[assignment, misc]
    HAS_NEONIZE = False

logger = logging.getLogger("wakit.noweb.neonize")

# Platform type names that map to neonize DeviceProps enum values.
PLATFORMS: dict[str, int] = {
    "chrome": 1,
    "firefox": 2,
    "safari": 5,
    "edge": 6,
    "desktop": 7,
}

# Receipt type codes from neonize protobuf -> engine message status.
RECEIPT_STATUSES: dict[int, int] = {
    1: ack_to_status(MessageAck.DEVICE),  # delivered
    4: ack_to_status(MessageAck.READ),  # read
    5: ack_to_status(MessageAck.READ),  # read_self
    6: ack_to_status(MessageAck.PLAYED),  # played
    7: ack_to_status(MessageAck.PLAYED),  # played_self
    8: ack_to_status(MessageAck.ERROR),  # server_error
}
# Group receipts carry the timestamp field the store folds into userReceipt.
RECEIPT_FIELDS: dict[int, str] = {
    1: "receiptTimestamp",
    4: "readTimestamp",
    6: "playedTimestamp",
}

# whatsmeow history message status names -> engine message status.
HISTORY_STATUSES: dict[str, int] = {
    "ERROR": 0,
    "PENDING": 1,
    "SERVER_ACK": 2,
    "DELIVERY_ACK": 3,
    "READ": 4,
    "PLAYED": 5,
}

# Protobuf JSON names that differ from the engine payload names.
_TO_ENGINE_NAMES = {
    "remoteJID": "remoteJid",
    "ID": "id",
    "stanzaID": "stanzaId",
    "mentionedJID": "mentionedJid",
}
_TO_PROTO_NAMES = {engine: proto for proto, engine in _TO_ENGINE_NAMES.items()}

_GROUP_SETTINGS = {
    "announcement": ("announce", True),
    "not_announcement": ("announce", False),
    "locked": ("locked", True),
    "unlocked": ("locked", False),
}

_PARTICIPANT_ACTIONS = ("add", "remove", "promote", "demote")


# ---------------------------------------------------------------------------
# Auth storage
# ---------------------------------------------------------------------------


@unique
class AuthKind(StrEnum):
    SQLITE = "sqlite"
    POSTGRES = "postgres"


class NeonizeAuth(BaseModel):
    """Where neonize keeps device credentials, one database per session."""

    kind: AuthKind = AuthKind.SQLITE
    directory: str = ".sessions"
    dsn: str | None = None

    def database(self, session: str) -> str:
        match self.kind:
            case AuthKind.SQLITE:
                path = Path(self.directory)
                path.mkdir(parents=True, exist_ok=True)
                return str(path / f"{session}.db")
            case AuthKind.POSTGRES:
                if not self.dsn:
                    raise PreconditionFailedError("'dsn' is required for postgres auth")
                return self.dsn
            case _:
                assert_never(self.kind)


# ---------------------------------------------------------------------------
# Payload conversion
# ---------------------------------------------------------------------------


def _rename_keys(value: Any, names: dict[str, str]) -> Any:
    if isinstance(value, dict):
        return {names.get(k, k): _rename_keys(v, names) for k, v in value.items()}
    if isinstance(value, list):
        return [_rename_keys(v, names) for v in value]
    return value


def to_engine_names(value: Any) -> Any:
    """Rename protobuf JSON fields (``remoteJID``, ``ID``...) to engine names."""
    return _rename_keys(value, _TO_ENGINE_NAMES)


def to_proto_names(value: Any) -> Any:
    return _rename_keys(value, _TO_PROTO_NAMES)


def format_jid(jid_obj: Any) -> str:
    """Format a neonize JID protobuf as ``user@server``."""
    if jid_obj is None:
        return ""
    user = getattr(jid_obj, "User", "")
    server = getattr(jid_obj, "Server", "")
    if user and server:
        return f"{user}@{server}"
    return user or ""


def parse_jid(jid: str) -> Any:
    """Parse a ``user@server`` string into a neonize JID protobuf."""
    from neonize.utils.jid import build_jid  # type: ignore[import-untyped]

    if "@" in jid:
        user, server = jid.split("@", 1)
        return build_jid(user, server)
    return build_jid(jid)


def _proto_to_dict(message: Any) -> dict[str, Any]:
    from google.protobuf.json_format import MessageToDict

    return to_engine_names(MessageToDict(message))


def _dict_to_proto(content: dict[str, Any]) -> Any:
    from google.protobuf.json_format import ParseDict
    from neonize.proto.waE2E.WAWebProtobufsE2E_pb2 import (  # type: ignore[import-untyped]
        Message,
    )

    return ParseDict(to_proto_names(content), Message(), ignore_unknown_fields=True)


def message_from_event(info: Any, content: dict[str, Any]) -> dict[str, Any]:
    """Engine message dict from a ``MessageEv`` info block and its content."""
    src = info.MessageSource
    chat = format_jid(src.Chat)
    key: dict[str, Any] = {"remoteJid": chat, "fromMe": bool(src.IsFromMe), "id": info.ID}
    if is_jid_group(chat):
        key["participant"] = format_jid(src.Sender)
    message: dict[str, Any] = {
        "key": key,
        "message": content,
        "messageTimestamp": int(info.Timestamp or 0),
    }
    push_name = getattr(info, "Pushname", None)
    if push_name:
        message["pushName"] = push_name
    return message


def _text_content(text: str, context: dict[str, Any] | None) -> dict[str, Any]:
    if not context:
        return {"conversation": text}
    return {"extendedTextMessage": {"text": text, "contextInfo": context}}


def _quoted_context(quoted: dict[str, Any] | None) -> dict[str, Any]:
    if not quoted:
        return {}
    key = quoted["key"]
    context: dict[str, Any] = {
        "stanzaId": key["id"],
        "participant": key.get("participant") or key["remoteJid"],
        "quotedMessage": quoted.get("message") or {},
    }
    if key.get("participant"):
        context["remoteJid"] = key["remoteJid"]
    return context


def _forwarded(message: dict[str, Any]) -> dict[str, Any]:
    content = dict(message.get("message") or {})
    if "conversation" in content:
        return _text_content(
            content["conversation"], {"isForwarded": True, "forwardingScore": 1}
        )
    for kind, payload in content.items():
        if isinstance(payload, dict) and kind != "messageContextInfo":
            context = dict(payload.get("contextInfo") or {})
            context.update(isForwarded=True, forwardingScore=context.get("forwardingScore", 0) + 1)
            content[kind] = {**payload, "contextInfo": context}
    return content


def to_message_content(
    content: dict[str, Any], options: dict[str, Any] | None = None
) -> dict[str, Any]:
    """Encode Baileys-style send content as a protobuf ``Message`` dict."""
    options = options or {}
    context = _quoted_context(options.get("quoted"))
    if options.get("ephemeralExpiration"):
        context["expiration"] = options["ephemeralExpiration"]

    if "text" in content:
        if content.get("mentions"):
            context["mentionedJid"] = content["mentions"]
        if content.get("edit"):
            return {
                "protocolMessage": {
                    "key": content["edit"],
                    "type": "MESSAGE_EDIT",
                    "editedMessage": _text_content(content["text"], context),
                    "timestampMs": str(int(time.time() * 1000)),
                }
            }
        if options.get("backgroundColor") or options.get("font") is not None:
            message: dict[str, Any] = {"text": content["text"]}
            if options.get("backgroundColor"):
                message["backgroundArgb"] = int(options["backgroundColor"].lstrip("#"), 16)
            if options.get("font") is not None:
                message["font"] = options["font"]
            if context:
                message["contextInfo"] = context
            return {"extendedTextMessage": message}
        return _text_content(content["text"], context)

    if "delete" in content:
        return {"protocolMessage": {"key": content["delete"], "type": "REVOKE"}}

    if "react" in content:
        react = content["react"]
        return {
            "reactionMessage": {
                "key": react["key"],
                "text": react["text"],
                "senderTimestampMs": str(int(time.time() * 1000)),
            }
        }

    if "location" in content:
        location = dict(content["location"])
        if context:
            location["contextInfo"] = context
        return {"locationMessage": location}

    if "contacts" in content:
        contacts = content["contacts"]["contacts"]
        if len(contacts) == 1:
            message = {"vcard": contacts[0]["vcard"]}
            if context:
                message["contextInfo"] = context
            return {"contactMessage": message}
        return {"contactsArrayMessage": {"contacts": contacts}}

    if "poll" in content:
        poll = content["poll"]
        return {
            "pollCreationMessage": {
                "name": poll["name"],
                "options": [{"optionName": value} for value in poll["values"]],
                "selectableOptionsCount": poll["selectableCount"],
            },
            "messageContextInfo": {
                "messageSecret": base64.b64encode(secrets.token_bytes(32)).decode(),
            },
        }

    if "forward" in content:
        return _forwarded(content["forward"])

    if "pin" in content:
        pin = {
            "key": content["pin"],
            "type": content["type"],
            "senderTimestampMs": str(int(time.time() * 1000)),
        }
        result: dict[str, Any] = {"pinInChatMessage": pin}
        if content.get("time"):
            result["messageContextInfo"] = {"messageAddOnDurationInSecs": content["time"]}
        return result

    raise NotSupportedByEngineError(f"Unsupported message content: {sorted(content)}")


def receipt_events(event: Any) -> list[tuple[str, list[dict[str, Any]]]]:
    """``messages.update`` for direct chats, ``message-receipt.update`` for groups."""
    raw_type = getattr(event, "Type", 0)
    status = RECEIPT_STATUSES.get(raw_type)
    if status is None:
        return []
    src = event.MessageSource
    chat = format_jid(src.Chat)
    # A receipt from someone else is about our own message
    from_me = not bool(src.IsFromMe)
    ids = list(getattr(event, "MessageIDs", []))
    keys = [{"remoteJid": chat, "fromMe": from_me, "id": message_id} for message_id in ids]

    if not is_jid_group(chat):
        return [("messages.update", [{"key": key, "update": {"status": status}} for key in keys])]
    field = RECEIPT_FIELDS.get(raw_type)
    if field is None:
        return []
    receipt = {"userJid": format_jid(src.Sender), field: int(getattr(event, "Timestamp", 0) or 0)}
    return [("message-receipt.update", [{"key": key, "receipt": receipt} for key in keys])]


def chat_presence_update(event: Any) -> dict[str, Any]:
    """Typing indicator. State: 1=composing, 2=paused; Media: 1=text, 2=audio."""
    src = event.MessageSource
    state = getattr(event, "State", 0)
    media = getattr(event, "Media", 0)
    if state != 1:
        presence = "paused"
    elif media == 2:
        presence = "recording"
    else:
        presence = "composing"
    return {
        "id": format_jid(src.Chat),
        "presences": {format_jid(src.Sender): {"lastKnownPresence": presence}},
    }


def presence_update(event: Any) -> dict[str, Any]:
    jid = format_jid(getattr(event, "From", None))
    data: dict[str, Any] = {
        "lastKnownPresence": "unavailable" if getattr(event, "Unavailable", False) else "available"
    }
    last_seen = getattr(event, "LastSeen", 0)
    if last_seen:
        data["lastSeen"] = int(last_seen)
    return {"id": jid, "presences": {jid: data}}


def group_from_info(info: Any) -> dict[str, Any]:
    """Group metadata dict from a neonize ``GroupInfo``."""
    participants = []
    for participant in getattr(info, "Participants", []) or []:
        admin = None
        if getattr(participant, "IsSuperAdmin", False):
            admin = "superadmin"
        elif getattr(participant, "IsAdmin", False):
            admin = "admin"
        participants.append({"id": format_jid(participant.JID), "admin": admin})
    name = getattr(info, "GroupName", None)
    topic = getattr(info, "GroupTopic", None)
    return {
        "id": format_jid(info.JID),
        "subject": getattr(name, "Name", None) or None,
        "desc": getattr(topic, "Topic", None) or None,
        "owner": format_jid(getattr(info, "OwnerJID", None)) or None,
        "announce": bool(getattr(getattr(info, "GroupAnnounce", None), "IsAnnounce", False)),
        "restrict": bool(getattr(getattr(info, "GroupLocked", None), "IsLocked", False)),
        "participants": participants,
    }


def group_info_events(event: Any) -> list[tuple[str, Any]]:
    """``groups.update`` and ``group-participants.update`` from a ``GroupInfoEv``."""
    jid = format_jid(event.JID)
    author = format_jid(getattr(event, "Sender", None)) or None
    update: dict[str, Any] = {"id": jid}
    name = getattr(event, "Name", None)
    if name is not None and getattr(name, "Name", ""):
        update["subject"] = name.Name
    topic = getattr(event, "Topic", None)
    if topic is not None and getattr(topic, "Topic", None) is not None:
        update["desc"] = topic.Topic
    locked = getattr(event, "Locked", None)
    if locked is not None and hasattr(locked, "IsLocked"):
        update["restrict"] = bool(locked.IsLocked)
    announce = getattr(event, "Announce", None)
    if announce is not None and hasattr(announce, "IsAnnounce"):
        update["announce"] = bool(announce.IsAnnounce)

    events: list[tuple[str, Any]] = []
    if len(update) > 1:
        events.append(("groups.update", [update]))
    fields = {"add": "Join", "remove": "Leave", "promote": "Promote", "demote": "Demote"}
    for action in _PARTICIPANT_ACTIONS:
        jids = [format_jid(j) for j in getattr(event, fields[action], []) or []]
        if jids:
            events.append(
                (
                    "group-participants.update",
                    {"id": jid, "participants": jids, "action": action, "author": author},
                )
            )
    return events


def call_from_event(event: Any, status: str) -> dict[str, Any]:
    meta = getattr(event, "BasicCallMeta", event)
    creator = format_jid(getattr(meta, "CallCreator", None))
    chat = format_jid(getattr(meta, "From", None)) or creator
    timestamp = getattr(meta, "Timestamp", 0) or 0
    return {
        "id": getattr(meta, "CallID", ""),
        "from": creator or chat,
        "chatId": chat,
        # Milliseconds, as whatsmeow reports them
        "date": int(timestamp) * 1000,
        "isGroup": is_jid_group(chat),
        "isVideo": False,
        "status": status,
    }


def history_from_sync(data: dict[str, Any]) -> dict[str, Any]:
    """``messaging-history.set`` payload from a history sync dict."""
    chats = []
    messages = []
    for conversation in data.get("conversations") or []:
        chat: dict[str, Any] = {"id": conversation["id"]}
        if conversation.get("name"):
            chat["name"] = conversation["name"]
        if conversation.get("conversationTimestamp"):
            chat["conversationTimestamp"] = int(conversation["conversationTimestamp"])
        if conversation.get("unreadCount") is not None:
            chat["unreadCount"] = conversation["unreadCount"]
        if conversation.get("archived"):
            chat["archived"] = True
        if conversation.get("ephemeralExpiration"):
            chat["ephemeralExpiration"] = conversation["ephemeralExpiration"]
        chats.append(chat)
        for item in conversation.get("messages") or []:
            message = dict(item.get("message") or {})
            if not message.get("key"):
                continue
            if message.get("messageTimestamp") is not None:
                message["messageTimestamp"] = int(message["messageTimestamp"])
            if isinstance(message.get("status"), str):
                message["status"] = HISTORY_STATUSES.get(message["status"])
            messages.append(message)
    contacts = [
        {"id": p["id"], "notify": p.get("pushname")}
        for p in data.get("pushnames") or []
        if p.get("id")
    ]
    return {"chats": chats, "contacts": contacts, "messages": messages, "isLatest": False}


# ---------------------------------------------------------------------------
# Socket client
# ---------------------------------------------------------------------------


class NeonizeSocket(SocketClient):
    """``SocketClient`` backed by a neonize ``NewAClient``."""

    def __init__(
        self,
        database: str,
        *,
        session: str = "default",
        device_name: str = "WaKit",
        device_platform: str = "chrome",
        mark_online: bool = True,
    ) -> None:
        super().__init__()
        self._database = database
        self._session = session
        self._device_name = device_name
        self._device_platform = device_platform.lower()
        self._mark_online = mark_online
        self._client: Any = None
        self._connect_task: asyncio.Task[None] | None = None

    @property
    def client(self) -> Any:
        """Expose the underlying neonize client."""
        return self._client

    @property
    def _extra(self) -> dict[str, Any]:
        return {"session": self._session}

    def _emit_close(self, status_code: int, error: str) -> None:
        self.is_connecting = False
        self.ev.emit(
            "connection.update",
            {"connection": "close", "lastDisconnect": {"statusCode": status_code, "error": error}},
        )

    # -- lifecycle -----------------------------------------------------------

    async def connect(self) -> None:
        if not HAS_NEONIZE:
            raise ImportError(
                "neonize is required for NeonizeSocket. "
                "Install it with: pip install wakit[neonize]"
            )

        self.is_connecting = True
        self.ev.emit("connection.update", {"connection": "connecting"})

        import neonize.aioze.events as _neonize_events  # type: ignore[import-untyped]

        # neonize creates its own event loop (event_global_loop) but never
        # starts it; both modules hold a binding to it.
        import neonize.aioze.client as _neonize_client  # type: ignore[import-untyped]

        running_loop = asyncio.get_running_loop()
        _neonize_events.event_global_loop = running_loop
        _neonize_client.event_global_loop = running_loop

        from neonize.proto.waCompanionReg.WAWebProtobufsCompanionReg_pb2 import (  # type: ignore[import-untyped]
            DeviceProps,
        )

        platform_type = PLATFORMS.get(self._device_platform, DeviceProps.CHROME)
        props = DeviceProps(os=self._device_name, platformType=platform_type)
        client = NewAClient(self._database, props=props)
        self._client = client
        self._register_handlers(client, _neonize_events)

        self._connect_task = asyncio.create_task(self._run(client))

    async def _run(self, client: Any) -> None:
        try:
            await client.connect()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("neonize connection failed", exc_info=True, extra=self._extra)
            self._emit_close(DisconnectReason.CONNECTION_CLOSED, str(exc))

    def _register_handlers(self, client: Any, events: Any) -> None:  # noqa: C901
        @client.qr
        async def _on_qr(_: Any, data_qr: bytes) -> None:
            codes = data_qr.decode(errors="replace").split(",") if data_qr else []
            if codes:
                self.ev.emit("connection.update", {"qr": codes[0]})

        @client.event(events.PairStatusEv)
        async def _on_paired(_: Any, event: Any) -> None:
            jid = format_jid(getattr(event, "ID", None))
            if jid:
                self.me = {"id": jid, "name": getattr(event, "BusinessName", None) or None}
                self.ev.emit("creds.update", {"me": self.me})

        @client.event(events.ConnectedEv)
        async def _on_connected(c: Any, __: Any) -> None:
            await self._load_me(c)
            self.is_connecting = False
            if self._mark_online:
                # Presence "available" makes WhatsApp relay typing indicators
                try:
                    from neonize.utils.enum import Presence  # type: ignore[import-untyped]

                    await c.send_presence(Presence.AVAILABLE)
                except Exception:
                    logger.debug("Failed to set presence", exc_info=True, extra=self._extra)
            self.ev.emit("connection.update", {"connection": "open"})

        @client.event(events.LoggedOutEv)
        async def _on_logged_out(_: Any, __: Any) -> None:
            self._emit_close(DisconnectReason.LOGGED_OUT, "logged out")

        @client.event(events.DisconnectedEv)
        async def _on_disconnected(_: Any, __: Any) -> None:
            self._emit_close(DisconnectReason.CONNECTION_CLOSED, "disconnected")

        @client.event(events.StreamReplacedEv)
        async def _on_replaced(_: Any, __: Any) -> None:
            self._emit_close(DisconnectReason.CONNECTION_REPLACED, "stream replaced")

        @client.event(events.MessageEv)
        async def _on_message(_: Any, event: Any) -> None:
            try:
                message = message_from_event(event.Info, _proto_to_dict(event.Message))
            except Exception:
                logger.warning("Error converting message", exc_info=True, extra=self._extra)
                return
            self.ev.emit("messages.upsert", {"messages": [message], "type": "notify"})

        @client.event(events.ReceiptEv)
        async def _on_receipt(_: Any, event: Any) -> None:
            for name, payload in receipt_events(event):
                self.ev.emit(name, payload)

        @client.event(events.ChatPresenceEv)
        async def _on_chat_presence(_: Any, event: Any) -> None:
            self.ev.emit("presence.update", chat_presence_update(event))

        @client.event(events.PresenceEv)
        async def _on_presence(_: Any, event: Any) -> None:
            self.ev.emit("presence.update", presence_update(event))

        @client.event(events.JoinedGroupEv)
        async def _on_joined(_: Any, event: Any) -> None:
            self.ev.emit("groups.upsert", [group_from_info(event.GroupInfo)])

        @client.event(events.GroupInfoEv)
        async def _on_group_info(_: Any, event: Any) -> None:
            for name, payload in group_info_events(event):
                self.ev.emit(name, payload)

        @client.event(events.CallOfferEv)
        async def _on_call_offer(_: Any, event: Any) -> None:
            self.ev.emit("call", [call_from_event(event, "offer")])

        @client.event(events.CallAcceptEv)
        async def _on_call_accept(_: Any, event: Any) -> None:
            self.ev.emit("call", [call_from_event(event, "accept")])

        @client.event(events.CallTerminateEv)
        async def _on_call_terminate(_: Any, event: Any) -> None:
            self.ev.emit("call", [call_from_event(event, "terminate")])

        @client.event(events.HistorySyncEv)
        async def _on_history(_: Any, event: Any) -> None:
            try:
                history = history_from_sync(_proto_to_dict(event.Data))
            except Exception:
                logger.warning("Error converting history sync", exc_info=True, extra=self._extra)
                return
            self.ev.emit("messaging-history.set", history)

    async def _load_me(self, client: Any) -> None:
        try:
            device = await client.get_me()
        except Exception:
            logger.debug("Failed to load own device", exc_info=True, extra=self._extra)
            return
        jid = format_jid(getattr(device, "JID", None))
        if jid:
            self.me = {"id": jid, "name": getattr(device, "PushName", None) or None}
            self.ev.emit("creds.update", {"me": self.me})

    async def end(self) -> None:
        task, self._connect_task = self._connect_task, None
        client, self._client = self._client, None
        if client is not None:
            try:
                await client.disconnect()
            except Exception:
                logger.debug("Error disconnecting neonize client", exc_info=True, extra=self._extra)
        if task is not None and not task.done():
            task.cancel()
        if client is not None:
            # whatsmeow reports no Disconnected event for a requested disconnect
            self._emit_close(DisconnectReason.CONNECTION_CLOSED, "connection ended")
        self.is_connecting = False

    async def logout(self) -> None:
        await self._require_client().logout()

    def _require_client(self) -> Any:
        if self._client is None:
            raise PreconditionFailedError("neonize client is not connected")
        return self._client

    # -- messages ------------------------------------------------------------

    async def send_message(
        self, jid: str, content: dict[str, Any], options: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        client = self._require_client()
        payload = to_message_content(content, options)
        if jid == STATUS_BROADCAST and options and options.get("statusJidList"):
            logger.debug(
                "Status recipients are chosen by the engine, ignoring statusJidList",
                extra=self._extra,
            )
        response = await client.send_message(parse_jid(jid), _dict_to_proto(payload))
        message_id = getattr(response, "ID", "") or (options or {}).get("messageId") or ""
        timestamp = getattr(response, "Timestamp", 0) or time.time()
        return {
            "key": {"remoteJid": jid, "fromMe": True, "id": message_id},
            "message": payload,
            "messageTimestamp": int(timestamp),
            "status": ack_to_status(MessageAck.PENDING),
        }

    async def read_messages(self, keys: list[dict[str, Any]]) -> None:
        from neonize.utils.enum import ReceiptType  # type: ignore[import-untyped]

        client = self._require_client()
        by_sender: dict[tuple[str, str], list[str]] = {}
        for key in keys:
            sender = key.get("participant") or key["remoteJid"]
            by_sender.setdefault((key["remoteJid"], sender), []).append(key["id"])
        for (chat, sender), ids in by_sender.items():
            await client.mark_read(
                *ids, chat=parse_jid(chat), sender=parse_jid(sender), receipt=ReceiptType.READ
            )

    async def request_pairing_code(self, phone_number: str) -> str:
        from neonize.utils.enum import ClientType  # type: ignore[import-untyped]

        client = self._require_client()
        return await client.pair_phone(
            phone_number.lstrip("+"), True, ClientType.CHROME, self._device_name
        )

    async def download_media(self, message: dict[str, Any]) -> bytes:
        if extract_media_content(message.get("message")) is None:
            raise PreconditionFailedError("Message has no media")
        return await self._require_client().download_any(_dict_to_proto(message["message"]))

    # -- presence and profile ------------------------------------------------

    async def send_presence_update(self, presence: str, jid: str | None = None) -> None:
        client = self._require_client()
        if jid is None:
            from neonize.utils.enum import Presence  # type: ignore[import-untyped]

            value = Presence.UNAVAILABLE if presence == "unavailable" else Presence.AVAILABLE
            await client.send_presence(value)
            return

        from neonize.utils.enum import ChatPresence, ChatPresenceMedia  # type: ignore[import-untyped]

        state = (
            ChatPresence.CHAT_PRESENCE_COMPOSING
            if presence in ("composing", "recording")
            else ChatPresence.CHAT_PRESENCE_PAUSED
        )
        media = (
            ChatPresenceMedia.CHAT_PRESENCE_MEDIA_AUDIO
            if presence == "recording"
            else ChatPresenceMedia.CHAT_PRESENCE_MEDIA_TEXT
        )
        await client.send_chat_presence(parse_jid(jid), state, media)

    async def presence_subscribe(self, jid: str) -> None:
        await self._require_client().subscribe_presence(parse_jid(jid))

    async def profile_picture_url(self, jid: str, kind: str = "image") -> str | None:
        info = await self._require_client().get_profile_picture(parse_jid(jid))
        return getattr(info, "URL", None) or None

    async def on_whatsapp(self, *phones: str) -> list[dict[str, Any]]:
        results = await self._require_client().is_on_whatsapp(*phones)
        return [
            {"exists": bool(getattr(r, "IsIn", False)), "jid": format_jid(getattr(r, "JID", None))}
            for r in results
        ]

    async def update_profile_status(self, status: str) -> None:
        await self._require_client().set_status_message(status)

    # -- groups --------------------------------------------------------------

    async def group_create(self, subject: str, participants: list[str]) -> dict[str, Any]:
        info = await self._require_client().create_group(
            subject, [parse_jid(p) for p in participants]
        )
        return group_from_info(info)

    async def group_metadata(self, jid: str) -> dict[str, Any]:
        return group_from_info(await self._require_client().get_group_info(parse_jid(jid)))

    async def group_fetch_all_participating(self) -> dict[str, dict[str, Any]]:
        groups = [group_from_info(g) for g in await self._require_client().get_joined_groups()]
        self.ev.emit("groups.update", groups)
        return {group["id"]: group for group in groups}

    async def group_accept_invite(self, code: str) -> str:
        return format_jid(await self._require_client().join_group_with_link(code))

    async def group_get_invite_info(self, code: str) -> dict[str, Any]:
        return group_from_info(await self._require_client().get_group_info_from_link(code))

    async def group_leave(self, jid: str) -> None:
        await self._require_client().leave_group(parse_jid(jid))

    async def group_update_subject(self, jid: str, subject: str) -> None:
        await self._require_client().set_group_name(parse_jid(jid), subject)

    async def group_update_description(self, jid: str, description: str) -> None:
        await self._require_client().set_group_topic(parse_jid(jid), "", "", description)

    async def group_setting_update(self, jid: str, setting: str) -> None:
        client = self._require_client()
        kind, value = _GROUP_SETTINGS[setting]
        if kind == "announce":
            await client.set_group_announce(parse_jid(jid), value)
        else:
            await client.set_group_locked(parse_jid(jid), value)

    async def group_invite_code(self, jid: str) -> str:
        link = await self._require_client().get_group_invite_link(parse_jid(jid))
        return link.rsplit("/", 1)[-1]

    async def group_revoke_invite(self, jid: str) -> str:
        link = await self._require_client().get_group_invite_link(parse_jid(jid), revoke=True)
        return link.rsplit("/", 1)[-1]

    async def group_participants_update(
        self, jid: str, participants: list[str], action: str
    ) -> list[dict[str, Any]]:
        from neonize.utils.enum import ParticipantChange  # type: ignore[import-untyped]

        change = {
            "add": ParticipantChange.ADD,
            "remove": ParticipantChange.REMOVE,
            "promote": ParticipantChange.PROMOTE,
            "demote": ParticipantChange.DEMOTE,
        }[action]
        result = await self._require_client().update_group_participants(
            parse_jid(jid), [parse_jid(p) for p in participants], change
        )
        return [
            {"jid": format_jid(getattr(p, "JID", None)), "status": str(getattr(p, "Error", 0) or 200)}
            for p in result or []
        ]

    # -- channels ------------------------------------------------------------

    @staticmethod
    def _enum_name(value: Any) -> str | None:
        """Role and verification come as strings or as named enum values."""
        if value is None:
            return None
        name = value if isinstance(value, str) else getattr(value, "name", None)
        return name.upper() if name else None

    @staticmethod
    def _newsletter(metadata: Any) -> dict[str, Any]:
        thread = getattr(metadata, "ThreadMeta", None)
        viewer = getattr(metadata, "ViewerMeta", None)
        picture = getattr(getattr(thread, "Picture", None), "DirectPath", None)
        preview = getattr(getattr(thread, "Preview", None), "DirectPath", None)
        return {
            "id": format_jid(getattr(metadata, "ID", None)),
            "name": getattr(getattr(thread, "Name", None), "Text", None),
            "description": getattr(getattr(thread, "Description", None), "Text", None),
            "invite": getattr(thread, "InviteCode", None),
            "picture": picture or None,
            "preview": preview or None,
            "verification": NeonizeSocket._enum_name(getattr(thread, "VerificationState", None)),
            "subscribers": getattr(thread, "SubscriberCount", None),
            "viewer_metadata": {"role": NeonizeSocket._enum_name(getattr(viewer, "Role", None))},
        }

    async def newsletter_subscribed(self) -> list[dict[str, Any]]:
        return [self._newsletter(n) for n in await self._require_client().get_subscribed_newsletters()]

    async def newsletter_create(self, name: str, description: str | None) -> dict[str, Any]:
        metadata = await self._require_client().create_newsletter(name, description or "")
        return self._newsletter(metadata)

    async def newsletter_metadata(self, kind: str, key: str) -> dict[str, Any] | None:
        client = self._require_client()
        if kind == "jid":
            metadata = await client.get_newsletter_info(parse_jid(key))
        else:
            metadata = await client.get_newsletter_info_with_invite(key)
        return self._newsletter(metadata) if metadata else None

    async def newsletter_follow(self, jid: str) -> None:
        await self._require_client().follow_newsletter(parse_jid(jid))

    async def newsletter_unfollow(self, jid: str) -> None:
        await self._require_client().unfollow_newsletter(parse_jid(jid))

    async def newsletter_mute(self, jid: str) -> None:
        await self._require_client().newsletter_toggle_mute(parse_jid(jid), True)

    async def newsletter_unmute(self, jid: str) -> None:
        await self._require_client().newsletter_toggle_mute(parse_jid(jid), False)

    async def newsletter_react_message(self, jid: str, server_id: str, reaction: str) -> None:
        await self._require_client().newsletter_send_reaction(
            parse_jid(jid), int(server_id), reaction, ""
        )


def neonize_socket_factory(
    auth: NeonizeAuth | None = None,
    *,
    device_name: str = "WaKit",
    device_platform: str = "chrome",
) -> SocketFactory:
    """Socket factory for ``WhatsappSessionNoWebCore`` backed by neonize."""
    auth = auth or NeonizeAuth()

    def factory(session: WhatsappSessionNoWebCore) -> SocketClient:
        return NeonizeSocket(
            auth.database(session.name),
            session=session.name,
            device_name=device_name,
            device_platform=device_platform,
            mark_online=session.session_config.noweb.mark_online,
        )

    return factory
