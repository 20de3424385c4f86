"""Conversion of NOWEB engine messages into the public message model."""

from __future__ import annotations

from typing import Any

from wakit.core.acks import ack_name, status_to_ack
from wakit.core.ids import build_message_id
from wakit.core.jids import ME, to_public_chat_id
from wakit.engines.noweb.content import (
    extract_media_content,
    get_content_type,
    normalize_message_content,
    to_int,
)
from wakit.engines.noweb.socket import SocketClient
from wakit.models.enums import MessageSource
from wakit.models.messages import (
    MessageDestination,
    ReplyToMessage,
    WAMedia,
    WAMessage,
    WAMessageAckBody,
)

_CAPTIONED = ("imageMessage", "videoMessage", "documentMessage")
_BUTTON_REPLIES = ("templateButtonReplyMessage", "buttonsResponseMessage")


def get_from_to_participant(key: dict[str, Any]) -> dict[str, str | None]:
    """``to`` and ``participant`` are only known for group messages."""
    participant = key.get("participant")
    to = None
    if participant:
        to = to_public_chat_id(key["remoteJid"])
        participant = to_public_chat_id(participant)
    return {"from": to_public_chat_id(key["remoteJid"]), "to": to, "participant": participant}


def get_destination(key: dict[str, Any], me_id: str | None = None) -> MessageDestination:
    me = to_public_chat_id(me_id) if me_id else ME
    remote = to_public_chat_id(key["remoteJid"])
    participant = key.get("participant")
    from_me = bool(key.get("fromMe"))

    to = remote if participant or from_me else me
    if participant:
        from_ = to_public_chat_id(participant)
    elif from_me:
        from_ = me
    else:
        from_ = remote
    return MessageDestination(id=build_message_id(key), to=to, from_=from_, from_me=from_me)


def extract_body(content: dict[str, Any] | None) -> str | None:
    content = normalize_message_content(content)
    if not content:
        return None
    if content.get("conversation"):
        return content["conversation"]
    extended = content.get("extendedTextMessage")
    if extended and extended.get("text"):
        return extended["text"]
    for kind in _CAPTIONED:
        media = content.get(kind)
        if media and media.get("caption"):
            return media["caption"]
    poll = content.get("pollCreationMessage") or content.get("pollCreationMessageV3")
    if poll:
        return poll.get("name")
    if content.get("locationMessage"):
        return content["locationMessage"].get("name")
    for kind in _BUTTON_REPLIES:
        reply = content.get(kind)
        if reply and reply.get("selectedDisplayText"):
            return reply["selectedDisplayText"]
    return None


def _context_info(content: dict[str, Any]) -> dict[str, Any] | None:
    content_type = get_content_type(content)
    if not content_type or content_type == "conversation":
        return None
    payload = content.get(content_type)
    if not isinstance(payload, dict):
        return None
    return payload.get("contextInfo")


def extract_reply_to(content: dict[str, Any] | None) -> ReplyToMessage | None:
    content = normalize_message_content(content)
    if not content:
        return None
    context = _context_info(content)
    if not context or not context.get("stanzaId") or not context.get("quotedMessage"):
        return None
    quoted = context["quotedMessage"]
    participant = context.get("participant")
    return ReplyToMessage(
        id=context["stanzaId"],
        participant=to_public_chat_id(participant) if participant else None,
        body=extract_body(quoted),
        raw=quoted,
    )


def extract_location(content: dict[str, Any] | None) -> dict[str, Any] | None:
    content = normalize_message_content(content) or {}
    location = content.get("locationMessage") or content.get("liveLocationMessage")
    if not location:
        return None
    return {
        "latitude": location.get("degreesLatitude"),
        "longitude": location.get("degreesLongitude"),
        "description": location.get("name") or location.get("address"),
    }


def extract_vcards(content: dict[str, Any] | None) -> list[str] | None:
    content = normalize_message_content(content) or {}
    if content.get("contactMessage"):
        return [content["contactMessage"].get("vcard", "")]
    if content.get("contactsArrayMessage"):
        return [c.get("vcard", "") for c in content["contactsArrayMessage"].get("contacts") or []]
    return None


def message_ack(message: dict[str, Any]) -> int | None:
    if message.get("ack") is not None:
        return message["ack"]
    status = message.get("status")
    return status_to_ack(status) if status is not None else None


def to_wa_message(
    message: dict[str, Any],
    source: MessageSource = MessageSource.APP,
    media: WAMedia | None = None,
) -> WAMessage:
    key = message["key"]
    content = message.get("message")
    ack = message_ack(message)
    addresses = get_from_to_participant(key)
    return WAMessage(
        id=build_message_id(key),
        timestamp=to_int(message.get("messageTimestamp")) or 0,
        from_=addresses["from"],
        from_me=bool(key.get("fromMe")),
        source=source,
        to=addresses["to"],
        participant=addresses["participant"],
        body=extract_body(content),
        has_media=extract_media_content(content) is not None,
        media=media,
        ack=ack,
        ack_name=ack_name(ack),
        location=extract_location(content),
        v_cards=extract_vcards(content),
        reply_to=extract_reply_to(content),
        raw=message,
    )


def to_ack_body(
    key: dict[str, Any], ack: int | None, raw: Any, id_key: dict[str, Any] | None = None
) -> WAMessageAckBody:
    """Ack payload for *key*; the id is built from *id_key* when given."""
    addresses = get_from_to_participant(key)
    return WAMessageAckBody(
        id=build_message_id(id_key or key),
        from_=addresses["from"],
        to=addresses["to"],
        participant=addresses["participant"],
        from_me=bool(key.get("fromMe")),
        ack=ack,
        ack_name=ack_name(ack),
        raw=raw,
    )


class NowebMediaProcessor:
    """Reads media of engine messages through the socket."""

    def __init__(self, sock: SocketClient) -> None:
        self._sock = sock

    def has_media(self, message: dict[str, Any]) -> bool:
        return extract_media_content(message.get("message")) is not None

    def get_message_id(self, message: dict[str, Any]) -> str:
        return message["key"]["id"]

    def get_chat_id(self, message: dict[str, Any]) -> str:
        return to_public_chat_id(message["key"]["remoteJid"]) or ""

    def _media(self, message: dict[str, Any]) -> dict[str, Any]:
        found = extract_media_content(message.get("message"))
        return found[1] if found else {}

    def get_mimetype(self, message: dict[str, Any]) -> str:
        return self._media(message).get("mimetype") or "application/octet-stream"

    async def get_media_buffer(self, message: dict[str, Any]) -> bytes | None:
        return await self._sock.download_media(message)

    def get_filename(self, message: dict[str, Any]) -> str | None:
        return self._media(message).get("fileName")
