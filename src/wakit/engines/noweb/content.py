"""Helpers over engine message dicts (Baileys JSON shape).

Messages look like ``{"key": {...}, "message": {...}, "messageTimestamp": ...}``
with camelCase keys; enum fields hold their protobuf names.
"""

from __future__ import annotations

import base64
import hashlib
from typing import Any

from wakit.core.jids import are_jids_same_user

WRAPPER_TYPES = (
    "ephemeralMessage",
    "viewOnceMessage",
    "viewOnceMessageV2",
    "viewOnceMessageV2Extension",
    "documentWithCaptionMessage",
    "editedMessage",
)
MEDIA_TYPES = ("imageMessage", "videoMessage", "audioMessage", "documentMessage", "stickerMessage")
_NOT_CONTENT = ("senderKeyDistributionMessage", "messageContextInfo")

MISSED_CALL_STUBS = {"CALL_MISSED_VOICE", "CALL_MISSED_VIDEO"}
GROUP_PARTICIPANT_ADD_STUB = "GROUP_PARTICIPANT_ADD"

REVOKE = "REVOKE"
MESSAGE_EDIT = "MESSAGE_EDIT"
EPHEMERAL_SYNC_RESPONSE = "EPHEMERAL_SYNC_RESPONSE"


def normalize_message_content(content: dict[str, Any] | None) -> dict[str, Any] | None:
    """Unwrap ephemeral/view-once/edit containers down to the real content."""
    if not content:
        return content
    for _ in range(5):
        wrapper = next((content[t] for t in WRAPPER_TYPES if content.get(t)), None)
        if wrapper is None:
            break
        inner = wrapper.get("message")
        if not inner:
            break
        content = inner
    return content


def get_content_type(content: dict[str, Any] | None) -> str | None:
    if not content:
        return None
    for key, value in content.items():
        if value is None or key in _NOT_CONTENT:
            continue
        if key == "conversation" or key.endswith("Message"):
            return key
    return None


def extract_media_content(content: dict[str, Any] | None) -> tuple[str, dict[str, Any]] | None:
    """Return ``(type, media)`` for the first media payload, if any."""
    content = normalize_message_content(content)
    if not content:
        return None
    for media_type in MEDIA_TYPES:
        media = content.get(media_type)
        if media:
            return media_type, media
    return None


def protocol_message_type(message: dict[str, Any]) -> str | None:
    content = normalize_message_content(message.get("message"))
    protocol = (content or {}).get("protocolMessage")
    if not protocol:
        return None
    return protocol.get("type")


def is_real_message(message: dict[str, Any], me_id: str | None) -> bool:
    """Whether *message* carries user content.

    Protocol messages, reactions and poll updates are control traffic.
    Missed calls and being added to a group count as real.
    """
    content = normalize_message_content(message.get("message"))
    stub_type = message.get("messageStubType")
    has_something = bool(content) or stub_type in MISSED_CALL_STUBS or (
        stub_type == GROUP_PARTICIPANT_ADD_STUB
        and any(are_jids_same_user(p, me_id) for p in message.get("messageStubParameters") or [])
    )
    if not has_something:
        return False
    if content and get_content_type(content) is None:
        return False
    content = content or {}
    return (
        not content.get("protocolMessage")
        and not content.get("reactionMessage")
        and not content.get("pollUpdateMessage")
    )


def get_key_author(key: dict[str, Any] | None) -> str:
    if not key:
        return ""
    if key.get("fromMe"):
        return "me"
    return key.get("participant") or key.get("remoteJid") or ""


def update_message_with_reaction(message: dict[str, Any], reaction: dict[str, Any]) -> None:
    """Replace the author's previous reaction; an empty text removes it."""
    author = get_key_author(reaction.get("key"))
    reactions = [
        r for r in message.get("reactions") or [] if get_key_author(r.get("key")) != author
    ]
    if reaction.get("text"):
        reactions.append(reaction)
    message["reactions"] = reactions


def update_message_with_receipt(message: dict[str, Any], receipt: dict[str, Any]) -> None:
    receipts = message.setdefault("userReceipt", [])
    for existing in receipts:
        if existing.get("userJid") == receipt.get("userJid"):
            existing.update(receipt)
            return
    receipts.append(receipt)


def _decode_hash(value: Any) -> bytes:
    if isinstance(value, bytes):
        return value
    return base64.b64decode(value)


def get_aggregate_votes_in_poll(
    poll_creation: dict[str, Any], selected_hashes: list[Any]
) -> list[str]:
    """Option names whose SHA-256 is among *selected_hashes*."""
    selected = {_decode_hash(h) for h in selected_hashes}
    names: list[str] = []
    for option in poll_creation.get("options") or []:
        name = option.get("optionName") or ""
        if hashlib.sha256(name.encode()).digest() in selected:
            names.append(name)
    return names


def get_poll_creation(message: dict[str, Any]) -> dict[str, Any] | None:
    content = normalize_message_content(message.get("message")) or {}
    for key in ("pollCreationMessage", "pollCreationMessageV2", "pollCreationMessageV3"):
        if content.get(key):
            return content[key]
    return None


def to_int(value: Any) -> int | None:
    """Timestamps arrive as ints, numeric strings or ``{"low": ...}`` longs."""
    if value is None:
        return None
    if isinstance(value, dict):
        value = value.get("low")
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
