"""Serialized message ids.

A message is identified by ``(fromMe, chatId, id, participant?)`` and exposed
as one string ``{true|false}_{chatId}_{id}[_{participant}]``.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any

from wakit.core.errors import MessageIdFormatError
from wakit.core.jids import to_native_address, to_public_chat_id
from wakit.models.requests import SendSeenRequest

SEPARATOR = "_"


@dataclass(frozen=True)
class MessageKey:
    """Message identity in the public address space.

    ``from_me`` and ``remote_jid`` are ``None`` only for keys coming from a
    soft parse of a bare engine id; fill them with ``with_defaults``.
    """

    id: str
    remote_jid: str | None = None
    from_me: bool | None = None
    participant: str | None = None

    @property
    def is_partial(self) -> bool:
        return self.remote_jid is None or self.from_me is None

    def with_defaults(
        self,
        *,
        remote_jid: str | None = None,
        from_me: bool | None = None,
        participant: str | None = None,
    ) -> MessageKey:
        """Fill fields the key does not carry from the caller's context."""
        return replace(
            self,
            remote_jid=self.remote_jid if self.remote_jid is not None else remote_jid,
            from_me=self.from_me if self.from_me is not None else from_me,
            participant=self.participant if self.participant is not None else participant,
        )

    def to_native(self) -> dict[str, Any]:
        """Engine key dict (``remoteJid`` in the engine address space)."""
        key: dict[str, Any] = {
            "id": self.id,
            "remoteJid": to_native_address(self.remote_jid) if self.remote_jid else None,
            "fromMe": bool(self.from_me),
        }
        if self.participant:
            key["participant"] = to_native_address(self.participant)
        return key

    @classmethod
    def from_native(cls, key: dict[str, Any]) -> MessageKey:
        participant = key.get("participant")
        return cls(
            id=key["id"],
            remote_jid=to_public_chat_id(key.get("remoteJid")),
            from_me=bool(key.get("fromMe")),
            participant=to_public_chat_id(participant) if participant else None,
        )


def serialize_message_id(key: MessageKey) -> str:
    """Build ``false_111@c.us_AAA`` (plus ``_participant`` for groups)."""
    if key.is_partial:
        raise MessageIdFormatError(key.id)
    parts = ["true" if key.from_me else "false", key.remote_jid, key.id]
    if key.participant:
        parts.append(key.participant)
    if any(not part or SEPARATOR in part for part in parts[1:]):
        raise MessageIdFormatError(key.id)
    return SEPARATOR.join(parts)  # type: ignore[arg-type]


def parse_message_id(message_id: str, soft: bool = False) -> MessageKey:
    """Inverse of ``serialize_message_id``.

    With ``soft=True`` a bare engine id (no separators) is accepted and
    returned as a partial key holding only ``id``.
    """
    if soft and SEPARATOR not in message_id:
        return MessageKey(id=message_id)

    parts = message_id.split(SEPARATOR)
    if len(parts) not in (3, 4) or parts[0] not in ("true", "false"):
        raise MessageIdFormatError(message_id)
    if not all(parts[1:]):
        raise MessageIdFormatError(message_id)
    return MessageKey(
        from_me=parts[0] == "true",
        remote_jid=parts[1],
        id=parts[2],
        participant=parts[3] if len(parts) == 4 else None,
    )


def build_message_id(native_key: dict[str, Any]) -> str:
    """Serialize an engine key dict straight to the public id."""
    return serialize_message_id(MessageKey.from_native(native_key))


def extract_message_keys_for_read(request: SendSeenRequest) -> list[MessageKey]:
    """Keys of the messages to mark as read; own messages are skipped.

    Bare engine ids take the chat and participant from the request.
    """
    ids = list(request.message_ids)
    if request.message_id:
        ids.append(request.message_id)
    keys: list[MessageKey] = []
    for message_id in ids:
        key = parse_message_id(message_id, soft=True).with_defaults(
            remote_jid=request.chat_id, from_me=False, participant=request.participant
        )
        if key.from_me:
            continue
        keys.append(key)
    return keys
