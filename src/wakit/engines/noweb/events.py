"""Conversion of NOWEB socket events into public event payloads."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from wakit.core.acks import MessageAck, status_to_ack
from wakit.core.ids import build_message_id
from wakit.core.jids import to_public_chat_id
from wakit.engines.noweb.content import REVOKE, get_aggregate_votes_in_poll, get_poll_creation, to_int
from wakit.engines.noweb.messages import get_destination, get_from_to_participant, to_ack_body
from wakit.models.enums import MessageSource, PresenceStatus
from wakit.models.labels import Label
from wakit.models.messages import (
    CallData,
    PollVote,
    PollVotePayload,
    ReactionInfo,
    WAMessageAckBody,
    WAMessageReaction,
)
from wakit.models.presence import ChatPresences, PresenceData

ENGINE_PRESENCES = {
    "unavailable": PresenceStatus.OFFLINE,
    "available": PresenceStatus.ONLINE,
    "composing": PresenceStatus.TYPING,
    "recording": PresenceStatus.RECORDING,
    "paused": PresenceStatus.PAUSED,
}
TO_ENGINE_PRESENCE = {public: engine for engine, public in ENGINE_PRESENCES.items()}


def is_mine(item: dict[str, Any]) -> bool:
    return bool(item["key"].get("fromMe"))


def is_revoke(message: dict[str, Any]) -> bool:
    protocol = (message.get("message") or {}).get("protocolMessage")
    return bool(protocol) and protocol.get("type") == REVOKE


# -- acks ----------------------------------------------------------------


def update_to_ack_body(item: dict[str, Any]) -> WAMessageAckBody | None:
    """Ack from a ``messages.update`` entry; only own messages carry acks."""
    status = (item.get("update") or {}).get("status")
    if status is None or not is_mine(item):
        return None
    return to_ack_body(item["key"], status_to_ack(status), item)


def receipt_ack(receipt: dict[str, Any]) -> int | None:
    if receipt.get("receiptTimestamp"):
        return MessageAck.SERVER
    if receipt.get("playedTimestamp"):
        return MessageAck.PLAYED
    if receipt.get("readTimestamp"):
        return MessageAck.READ
    return None


def receipt_to_ack_body(item: dict[str, Any], me_id: str | None) -> WAMessageAckBody | None:
    """Ack from a group receipt; own messages take the local account as participant."""
    if not is_mine(item):
        return None
    receipt = item.get("receipt") or {}
    key = dict(item["key"])
    key["participant"] = me_id
    return to_ack_body(item["key"], receipt_ack(receipt), item, id_key=key)


# -- reactions and polls ---------------------------------------------------


def to_reaction(message: dict[str, Any], source: MessageSource) -> WAMessageReaction | None:
    reaction = (message.get("message") or {}).get("reactionMessage")
    if not reaction:
        return None
    key = message["key"]
    addresses = get_from_to_participant(key)
    return WAMessageReaction(
        id=build_message_id(key),
        timestamp=to_int(message.get("messageTimestamp")) or 0,
        from_=addresses["from"],
        from_me=bool(key.get("fromMe")),
        source=source,
        to=addresses["to"],
        participant=addresses["participant"],
        reaction=ReactionInfo(
            text=reaction.get("text") or "",
            message_id=build_message_id(reaction["key"]),
        ),
    )


def poll_vote_payload(
    poll_key: dict[str, Any],
    poll_message: dict[str, Any] | None,
    poll_update: dict[str, Any],
    me_id: str | None,
) -> PollVotePayload:
    selected: list[str] = []
    creation = get_poll_creation(poll_message) if poll_message else None
    if creation:
        hashes = (poll_update.get("vote") or {}).get("selectedOptions") or []
        selected = get_aggregate_votes_in_poll(creation, hashes)
    voter = get_destination(poll_update["pollUpdateMessageKey"], me_id)
    vote = PollVote(
        **voter.model_dump(),
        selected_options=selected,
        timestamp=to_int(poll_update.get("senderTimestampMs")) or 0,
    )
    return PollVotePayload(vote=vote, poll=get_destination(poll_key, me_id))


def poll_vote_failed_payload(message: dict[str, Any], me_id: str | None) -> PollVotePayload:
    """Vote whose poll is unknown locally, so its options cannot be decrypted."""
    poll_update = message["message"]["pollUpdateMessage"]
    voter = get_destination(message["key"], me_id)
    vote = PollVote(
        **voter.model_dump(),
        selected_options=[],
        timestamp=to_int(message.get("messageTimestamp")) or 0,
    )
    return PollVotePayload(
        vote=vote, poll=get_destination(poll_update["pollCreationMessageKey"], me_id)
    )


# -- presence --------------------------------------------------------------


def to_chat_presences(jid: str, stored: dict[str, dict[str, Any]]) -> ChatPresences:
    presences = []
    for participant, data in stored.items():
        last_known = data.get("lastKnownPresence")
        presences.append(
            PresenceData(
                participant=to_public_chat_id(participant) or participant,
                last_known_presence=ENGINE_PRESENCES.get(last_known, last_known or ""),
                last_seen=data.get("lastSeen") or None,
            )
        )
    return ChatPresences(id=to_public_chat_id(jid) or jid, presences=presences)


# -- calls -----------------------------------------------------------------


def _call_timestamp(date: Any) -> float:
    """Seconds since epoch; numbers are milliseconds, strings are ISO 8601."""
    if isinstance(date, datetime):
        return date.timestamp()
    if isinstance(date, str):
        return datetime.fromisoformat(date.replace("Z", "+00:00")).timestamp()
    return float(date) / 1000


def to_call_data(call: dict[str, Any]) -> CallData:
    return CallData(
        id=call["id"],
        from_=to_public_chat_id(call.get("from")),
        timestamp=_call_timestamp(call.get("date")),
        is_video=bool(call.get("isVideo")),
        is_group=call.get("isGroup"),
    )


def calls_with_status(calls: list[dict[str, Any]], status: str) -> list[CallData]:
    return [to_call_data(c) for c in calls if c.get("status") == status]


def rejected_calls(calls: list[dict[str, Any]]) -> list[CallData]:
    """Rejects of a batch, unless another device accepted the call.

    A reject arrives twice, once without ``isGroup``; that copy is dropped.
    """
    if any(c.get("status") == "accept" for c in calls):
        return []
    return [
        to_call_data(c)
        for c in calls
        if c.get("status") == "reject" and c.get("isGroup") is not None
    ]


# -- labels and contacts ---------------------------------------------------


def to_label(label: dict[str, Any]) -> Label:
    return Label.build(id=str(label["id"]), name=label.get("name") or "", color=label.get("color") or 0)


def to_wa_contact(contact: dict[str, Any]) -> dict[str, Any]:
    result = dict(contact)
    result["id"] = to_public_chat_id(contact["id"])
    result["pushname"] = result.pop("notify", None)
    return result
