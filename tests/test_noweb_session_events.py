"""Tests for the public events a NOWEB session publishes on its bus."""

from __future__ import annotations

import asyncio
import base64
import hashlib
from typing import Any
from unittest.mock import AsyncMock

import pytest

from wakit.core.acks import MessageAck
from wakit.core.ids import build_message_id
from wakit.core.media import InMemoryMediaManager
from wakit.engines.noweb.session import WhatsappSessionNoWebCore
from wakit.models.enums import MessageSource, WAEvent
from wakit.models.requests import MessageTextRequest

from tests.conftest import ALICE, BOB, GROUP, ME_JID, FakeSocket, make_session, text_message


@pytest.fixture
async def running():
    session, sockets = make_session()
    await session.start()
    yield session, sockets[0]
    await session.stop()


def record(session: WhatsappSessionNoWebCore, kind: WAEvent) -> list[dict[str, Any]]:
    received: list[dict[str, Any]] = []
    session.events.subscribe(kind, received.append)
    return received


async def emit(sock: FakeSocket, event: str, data: Any) -> None:
    sock.ev.emit(event, data)
    await sock.ev.drain()
    await asyncio.sleep(0.01)


def upsert(*messages: dict[str, Any]) -> dict[str, Any]:
    return {"type": "notify", "messages": list(messages)}


class TestMessages:
    async def test_message_and_message_any(self, running) -> None:
        session, sock = running
        inbound = record(session, WAEvent.MESSAGE)
        everything = record(session, WAEvent.MESSAGE_ANY)

        await emit(
            sock,
            "messages.upsert",
            upsert(text_message(ALICE, "IN", "hello"), text_message(ALICE, "OUT", from_me=True)),
        )

        assert [m["id"] for m in inbound] == ["false_111@c.us_IN"]
        assert inbound[0]["body"] == "hello"
        assert inbound[0]["from"] == "111@c.us"
        assert inbound[0]["ack"] == MessageAck.DEVICE
        assert [m["id"] for m in everything] == ["false_111@c.us_IN", "true_111@c.us_OUT"]

    async def test_control_messages_are_skipped(self, running) -> None:
        session, sock = running
        everything = record(session, WAEvent.MESSAGE_ANY)
        reaction = {
            "key": {"remoteJid": ALICE, "fromMe": False, "id": "R"},
            "message": {"reactionMessage": {"text": "👍", "key": {"remoteJid": ALICE, "id": "A"}}},
        }
        revoke = {
            "key": {"remoteJid": ALICE, "fromMe": False, "id": "D"},
            "message": {"protocolMessage": {"type": "REVOKE", "key": {"id": "A"}}},
        }
        await emit(sock, "messages.upsert", upsert(reaction, revoke))
        assert everything == []

    async def test_source_is_api_for_sent_ids(self, running) -> None:
        session, sock = running
        everything = record(session, WAEvent.MESSAGE_ANY)
        sent = await session.send_text(MessageTextRequest(chat_id="111@c.us", text="hi"))
        message_id = sent["key"]["id"]

        await emit(
            sock,
            "messages.upsert",
            upsert(text_message(ALICE, message_id, from_me=True), text_message(ALICE, "OTHER")),
        )
        sources = {m["id"]: m["source"] for m in everything}
        assert sources[f"true_111@c.us_{message_id}"] == MessageSource.API
        assert sources["false_111@c.us_OTHER"] == MessageSource.APP

    async def test_media_is_processed(self, running) -> None:
        session, sock = running
        session.media_manager = InMemoryMediaManager()
        sock.download_media = AsyncMock(return_value=b"jpeg")  # type: ignore[method-assign]
        inbound = record(session, WAEvent.MESSAGE)
        image = {
            "key": {"remoteJid": ALICE, "fromMe": False, "id": "IMG"},
            "message": {"imageMessage": {"mimetype": "image/jpeg", "caption": "look"}},
            "messageTimestamp": 1700000000,
        }
        await emit(sock, "messages.upsert", upsert(image))

        [message] = inbound
        assert message["has_media"] is True
        assert message["body"] == "look"
        assert message["media"]["url"] == "memory://default/IMG"
        assert session.media_manager.files["memory://default/IMG"] == b"jpeg"

    async def test_revoked(self, running) -> None:
        session, sock = running
        revoked = record(session, WAEvent.MESSAGE_REVOKED)
        revoke = {
            "key": {"remoteJid": ALICE, "fromMe": False, "id": "D"},
            "message": {"protocolMessage": {"type": "REVOKE", "key": {"id": "A"}}},
            "messageTimestamp": 1700000000,
        }
        await emit(sock, "messages.upsert", upsert(revoke))
        [event] = revoked
        assert event["after"]["id"] == "false_111@c.us_D"
        assert event["before"] is None

    async def test_reaction(self, running) -> None:
        session, sock = running
        reactions = record(session, WAEvent.MESSAGE_REACTION)
        reaction = {
            "key": {"remoteJid": ALICE, "fromMe": False, "id": "R"},
            "message": {
                "reactionMessage": {
                    "text": "👍",
                    "key": {"remoteJid": ALICE, "fromMe": True, "id": "A"},
                }
            },
            "messageTimestamp": 1700000000,
        }
        await emit(sock, "messages.upsert", upsert(reaction, text_message(ALICE, "PLAIN")))
        [event] = reactions
        assert event["reaction"] == {"text": "👍", "message_id": "true_111@c.us_A"}
        assert event["from"] == "111@c.us"

    async def test_edit_updates_stored_message(self, running) -> None:
        session, sock = running
        await emit(sock, "messages.upsert", upsert(text_message(ALICE, "A", "typo")))
        edit = {
            "key": {"remoteJid": ALICE, "fromMe": False, "id": "E"},
            "message": {
                "protocolMessage": {
                    "type": "MESSAGE_EDIT",
                    "key": {"remoteJid": ALICE, "fromMe": False, "id": "A"},
                    "editedMessage": {"conversation": "fixed"},
                }
            },
        }
        await emit(sock, "messages.upsert", upsert(edit))
        stored = await session.store.load_message(ALICE, "A")
        assert stored["message"] == {"conversation": "fixed"}


class TestAcks:
    async def test_direct_ack_once(self, running) -> None:
        session, sock = running
        acks = record(session, WAEvent.MESSAGE_ACK)
        key = {"remoteJid": ALICE, "fromMe": True, "id": "A"}
        update = [{"key": key, "update": {"status": 4}}]
        await emit(sock, "messages.update", update)
        await emit(sock, "messages.update", update)

        [ack] = acks
        assert ack["id"] == "true_111@c.us_A"
        assert ack["ack"] == MessageAck.READ
        assert ack["ack_name"] == "READ"

    async def test_inbound_updates_carry_no_ack(self, running) -> None:
        session, sock = running
        acks = record(session, WAEvent.MESSAGE_ACK)
        key = {"remoteJid": ALICE, "fromMe": False, "id": "A"}
        await emit(sock, "messages.update", [{"key": key, "update": {"status": 4}}])
        assert acks == []

    async def test_group_receipt_keyed_by_own_account(self, running) -> None:
        session, sock = running
        acks = record(session, WAEvent.MESSAGE_ACK)
        key = {"remoteJid": GROUP, "fromMe": True, "id": "G"}
        receipt = {"key": key, "receipt": {"userJid": ALICE, "readTimestamp": 1700000000}}
        await emit(sock, "message-receipt.update", [receipt])

        [ack] = acks
        assert ack["id"] == "true_123-456@g.us_G_999@c.us"
        assert ack["ack"] == MessageAck.READ

    async def test_group_receipt_for_inbound_message_is_dropped(self, running) -> None:
        session, sock = running
        acks = record(session, WAEvent.MESSAGE_ACK)
        key = {"remoteJid": GROUP, "fromMe": False, "id": "G", "participant": BOB}
        receipt = {"key": key, "receipt": {"userJid": ALICE, "readTimestamp": 1700000000}}
        await emit(sock, "message-receipt.update", [receipt])
        assert acks == []

    async def test_end_to_end_ack_is_monotonic(self, running) -> None:
        session, sock = running
        await emit(sock, "messages.upsert", upsert(text_message("123@x", "ABC")))
        stored = await session.store.load_message("123@x", "ABC")
        assert build_message_id(stored["key"]) == "false_123@x_ABC"

        key = {"remoteJid": "123@x", "fromMe": False, "id": "ABC"}
        await emit(sock, "messages.update", [{"key": key, "update": {"status": 3}}])
        assert (await session.store.load_message("123@x", "ABC"))["status"] == 3

        await emit(sock, "messages.update", [{"key": key, "update": {"status": 1}}])
        assert (await session.store.load_message("123@x", "ABC"))["status"] == 3


class TestPolls:
    async def test_vote_for_known_poll(self, running) -> None:
        session, sock = running
        votes = record(session, WAEvent.POLL_VOTE)
        failed = record(session, WAEvent.POLL_VOTE_FAILED)
        poll = {
            "key": {"remoteJid": ALICE, "fromMe": True, "id": "POLL"},
            "message": {
                "pollCreationMessage": {
                    "name": "Lunch?",
                    "options": [{"optionName": "Yes"}, {"optionName": "No"}],
                }
            },
            "messageTimestamp": 1700000000,
        }
        await emit(sock, "messages.upsert", upsert(poll))

        selected = base64.b64encode(hashlib.sha256(b"Yes").digest()).decode()
        vote_update = {
            "pollUpdateMessageKey": {"remoteJid": ALICE, "fromMe": False, "id": "VOTE"},
            "vote": {"selectedOptions": [selected]},
            "senderTimestampMs": 1700000001000,
        }
        vote_message = {
            "key": {"remoteJid": ALICE, "fromMe": False, "id": "VOTE"},
            "message": {
                "pollUpdateMessage": {
                    "pollCreationMessageKey": {"remoteJid": ALICE, "fromMe": True, "id": "POLL"}
                }
            },
        }
        await emit(sock, "messages.upsert", upsert(vote_message))
        await emit(
            sock,
            "messages.update",
            [{"key": poll["key"], "update": {"pollUpdates": [vote_update]}}],
        )

        assert failed == []
        [vote] = votes
        assert vote["vote"]["selected_options"] == ["Yes"]
        assert vote["vote"]["from"] == "111@c.us"
        assert vote["poll"]["id"] == "true_111@c.us_POLL"

    async def test_vote_for_unknown_poll_fails(self, running) -> None:
        session, sock = running
        failed = record(session, WAEvent.POLL_VOTE_FAILED)
        vote_message = {
            "key": {"remoteJid": ALICE, "fromMe": False, "id": "VOTE"},
            "message": {
                "pollUpdateMessage": {
                    "pollCreationMessageKey": {"remoteJid": ALICE, "fromMe": True, "id": "GONE"}
                }
            },
            "messageTimestamp": 1700000000,
        }
        await emit(sock, "messages.upsert", upsert(vote_message))
        [event] = failed
        assert event["vote"]["selected_options"] == []
        assert event["poll"]["id"] == "true_111@c.us_GONE"


class TestCalls:
    async def test_offer_and_accept(self, running) -> None:
        session, sock = running
        received = record(session, WAEvent.CALL_RECEIVED)
        accepted = record(session, WAEvent.CALL_ACCEPTED)
        offer = {"id": "C1", "from": ALICE, "status": "offer", "date": 1700000000000, "isGroup": False}
        await emit(sock, "call", [offer])
        await emit(sock, "call", [{**offer, "status": "accept"}])

        [call] = received
        assert call["id"] == "C1"
        assert call["from"] == "111@c.us"
        assert call["timestamp"] == 1700000000.0
        assert [c["id"] for c in accepted] == ["C1"]

    async def test_reject_deduplicated(self, running) -> None:
        session, sock = running
        rejected = record(session, WAEvent.CALL_REJECTED)
        reject = {"id": "C2", "from": ALICE, "status": "reject", "date": "2023-11-14T22:13:20Z"}
        await emit(sock, "call", [reject, {**reject, "isGroup": False}])
        [call] = rejected
        assert call["id"] == "C2"

    async def test_reject_after_accept_elsewhere_is_dropped(self, running) -> None:
        session, sock = running
        rejected = record(session, WAEvent.CALL_REJECTED)
        base = {"id": "C3", "from": ALICE, "date": 1700000000000, "isGroup": False}
        await emit(sock, "call", [{**base, "status": "accept"}, {**base, "status": "reject"}])
        assert rejected == []


class TestGroupsAndPresence:
    async def test_group_join(self, running) -> None:
        session, sock = running
        legacy = record(session, WAEvent.GROUP_JOIN)
        joins = record(session, WAEvent.GROUP_V2_JOIN)
        group = {"id": GROUP, "subject": "Team", "announce": True, "participants": [{"id": ALICE}]}
        await emit(sock, "groups.upsert", [group])

        assert [g["subject"] for g in legacy] == ["Team"]
        [join] = joins
        assert join["group"]["members_can_send_messages"] is False
        assert join["group"]["participants"] == [{"id": "111@c.us", "role": "participant"}]
        assert "_eventId" not in group

    async def test_participants_and_leave(self, running) -> None:
        session, sock = running
        participants = record(session, WAEvent.GROUP_V2_PARTICIPANTS)
        leaves = record(session, WAEvent.GROUP_V2_LEAVE)
        await emit(
            sock, "group-participants.update", {"id": GROUP, "participants": [BOB], "action": "add"}
        )
        await emit(
            sock,
            "group-participants.update",
            {"id": GROUP, "participants": [ME_JID], "action": "remove"},
        )

        assert [p["type"] for p in participants] == ["join", "leave"]
        assert participants[0]["participants"] == [{"id": "222@c.us", "role": "participant"}]
        [leave] = leaves
        assert leave["group"] == {"id": GROUP}

    async def test_presence_update(self, running) -> None:
        session, sock = running
        presences = record(session, WAEvent.PRESENCE_UPDATE)
        await emit(
            sock,
            "presence.update",
            {"id": ALICE, "presences": {ALICE: {"lastKnownPresence": "composing"}}},
        )
        [event] = presences
        assert event["id"] == "111@c.us"
        assert event["presences"] == [
            {"participant": "111@c.us", "last_known_presence": "typing", "last_seen": None}
        ]

    async def test_message_ends_typing(self, running) -> None:
        session, sock = running
        await emit(
            sock,
            "presence.update",
            {"id": ALICE, "presences": {ALICE: {"lastKnownPresence": "composing"}}},
        )
        await emit(sock, "messages.upsert", upsert(text_message(ALICE, "A")))
        assert session.store.presences[ALICE][ALICE]["lastKnownPresence"] == "available"


class TestLabels:
    async def test_label_events(self, running) -> None:
        session, sock = running
        upserts = record(session, WAEvent.LABEL_UPSERT)
        deletes = record(session, WAEvent.LABEL_DELETED)
        added = record(session, WAEvent.LABEL_CHAT_ADDED)
        removed = record(session, WAEvent.LABEL_CHAT_DELETED)

        await emit(sock, "labels.edit", {"id": "1", "name": "New", "color": 2, "deleted": False})
        association = {"type": "label_jid", "labelId": "1", "chatId": ALICE}
        await emit(sock, "labels.association", {"type": "add", "association": association})
        await emit(sock, "labels.association", {"type": "remove", "association": association})
        await emit(sock, "labels.edit", {"id": "1", "name": "New", "color": 2, "deleted": True})

        assert upserts[0]["color_hex"] == "#ffd429"
        assert [d["id"] for d in deletes] == ["1"]
        [chat_added] = added
        assert chat_added["chat_id"] == "111@c.us"
        assert chat_added["label"]["name"] == "New"
        [chat_removed] = removed
        assert chat_removed["label_id"] == "1"


class TestEngineEvents:
    async def test_state_change_and_engine_event(self, running) -> None:
        session, sock = running
        states = record(session, WAEvent.STATE_CHANGE)
        engine = record(session, WAEvent.ENGINE_EVENT)
        await emit(sock, "connection.update", {"connection": "connecting"})

        assert [s["connection"] for s in states] == ["connecting"]
        assert any(
            e["event"] == "connection.update" and e["data"] == {"connection": "connecting"}
            for e in engine
        )


class TestProfilePictureCache:
    async def test_cached_failure(self, running) -> None:
        session, sock = running
        sock.profile_picture_url.side_effect = RuntimeError("timeout")
        assert await session.get_contact_profile_picture("111@c.us") is None
        assert await session.get_contact_profile_picture("111@c.us") is None
        assert sock.profile_picture_url.await_count == 1

    async def test_missing_picture(self, running) -> None:
        session, sock = running
        sock.profile_picture_url.side_effect = Exception("item-not-found")
        assert await session.get_contact_profile_picture("111@c.us") is None

    async def test_refresh_and_contact_update_invalidate(self, running) -> None:
        session, sock = running
        url = await session.get_contact_profile_picture("111@c.us")
        assert url == "https://pps.whatsapp.net/p.jpg"
        sock.profile_picture_url.assert_awaited_with(ALICE, "image")

        await session.get_contact_profile_picture("111@c.us", refresh=True)
        assert sock.profile_picture_url.await_count == 2

        await emit(sock, "contacts.update", [{"id": ALICE, "imgUrl": "changed"}])
        calls = sock.profile_picture_url.await_count
        await session.get_contact_profile_picture("111@c.us")
        assert sock.profile_picture_url.await_count == calls + 1

    async def test_broadcast_has_no_picture(self, running) -> None:
        session, sock = running
        assert await session.get_contact_profile_picture("status@broadcast") is None
        sock.profile_picture_url.assert_not_awaited()
