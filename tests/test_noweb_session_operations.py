"""Tests for NOWEB session operations."""

from __future__ import annotations

import asyncio
import time
from typing import Any
from unittest.mock import AsyncMock

import pytest

from wakit.core.errors import (
    GroupNotFoundError,
    MessageNotFoundError,
    NotSupportedByEngineError,
    PreconditionFailedError,
    RequiresHigherTierError,
    SessionStatusError,
    TransientEngineError,
)
from wakit.models.channels import ChannelSearchByText
from wakit.models.chats import GetChatMessagesFilter, GetChatMessagesQuery, Pagination, ReadChatMessagesQuery
from wakit.models.enums import MessageSource, PresenceStatus, SessionStatus
from wakit.models.labels import LabelBody
from wakit.models.requests import (
    ChatRequest,
    CheckNumberStatusQuery,
    EditMessageRequest,
    MessageForwardRequest,
    MessageImageRequest,
    MessagePollRequest,
    MessageReactionRequest,
    MessageReplyRequest,
    MessageStarRequest,
    MessageTextRequest,
    Poll,
    RemoteFile,
    SendSeenRequest,
)
from wakit.models.status import DeleteStatusRequest, ImageStatus, TextStatus

from tests.conftest import ALICE, BOB, GROUP, FakeSocket, make_session, text_message


@pytest.fixture
async def running():
    session, sockets = make_session()
    await session.start()
    yield session, sockets[0]
    await session.stop()


async def seed(sock: FakeSocket, *messages: dict[str, Any]) -> None:
    sock.ev.emit("messages.upsert", {"type": "notify", "messages": list(messages)})
    await sock.ev.drain()


class TestSending:
    async def test_send_text(self, running) -> None:
        session, sock = running
        result = await session.send_text(
            MessageTextRequest(chat_id="111@c.us", text="hello", mentions=["222@c.us"])
        )
        jid, content, options = sock.sent[0]
        assert jid == ALICE
        assert content == {"text": "hello", "mentions": [BOB], "linkPreview": None}
        assert options["quoted"] is None
        assert options["messageId"] == result["key"]["id"]
        assert session.get_message_source(result["key"]["id"]) == MessageSource.API

    async def test_engine_assigned_id_is_remembered(self, running) -> None:
        session, sock = running
        sock.send_message.side_effect = None
        sock.send_message.return_value = {"key": {"remoteJid": ALICE, "fromMe": True, "id": "ENGINE"}}
        await session.send_text(MessageTextRequest(chat_id="111@c.us", text="hi"))
        assert session.get_message_source("ENGINE") == MessageSource.API

    async def test_reply_quotes_stored_message(self, running) -> None:
        session, sock = running
        await seed(sock, text_message(ALICE, "Q", "question"))
        sock.ev.emit("chats.upsert", [{"id": ALICE, "ephemeralExpiration": 86400}])
        await sock.ev.drain()

        await session.reply(
            MessageReplyRequest(chat_id="111@c.us", text="answer", reply_to="false_111@c.us_Q")
        )
        _, _, options = sock.sent[0]
        assert options["quoted"]["key"]["id"] == "Q"
        assert options["ephemeralExpiration"] == 86400

    async def test_delete_and_edit(self, running) -> None:
        session, sock = running
        await session.delete_message("111@c.us", "true_111@c.us_A")
        await session.edit_message("111@c.us", "true_111@c.us_A", EditMessageRequest(text="fixed"))

        native = {"id": "A", "remoteJid": ALICE, "fromMe": True}
        assert sock.sent[0][1] == {"delete": native}
        assert sock.sent[1][1]["edit"] == native
        assert sock.sent[1][1]["text"] == "fixed"

    async def test_malformed_id(self, running) -> None:
        session, _ = running
        with pytest.raises(PreconditionFailedError):
            await session.delete_message("111@c.us", "not-an-id")

    async def test_poll(self, running) -> None:
        session, sock = running
        poll = Poll(name="Lunch?", options=["Yes", "No"], multiple_answers=True)
        message = await session.send_poll(MessagePollRequest(chat_id="111@c.us", poll=poll))
        assert sock.sent[0][1] == {"poll": {"name": "Lunch?", "values": ["Yes", "No"], "selectableCount": 2}}
        assert message.from_me
        assert message.source == MessageSource.API

    async def test_forward(self, running) -> None:
        session, sock = running
        with pytest.raises(MessageNotFoundError):
            await session.forward_message(
                MessageForwardRequest(chat_id="222@c.us", message_id="false_111@c.us_X")
            )
        await seed(sock, text_message(ALICE, "X", "fwd me"))
        await session.forward_message(
            MessageForwardRequest(chat_id="222@c.us", message_id="false_111@c.us_X")
        )
        jid, content, _ = sock.sent[0]
        assert jid == BOB
        assert content["force"] is True
        assert content["forward"]["key"]["id"] == "X"

    async def test_media_requires_higher_tier(self, running) -> None:
        session, sock = running
        request = MessageImageRequest(chat_id="111@c.us", file=RemoteFile(url="https://x/y.jpg"))
        with pytest.raises(RequiresHigherTierError):
            await session.send_image(request)
        sock.send_message.assert_not_awaited()

    async def test_reaction_and_star(self, running) -> None:
        session, sock = running
        await session.set_reaction(MessageReactionRequest(message_id="false_111@c.us_A", reaction="👍"))
        assert sock.sent[0] == (
            ALICE,
            {"react": {"text": "👍", "key": {"id": "A", "remoteJid": ALICE, "fromMe": False}}},
            None,
        )

        await session.set_star(
            MessageStarRequest(chat_id="111@c.us", message_id="false_111@c.us_A", star=True)
        )
        sock.chat_modify.assert_awaited_once_with(
            {"star": {"messages": [{"id": "A", "fromMe": False}], "star": True}}, ALICE
        )

    async def test_channel_reaction_uses_server_id(self, running) -> None:
        session, sock = running
        sock.newsletter_react_message = AsyncMock()  # type: ignore[method-assign]
        await session.set_reaction(
            MessageReactionRequest(message_id="false_120363@newsletter_123", reaction="👍")
        )
        sock.newsletter_react_message.assert_awaited_once_with("120363@newsletter", "123", "👍")

        with pytest.raises(PreconditionFailedError):
            await session.set_reaction(
                MessageReactionRequest(message_id="false_120363@newsletter_ABC", reaction="👍")
            )

    async def test_pin(self, running) -> None:
        session, sock = running
        assert await session.pin_message("111@c.us", "false_111@c.us_A", 86400)
        assert await session.unpin_message("111@c.us", "false_111@c.us_A")
        assert sock.sent[0][1]["type"] == "PIN_FOR_ALL"
        assert sock.sent[0][1]["time"] == 86400
        assert sock.sent[1][1]["type"] == "UNPIN_FOR_ALL"

    async def test_typing(self, running) -> None:
        session, sock = running
        await session.start_typing(ChatRequest(chat_id="111@c.us"))
        await session.stop_typing(ChatRequest(chat_id="111@c.us"))
        assert [c.args for c in sock.send_presence_update.await_args_list] == [
            ("composing", ALICE),
            ("paused", ALICE),
        ]

    async def test_check_number(self, running) -> None:
        session, sock = running
        sock.on_whatsapp = AsyncMock(return_value=[{"exists": True, "jid": ALICE}])  # type: ignore[method-assign]
        result = await session.check_number_status(CheckNumberStatusQuery(phone="111"))
        assert result.number_exists
        assert result.chat_id == "111@c.us"

        sock.on_whatsapp.return_value = []
        assert not (await session.check_number_status(CheckNumberStatusQuery(phone="333"))).number_exists


class TestSeen:
    async def test_send_seen_skips_own_and_updates_store(self, running) -> None:
        session, sock = running
        await seed(sock, text_message(ALICE, "A"), text_message(ALICE, "B", from_me=True))

        await session.send_seen(
            SendSeenRequest(chat_id="111@c.us", message_ids=["false_111@c.us_A", "true_111@c.us_B"])
        )
        await sock.ev.drain()

        sock.read_messages.assert_awaited_once_with(
            [{"id": "A", "remoteJid": ALICE, "fromMe": False}]
        )
        assert (await session.store.load_message(ALICE, "A"))["status"] == 4

    async def test_nothing_to_read(self, running) -> None:
        session, sock = running
        await session.send_seen(SendSeenRequest(chat_id="111@c.us", message_ids=["true_111@c.us_B"]))
        sock.read_messages.assert_not_awaited()

    async def test_read_chat_messages(self, running) -> None:
        session, sock = running
        now = int(time.time())
        await seed(
            sock,
            text_message(ALICE, "NEW", timestamp=now - 60),
            text_message(ALICE, "SEEN", timestamp=now - 50, status=4),
            text_message(ALICE, "MINE", timestamp=now - 40, from_me=True),
            text_message(ALICE, "ANCIENT", timestamp=now - 30 * 24 * 3600),
        )
        response = await session.read_chat_messages("111@c.us", ReadChatMessagesQuery())
        assert response.ids == ["false_111@c.us_NEW"]
        sock.read_messages.assert_awaited_once()

        await sock.ev.drain()
        again = await session.read_chat_messages("111@c.us", ReadChatMessagesQuery())
        assert again.ids == []
        sock.read_messages.assert_awaited_once()

    async def test_read_window(self, running) -> None:
        session, sock = running
        now = int(time.time())
        await seed(sock, *(text_message(ALICE, f"M{n}", timestamp=now - n) for n in range(35)))
        response = await session.read_chat_messages("111@c.us", ReadChatMessagesQuery())
        assert len(response.ids) == 30
        assert response.ids[0] == "false_111@c.us_M0"

        limited = await session.read_chat_messages("111@c.us", ReadChatMessagesQuery(messages=2))
        assert len(limited.ids) == 2


class TestChats:
    async def test_store_disabled(self) -> None:
        session, _ = make_session(store=False)
        await session.start()
        with pytest.raises(PreconditionFailedError):
            await session.get_chats(Pagination())
        with pytest.raises(PreconditionFailedError):
            await session.get_labels()
        await session.stop()

    async def test_get_chats_and_overview(self, running) -> None:
        session, sock = running
        sock.ev.emit(
            "chats.upsert",
            [
                {"id": ALICE, "conversationTimestamp": 20, "unreadCount": 3},
                {"id": BOB, "conversationTimestamp": 10, "name": "Bob"},
            ],
        )
        sock.ev.emit("contacts.upsert", [{"id": ALICE, "notify": "Alice"}])
        await sock.ev.drain()
        await seed(sock, text_message(ALICE, "LAST", "see you"))

        chats = await session.get_chats(Pagination())
        assert [c["id"] for c in chats] == [ALICE, BOB]
        assert "unreadCount" not in chats[0]

        overview = await session.get_chats_overview(Pagination(limit=1))
        [summary] = overview
        assert summary.id == "111@c.us"
        assert summary.name == "Alice"
        assert summary.picture == "https://pps.whatsapp.net/p.jpg"
        assert summary.last_message is not None
        assert summary.last_message.body == "see you"

    async def test_chat_messages(self, running) -> None:
        session, sock = running
        await seed(
            sock,
            text_message(ALICE, "A", timestamp=1),
            text_message(ALICE, "B", timestamp=2, from_me=True),
        )
        query = GetChatMessagesQuery(download_media=False)
        messages = await session.get_chat_messages("111@c.us", query, GetChatMessagesFilter())
        assert [m.id for m in messages] == ["true_111@c.us_B", "false_111@c.us_A"]

        filtered = await session.get_chat_messages(
            "111@c.us", query, GetChatMessagesFilter(from_me=False)
        )
        assert [m.id for m in filtered] == ["false_111@c.us_A"]

        message = await session.get_chat_message("111@c.us", "A", query)
        assert message is not None and message.id == "false_111@c.us_A"
        assert await session.get_chat_message("111@c.us", "false_111@c.us_Z", query) is None

    async def test_archive(self, running) -> None:
        session, sock = running
        await seed(sock, text_message(ALICE, "A"))
        await session.chats_archive_chat("111@c.us")
        modification, jid = sock.chat_modify.await_args.args
        assert jid == ALICE
        assert modification["archive"] is True
        assert [m["key"]["id"] for m in modification["lastMessages"]] == ["A"]

        await session.chats_unread_chat("111@c.us")
        assert sock.chat_modify.await_args.args[0]["markRead"] is False


class TestLabels:
    async def test_create_next_id(self, running) -> None:
        session, sock = running
        sock.ev.emit("labels.edit", {"id": "4", "name": "Old", "color": 0})
        await sock.ev.drain()

        label = await session.create_label(LabelBody(name="New", color=3))
        assert label.id == "5"
        assert label.color_hex == "#dfaef0"
        sock.add_label.assert_awaited_once_with(
            "", {"id": "5", "name": "New", "color": 3, "deleted": False}
        )

    async def test_delete_missing_label(self, running) -> None:
        session, _ = running
        with pytest.raises(PreconditionFailedError):
            await session.delete_label("42")

    async def test_put_labels_to_chat(self, running) -> None:
        session, sock = running
        for label_id in ("1", "2"):
            sock.ev.emit("labels.edit", {"id": label_id, "name": label_id, "color": 0})
            sock.ev.emit(
                "labels.association",
                {"type": "add", "association": {"type": "label_jid", "labelId": label_id, "chatId": ALICE}},
            )
        await sock.ev.drain()

        await session.put_labels_to_chat("111@c.us", ["2", "3"])
        sock.add_chat_label.assert_awaited_once_with(ALICE, "3")
        sock.remove_chat_label.assert_awaited_once_with(ALICE, "1")


class TestContacts:
    async def test_contact(self, running) -> None:
        session, sock = running
        sock.ev.emit("contacts.upsert", [{"id": ALICE, "name": "Alice", "notify": "Al"}])
        await sock.ev.drain()
        contact = await session.get_contact("111@c.us")
        assert contact == {"id": "111@c.us", "name": "Alice", "pushname": "Al"}
        assert await session.get_contact("333@c.us") is None

    async def test_about(self, running) -> None:
        session, sock = running
        sock.fetch_status = AsyncMock(return_value={"status": "Busy"})  # type: ignore[method-assign]
        assert await session.get_contact_about("111@c.us") == {"about": "Busy"}

    async def test_block_not_supported(self, running) -> None:
        session, _ = running
        with pytest.raises(NotSupportedByEngineError):
            await session.block_contact("111@c.us")


class TestGroups:
    async def test_group_lookup_and_settings(self, running) -> None:
        session, sock = running

        async def fetch() -> dict[str, Any]:
            group = {"id": GROUP, "subject": "Team", "restrict": True, "participants": [{"id": ALICE}]}
            sock.ev.emit("groups.update", [group])
            return {GROUP: group}

        sock.group_fetch_all_participating.side_effect = fetch

        group = await session.get_group(GROUP)
        assert group["subject"] == "Team"
        assert (await session.get_info_admin_only(GROUP)).admins_only is True
        assert (await session.get_messages_admin_only(GROUP)).admins_only is False
        with pytest.raises(GroupNotFoundError):
            await session.get_group("000-000@g.us")

        await session.set_info_admins_only(GROUP, True)
        await session.set_messages_admins_only(GROUP, False)
        assert [c.args for c in sock.group_setting_update.await_args_list] == [
            (GROUP, "locked"),
            (GROUP, "not_announcement"),
        ]

        assert await session.get_participants(GROUP) == [{"id": ALICE}]
        with pytest.raises(GroupNotFoundError):
            await session.get_participants("000-000@g.us")

    async def test_delete_not_supported(self, running) -> None:
        session, _ = running
        with pytest.raises(NotSupportedByEngineError):
            await session.delete_group(GROUP)


class TestPresence:
    async def test_set_presence(self, running) -> None:
        session, sock = running
        await session.set_presence(PresenceStatus.ONLINE)
        await session.set_presence(PresenceStatus.TYPING, "111@c.us")
        assert [c.args for c in sock.send_presence_update.await_args_list] == [
            ("available", None),
            ("composing", ALICE),
        ]

    async def test_get_presence_subscribes_once(self, running, monkeypatch) -> None:
        monkeypatch.setattr("wakit.engines.noweb.session.PRESENCE_WAIT_SECONDS", 0)
        session, sock = running
        presence = await session.get_presence("111@c.us")
        assert presence.id == "111@c.us"
        assert presence.presences == []
        await session.get_presence("111@c.us")
        sock.presence_subscribe.assert_awaited_once_with(ALICE)

    async def test_known_presences_resubscribed_on_open(self, running) -> None:
        session, sock = running
        sock.ev.emit("presence.update", {"id": ALICE, "presences": {}})
        sock.ev.emit("connection.update", {"connection": "open"})
        await sock.ev.drain()
        sock.presence_subscribe.assert_awaited_once_with(ALICE)


class TestChannels:
    async def test_search_requires_higher_tier(self, running) -> None:
        session, _ = running
        with pytest.raises(RequiresHigherTierError):
            await session.search_channels_by_text(ChannelSearchByText(text="news"))

    async def test_get_by_invite(self, running) -> None:
        session, sock = running
        sock.newsletter_metadata = AsyncMock(  # type: ignore[method-assign]
            return_value={"id": "120363@newsletter", "name": "News", "invite": "XyZ", "verification": "VERIFIED"}
        )
        channel = await session.channels_get("https://whatsapp.com/channel/XyZ")
        sock.newsletter_metadata.assert_awaited_once_with("invite", "XyZ")
        assert channel.id == "120363@newsletter"
        assert channel.verified
        assert channel.invite == "https://whatsapp.com/channel/XyZ"

        sock.newsletter_metadata.return_value = None
        with pytest.raises(PreconditionFailedError):
            await session.channels_get("120363@newsletter")


class TestPairing:
    async def test_method_rejected(self, running) -> None:
        session, _ = running
        with pytest.raises(PreconditionFailedError):
            await session.request_code("111", method="sms")

    async def test_wrong_status(self, running) -> None:
        session, sock = running
        sock.ev.emit("connection.update", {"connection": "open"})
        await sock.ev.drain()
        with pytest.raises(SessionStatusError):
            await session.request_code("111")

    async def test_waits_for_qr_then_requests(self, running) -> None:
        session, sock = running
        sock.request_pairing_code = AsyncMock(return_value="ABCDEFGH")  # type: ignore[method-assign]
        task = asyncio.create_task(session.request_code("111"))
        await asyncio.sleep(0)
        sock.ev.emit("connection.update", {"qr": "2@abc"})
        response = await task
        assert session.status == SessionStatus.SCAN_QR_CODE
        assert response.code == "ABCD-EFGH"
        sock.request_pairing_code.assert_awaited_once_with("111")


class TestStatuses:
    async def test_text_status_to_contacts_is_one_send(self, running) -> None:
        session, sock = running
        status = TextStatus(text="hello", contacts=["1@c.us", "2@c.us", "3@c.us"])
        await session.send_text_status(status)

        [(jid, _, options)] = sock.sent
        assert jid == "status@broadcast"
        assert options["statusJidList"] == [
            "999@s.whatsapp.net",
            "1@s.whatsapp.net",
            "2@s.whatsapp.net",
            "3@s.whatsapp.net",
        ]

    async def test_text_status_chunks_by_batch_size(self) -> None:
        session, sockets = make_session(status_batch_size=2)
        await session.start()
        sock = sockets[0]
        status = TextStatus(text="hello", contacts=["1@c.us", "2@c.us", "3@c.us"])
        await session.send_text_status(status)

        lists = [options["statusJidList"] for _, _, options in sock.sent]
        assert lists == [
            ["999@s.whatsapp.net", "1@s.whatsapp.net"],
            ["2@s.whatsapp.net", "3@s.whatsapp.net"],
        ]
        assert all(jid == "status@broadcast" for jid, _, _ in sock.sent)
        assert len({options["messageId"] for _, _, options in sock.sent}) == 1
        await session.stop()

    async def test_default_audience_from_store(self) -> None:
        session, sockets = make_session(status_batch_size=2)
        await session.start()
        sock = sockets[0]
        sock.ev.emit(
            "contacts.upsert",
            [{"id": ALICE}, {"id": BOB}, {"id": GROUP}, {"id": "333@s.whatsapp.net"}],
        )
        await sock.ev.drain()

        await session.send_text_status(TextStatus(text="hello", id="MYID"))
        lists = [options["statusJidList"] for _, _, options in sock.sent]
        assert sorted(j for chunk in lists for j in chunk) == sorted(
            [ALICE, BOB, "333@s.whatsapp.net"]
        )
        assert all(len(chunk) <= 2 for chunk in lists)
        assert session.get_message_source("MYID") == MessageSource.API
        await session.stop()

    async def test_retry_then_success(self, running) -> None:
        session, sock = running
        failures = [RuntimeError("rate-overlimit")]

        async def flaky(
            jid: str, content: dict[str, Any], options: dict[str, Any] | None = None
        ) -> dict[str, Any]:
            if failures:
                raise failures.pop()
            return await sock._send_message(jid, content, options)

        sock.send_message.side_effect = flaky
        result = await session.send_text_status(TextStatus(text="hi", contacts=["1@c.us"]))
        assert sock.send_message.await_count == 2
        assert result["key"]["remoteJid"] == "status@broadcast"

    async def test_gives_up(self, running) -> None:
        session, sock = running
        sock.send_message.side_effect = RuntimeError("rate-overlimit")
        with pytest.raises(TransientEngineError):
            await session.send_text_status(TextStatus(text="hi", contacts=["1@c.us"]))
        assert sock.send_message.await_count == 3

    async def test_no_audience(self) -> None:
        session, _ = make_session(me={})
        await session.start()
        with pytest.raises(PreconditionFailedError):
            await session.send_text_status(TextStatus(text="hi"))
        await session.stop()

    async def test_delete_status(self, running) -> None:
        session, sock = running
        await session.delete_status(DeleteStatusRequest(id="ABC", contacts=["1@c.us"]))
        _, content, options = sock.sent[0]
        assert content == {"delete": {"id": "ABC", "remoteJid": "status@broadcast", "fromMe": True}}
        assert options["statusJidList"] == ["999@s.whatsapp.net", "1@s.whatsapp.net"]

    async def test_media_status_requires_higher_tier(self, running) -> None:
        session, _ = running
        with pytest.raises(RequiresHigherTierError):
            await session.send_image_status(ImageStatus(file=RemoteFile(url="https://x/y.jpg")))
