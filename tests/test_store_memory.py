"""Tests for the in-memory store repositories."""

from __future__ import annotations

import pytest

from wakit.core.acks import MessageAck
from wakit.models.chats import GetChatMessagesFilter, Pagination
from wakit.models.enums import SortOrder
from wakit.store import InMemoryStorage, StoreKind, build_storage
from wakit.store.memory import paginate

from tests.conftest import ALICE, BOB, text_message


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


class TestPaginate:
    def test_limit_offset(self) -> None:
        items = [{"id": str(n), "n": n} for n in range(5)]
        result = paginate(items, Pagination(limit=2, offset=1))
        assert [i["n"] for i in result] == [1, 2]

    def test_explicit_sort(self) -> None:
        items = [{"id": "a", "n": 2}, {"id": "b", "n": 1}, {"id": "c", "n": 3}]
        asc = paginate(items, Pagination(sort_by="n"))
        desc = paginate(items, Pagination(sort_by="n", sort_order=SortOrder.DESC))
        assert [i["n"] for i in asc] == [1, 2, 3]
        assert [i["n"] for i in desc] == [3, 2, 1]

    def test_default_sort_is_newest_first(self) -> None:
        items = [{"id": "a", "t": 1}, {"id": "b", "t": 3}, {"id": "c", "t": None}]
        result = paginate(items, None, default_sort="t")
        assert [i["id"] for i in result] == ["b", "a", "c"]


class TestRepository:
    async def test_last_entity_wins_in_batch(self, storage: InMemoryStorage) -> None:
        await storage.contacts.upsert_many(
            [{"id": ALICE, "name": "old"}, {"id": ALICE, "name": "new"}]
        )
        contact = await storage.contacts.get_by_id(ALICE)
        assert contact == {"id": ALICE, "name": "new"}

    async def test_reads_are_copies(self, storage: InMemoryStorage) -> None:
        await storage.contacts.save({"id": ALICE, "name": "Alice"})
        contact = await storage.contacts.get_by_id(ALICE)
        assert contact is not None
        contact["name"] = "changed"
        assert (await storage.contacts.get_by_id(ALICE)) == {"id": ALICE, "name": "Alice"}

    async def test_get_by_ids_reports_missing(self, storage: InMemoryStorage) -> None:
        await storage.labels.save({"id": "1", "name": "New"})
        found = await storage.labels.get_by_ids(["1", "2"])
        assert found["2"] is None
        assert [label["id"] for label in await storage.labels.get_all_by_ids(["1", "2"])] == ["1"]

    async def test_build_storage(self) -> None:
        assert isinstance(build_storage(StoreKind.MEMORY), InMemoryStorage)


class TestChats:
    async def test_only_active_chats_newest_first(self, storage: InMemoryStorage) -> None:
        await storage.chats.upsert_many(
            [
                {"id": ALICE, "conversationTimestamp": 10},
                {"id": BOB, "conversationTimestamp": 20},
                {"id": "333@s.whatsapp.net"},
                {"id": "status@broadcast", "conversationTimestamp": 30},
            ]
        )
        chats = await storage.chats.get_all_with_messages()
        assert [c["id"] for c in chats] == [BOB, ALICE]
        with_broadcast = await storage.chats.get_all_with_messages(broadcast=True)
        assert with_broadcast[0]["id"] == "status@broadcast"


class TestMessages:
    async def test_unique_per_chat_and_id(self, storage: InMemoryStorage) -> None:
        await storage.messages.upsert_many(
            [text_message(ALICE, "AAA", "one"), text_message(BOB, "AAA", "two")]
        )
        first = await storage.messages.get_by_jid_by_id(ALICE, "AAA")
        second = await storage.messages.get_by_jid_by_id(BOB, "AAA")
        assert first is not None and second is not None
        assert first["message"]["conversation"] == "one"
        assert second["message"]["conversation"] == "two"

    async def test_filters(self, storage: InMemoryStorage) -> None:
        await storage.messages.upsert_many(
            [
                text_message(ALICE, "OLD", timestamp=100, status=3),
                text_message(ALICE, "READ", timestamp=200, status=4),
                text_message(ALICE, "NEW", timestamp=300, status=2),
                text_message(ALICE, "MINE", timestamp=400, from_me=True, status=2),
            ]
        )
        unread = await storage.messages.get_all_by_jid(
            ALICE,
            GetChatMessagesFilter(from_me=False, ack_lte=MessageAck.DEVICE, timestamp_gte=150),
        )
        assert [m["key"]["id"] for m in unread] == ["NEW"]

        latest = await storage.messages.get_all_by_jid(ALICE, None, Pagination(limit=2))
        assert [m["key"]["id"] for m in latest] == ["MINE", "NEW"]

    async def test_delete(self, storage: InMemoryStorage) -> None:
        await storage.messages.upsert_many(
            [text_message(ALICE, "A"), text_message(ALICE, "B"), text_message(BOB, "C")]
        )
        await storage.messages.delete_by_jid_by_ids(ALICE, ["A"])
        assert await storage.messages.get_by_jid_by_id(ALICE, "A") is None
        await storage.messages.delete_all_by_jid(ALICE)
        assert await storage.messages.get_all_by_jid(ALICE) == []
        assert await storage.messages.get_by_id("C") is not None


class TestLabelAssociations:
    async def test_lookup_and_delete(self, storage: InMemoryStorage) -> None:
        repo = storage.label_associations
        await repo.save({"type": "label_jid", "labelId": "1", "chatId": ALICE})
        await repo.save({"type": "label_jid", "labelId": "1", "chatId": BOB})
        await repo.save({"type": "label_jid", "labelId": "2", "chatId": ALICE})

        assert len(await repo.get_associations_by_label_id("1")) == 2
        assert len(await repo.get_associations_by_chat_id(ALICE)) == 2

        await repo.delete_one({"labelId": "1", "chatId": BOB})
        assert len(await repo.get_associations_by_label_id("1")) == 1

        await repo.delete_by_label_id("1")
        assert await repo.get_associations_by_chat_id(ALICE) == [
            {"type": "label_jid", "labelId": "2", "chatId": ALICE}
        ]
