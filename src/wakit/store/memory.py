"""In-memory implementation of the store repositories."""

from __future__ import annotations

import copy
from typing import Any

from wakit.core.acks import status_to_ack
from wakit.core.jids import is_jid_broadcast
from wakit.models.chats import GetChatMessagesFilter, Pagination
from wakit.models.enums import SortOrder
from wakit.store.base import (
    ChatRepository,
    Entity,
    LabelAssociationRepository,
    MessagesRepository,
    Repository,
    Storage,
)


def _field(entity: Entity, path: str) -> Any:
    value: Any = entity
    for part in path.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def _sort_key(path: str):
    def key(entity: Entity) -> tuple[bool, Any]:
        value = _field(entity, path)
        return (value is not None, value if value is not None else 0)

    return key


def paginate(
    entities: list[Entity],
    pagination: Pagination | None,
    default_sort: str | None = None,
) -> list[Entity]:
    """Sort and slice *entities* the way a SQL backend would."""
    pagination = pagination or Pagination()
    sort_by = pagination.sort_by or default_sort
    if sort_by:
        # Default sorts are newest first
        order = pagination.sort_order or (SortOrder.DESC if default_sort else SortOrder.ASC)
        entities = sorted(entities, key=_sort_key(sort_by), reverse=order == SortOrder.DESC)
    offset = pagination.offset or 0
    if pagination.limit is not None:
        return entities[offset : offset + pagination.limit]
    return entities[offset:]


class InMemoryRepository(Repository):
    """Dict-backed repository; reads return copies."""

    def __init__(self) -> None:
        self._items: dict[str, Entity] = {}

    async def _upsert_batch(self, entities: list[Entity]) -> None:
        for entity in entities:
            self._items[self.entity_id(entity)] = copy.deepcopy(entity)

    async def get_by_id(self, id: str) -> Entity | None:
        entity = self._items.get(id)
        return copy.deepcopy(entity) if entity is not None else None

    async def get_by_ids(self, ids: list[str]) -> dict[str, Entity | None]:
        return {id: await self.get_by_id(id) for id in ids}

    async def get_all(self, pagination: Pagination | None = None) -> list[Entity]:
        return paginate([copy.deepcopy(e) for e in self._items.values()], pagination)

    async def delete_by_id(self, id: str) -> None:
        self._items.pop(id, None)

    async def delete_all(self) -> None:
        self._items.clear()


class InMemoryChatRepository(InMemoryRepository, ChatRepository):
    async def get_all_with_messages(
        self, pagination: Pagination | None = None, broadcast: bool = False
    ) -> list[Entity]:
        chats = [
            copy.deepcopy(chat)
            for chat in self._items.values()
            if chat.get("conversationTimestamp") and (broadcast or not is_jid_broadcast(chat["id"]))
        ]
        return paginate(chats, pagination, default_sort="conversationTimestamp")


class InMemoryMessagesRepository(InMemoryRepository, MessagesRepository):
    """Messages keyed by ``{remoteJid}_{id}``."""

    async def get_by_id(self, id: str) -> Entity | None:
        entity = self._items.get(id)
        if entity is None:
            # Bare engine id without its chat
            entity = next((m for m in self._items.values() if m["key"]["id"] == id), None)
        return copy.deepcopy(entity) if entity is not None else None

    async def get_by_jid_by_id(self, jid: str, id: str) -> Entity | None:
        entity = self._items.get(f"{jid}_{id}")
        return copy.deepcopy(entity) if entity is not None else None

    async def get_all_by_jid(
        self,
        jid: str,
        filter: GetChatMessagesFilter | None = None,
        pagination: Pagination | None = None,
    ) -> list[Entity]:
        messages = [
            copy.deepcopy(m)
            for m in self._items.values()
            if m["key"]["remoteJid"] == jid and _matches(m, filter)
        ]
        return paginate(messages, pagination, default_sort="messageTimestamp")

    async def delete_by_jid_by_ids(self, jid: str, ids: list[str]) -> None:
        for id in ids:
            self._items.pop(f"{jid}_{id}", None)

    async def delete_all_by_jid(self, jid: str) -> None:
        for key in [k for k, m in self._items.items() if m["key"]["remoteJid"] == jid]:
            del self._items[key]


def _matches(message: Entity, filter: GetChatMessagesFilter | None) -> bool:
    if filter is None:
        return True
    timestamp = int(message.get("messageTimestamp") or 0)
    if filter.timestamp_gte is not None and timestamp < filter.timestamp_gte:
        return False
    if filter.timestamp_lte is not None and timestamp > filter.timestamp_lte:
        return False
    if filter.from_me is not None and bool(message["key"].get("fromMe")) != filter.from_me:
        return False
    if filter.ack_lte is not None:
        status = message.get("status")
        if status is None or status_to_ack(status) > filter.ack_lte:
            return False
    return True


class InMemoryLabelAssociationRepository(InMemoryRepository, LabelAssociationRepository):
    async def get_associations_by_label_id(self, label_id: str) -> list[Entity]:
        return [copy.deepcopy(a) for a in self._items.values() if a["labelId"] == label_id]

    async def get_associations_by_chat_id(self, chat_id: str) -> list[Entity]:
        return [copy.deepcopy(a) for a in self._items.values() if a["chatId"] == chat_id]

    async def delete_by_label_id(self, label_id: str) -> None:
        for key in [k for k, a in self._items.items() if a["labelId"] == label_id]:
            del self._items[key]


class InMemoryStorage(Storage):
    """Dict-based storage for development, testing and store-less sessions."""

    def __init__(self) -> None:
        self._chats = InMemoryChatRepository()
        self._contacts = InMemoryRepository()
        self._groups = InMemoryRepository()
        self._messages = InMemoryMessagesRepository()
        self._labels = InMemoryRepository()
        self._label_associations = InMemoryLabelAssociationRepository()

    async def init(self) -> None:
        pass

    async def close(self) -> None:
        pass

    @property
    def chats(self) -> InMemoryChatRepository:
        return self._chats

    @property
    def contacts(self) -> InMemoryRepository:
        return self._contacts

    @property
    def groups(self) -> InMemoryRepository:
        return self._groups

    @property
    def messages(self) -> InMemoryMessagesRepository:
        return self._messages

    @property
    def labels(self) -> InMemoryRepository:
        return self._labels

    @property
    def label_associations(self) -> InMemoryLabelAssociationRepository:
        return self._label_associations
