"""Repository contracts for the materialized store.

Entities are engine JSON documents (plain dicts).  Implement these ABCs to
plug in a storage backend; the library ships with ``InMemoryStorage``.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

from wakit.models.chats import GetChatMessagesFilter, Pagination

logger = logging.getLogger("wakit.store")

Entity = dict[str, Any]


class Repository(ABC):
    """Uniform CRUD + pagination over one entity kind."""

    UPSERT_BATCH_SIZE = 100

    def entity_id(self, entity: Entity) -> str:
        return entity["id"]

    async def save(self, entity: Entity) -> None:
        await self.upsert_one(entity)

    async def upsert_one(self, entity: Entity) -> None:
        await self.upsert_many([entity])

    async def upsert_many(self, entities: list[Entity]) -> None:
        """Insert or replace *entities* in batches.

        Within a batch the last entity for a given id wins.
        """
        batch_size = self.UPSERT_BATCH_SIZE
        for start in range(0, len(entities), batch_size):
            batch = entities[start : start + batch_size]
            unique: dict[str, Entity] = {}
            for entity in batch:
                unique[self.entity_id(entity)] = entity
            if len(unique) != len(batch):
                logger.warning(
                    "Duplicated entities in upsert batch",
                    extra={"repository": type(self).__name__, "size": len(batch)},
                )
            await self._upsert_batch(list(unique.values()))

    @abstractmethod
    async def _upsert_batch(self, entities: list[Entity]) -> None: ...

    @abstractmethod
    async def get_by_id(self, id: str) -> Entity | None: ...

    @abstractmethod
    async def get_by_ids(self, ids: list[str]) -> dict[str, Entity | None]:
        """Map every requested id to its entity, or ``None`` when missing."""
        ...

    async def get_all_by_ids(self, ids: list[str]) -> list[Entity]:
        found = await self.get_by_ids(ids)
        return [entity for entity in found.values() if entity is not None]

    @abstractmethod
    async def get_all(self, pagination: Pagination | None = None) -> list[Entity]: ...

    @abstractmethod
    async def delete_by_id(self, id: str) -> None: ...

    @abstractmethod
    async def delete_all(self) -> None: ...


class ChatRepository(Repository):
    @abstractmethod
    async def get_all_with_messages(
        self, pagination: Pagination | None = None, broadcast: bool = False
    ) -> list[Entity]:
        """Chats that saw activity; broadcast and status chats only when *broadcast*."""
        ...


class MessagesRepository(Repository):
    """Messages are unique per ``(chat jid, message id)``."""

    def entity_id(self, entity: Entity) -> str:
        key = entity["key"]
        return f"{key['remoteJid']}_{key['id']}"

    @abstractmethod
    async def get_by_jid_by_id(self, jid: str, id: str) -> Entity | None: ...

    @abstractmethod
    async def get_all_by_jid(
        self,
        jid: str,
        filter: GetChatMessagesFilter | None = None,
        pagination: Pagination | None = None,
    ) -> list[Entity]: ...

    @abstractmethod
    async def delete_by_jid_by_ids(self, jid: str, ids: list[str]) -> None: ...

    @abstractmethod
    async def delete_all_by_jid(self, jid: str) -> None: ...


class LabelAssociationRepository(Repository):
    """Label associations, unique per ``(type, label, chat)``."""

    def entity_id(self, entity: Entity) -> str:
        return f"{entity.get('type', 'label_jid')}_{entity['labelId']}_{entity['chatId']}"

    @abstractmethod
    async def get_associations_by_label_id(self, label_id: str) -> list[Entity]: ...

    @abstractmethod
    async def get_associations_by_chat_id(self, chat_id: str) -> list[Entity]: ...

    @abstractmethod
    async def delete_by_label_id(self, label_id: str) -> None: ...

    async def delete_one(self, association: Entity) -> None:
        await self.delete_by_id(self.entity_id(association))


class Storage(ABC):
    """The set of repositories backing one session store."""

    @abstractmethod
    async def init(self) -> None: ...

    @abstractmethod
    async def close(self) -> None: ...

    @property
    @abstractmethod
    def chats(self) -> ChatRepository: ...

    @property
    @abstractmethod
    def contacts(self) -> Repository: ...

    @property
    @abstractmethod
    def groups(self) -> Repository: ...

    @property
    @abstractmethod
    def messages(self) -> MessagesRepository: ...

    @property
    @abstractmethod
    def labels(self) -> Repository: ...

    @property
    @abstractmethod
    def label_associations(self) -> LabelAssociationRepository: ...
