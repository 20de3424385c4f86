"""Materialized view of one NOWEB session, built from socket events.

Every handler takes the named lock of the entity kind it mutates, so
deliveries of one kind apply in arrival order while kinds run in parallel.
References to unknown entities are logged and dropped.
"""

from __future__ import annotations

import logging
import time
from collections import defaultdict
from typing import Any

from wakit.core.emitter import AsyncEventEmitter
from wakit.core.jids import are_jids_same_user
from wakit.core.locks import NamedLockManager
from wakit.core.status import wait_until
from wakit.engines.noweb.content import (
    is_real_message,
    to_int,
    update_message_with_reaction,
    update_message_with_receipt,
)
from wakit.engines.noweb.socket import SocketClient
from wakit.models.chats import GetChatMessagesFilter, Pagination
from wakit.store.base import Entity, Storage

logger = logging.getLogger("wakit.noweb.store")

GROUPS_CACHE_SECONDS = 24 * 60 * 60
GROUPS_WAIT_INTERVAL_SECONDS = 0.1
GROUPS_WAIT_TIMEOUT_SECONDS = 5.0
CHAT_ASSOCIATION = "label_jid"
_UPSERT_TYPES = ("notify", "append")


class NowebStore:
    """Store fed by one socket at a time; ``bind`` attaches the next one."""

    def __init__(self, storage: Storage, session: str) -> None:
        self.storage = storage
        self.session = session
        self.locks = NamedLockManager()
        self.presences: dict[str, dict[str, dict[str, Any]]] = {}
        self.sock: SocketClient | None = None
        self._group_updates = 0
        self._groups_fetched_at: float | None = None

    @property
    def _extra(self) -> dict[str, Any]:
        return {"session": self.session}

    @property
    def me_id(self) -> str | None:
        me = self.sock.me if self.sock else None
        return me.get("id") if me else None

    async def init(self) -> None:
        await self.storage.init()

    async def close(self) -> None:
        await self.storage.close()

    def bind(self, ev: AsyncEventEmitter, sock: SocketClient) -> None:
        self.sock = sock
        ev.on("messaging-history.set", self.on_history_set)
        ev.on("messages.upsert", self.on_messages_upsert)
        ev.on("messages.update", self.on_messages_update)
        ev.on("messages.delete", self.on_messages_delete)
        ev.on("messages.reaction", self.on_messages_reaction)
        ev.on("message-receipt.update", self.on_message_receipt_update)
        ev.on("chats.upsert", self.on_chats_upsert)
        ev.on("chats.update", self.on_chats_update)
        ev.on("chats.delete", self.on_chats_delete)
        ev.on("contacts.upsert", self.on_contacts_upsert)
        ev.on("contacts.update", self.on_contacts_update)
        ev.on("groups.upsert", self.on_groups_upsert)
        ev.on("groups.update", self.on_groups_update)
        ev.on("group-participants.update", self.on_group_participants_update)
        ev.on("labels.edit", self.on_labels_edit)
        ev.on("labels.association", self.on_labels_association)
        ev.on("presence.update", self.on_presence_update)

    # -- history -----------------------------------------------------------

    async def on_history_set(self, data: dict[str, Any]) -> None:
        if data.get("isLatest"):
            logger.info("Got the latest history, clearing the store", extra=self._extra)
            async with self.locks.locked("contacts"):
                await self.storage.contacts.delete_all()
            async with self.locks.locked("chats"):
                await self.storage.chats.delete_all()
            async with self.locks.locked("messages"):
                await self.storage.messages.delete_all()

        await self.on_contacts_upsert(data.get("contacts") or [])
        await self.on_chats_upsert(data.get("chats") or [])
        me_id = self.me_id
        messages = [m for m in data.get("messages") or [] if is_real_message(m, me_id)]
        async with self.locks.locked("messages"):
            await self.storage.messages.upsert_many(messages)
        logger.debug(
            "History synced: %d chats, %d contacts, %d messages",
            len(data.get("chats") or []),
            len(data.get("contacts") or []),
            len(messages),
            extra=self._extra,
        )

    # -- messages ----------------------------------------------------------

    async def on_messages_upsert(self, data: dict[str, Any]) -> None:
        if data.get("type") not in _UPSERT_TYPES:
            return
        me_id = self.me_id
        messages = [m for m in data.get("messages") or [] if is_real_message(m, me_id)]
        if not messages:
            return
        async with self.locks.locked("messages"):
            await self.storage.messages.upsert_many(messages)

    async def on_messages_update(self, updates: list[dict[str, Any]]) -> None:
        async with self.locks.locked("messages"):
            for item in updates:
                await self._apply_message_update(item["key"], dict(item.get("update") or {}))

    async def _apply_message_update(self, key: dict[str, Any], update: dict[str, Any]) -> None:
        repository = self.storage.messages
        message = await repository.get_by_jid_by_id(key["remoteJid"], key["id"])
        if message is None:
            logger.warning(
                "Got update for non-existent message %s", key["id"], extra=self._extra
            )
            return

        update.pop("key", None)
        status = update.get("status")
        current = message.get("status")
        if status is not None and current is not None and status <= current:
            logger.debug(
                "Message %s already has status %s, skipping %s",
                key["id"],
                current,
                status,
                extra=self._extra,
            )
            del update["status"]
        if not update:
            return

        message.update(update)
        if is_real_message(message, self.me_id):
            await repository.save(message)
        else:
            await repository.delete_by_jid_by_ids(key["remoteJid"], [key["id"]])

    async def on_messages_delete(self, data: dict[str, Any]) -> None:
        async with self.locks.locked("messages"):
            if data.get("all"):
                await self.storage.messages.delete_all_by_jid(data["jid"])
                return
            by_jid: defaultdict[str, list[str]] = defaultdict(list)
            for key in data.get("keys") or []:
                by_jid[key["remoteJid"]].append(key["id"])
            for jid, ids in by_jid.items():
                await self.storage.messages.delete_by_jid_by_ids(jid, ids)

    async def on_messages_reaction(self, reactions: list[dict[str, Any]]) -> None:
        async with self.locks.locked("messages"):
            for item in reactions:
                key = item["key"]
                message = await self.storage.messages.get_by_jid_by_id(key["remoteJid"], key["id"])
                if message is None:
                    logger.warning(
                        "Got reaction for non-existent message %s", key["id"], extra=self._extra
                    )
                    continue
                update_message_with_reaction(message, item["reaction"])
                await self.storage.messages.save(message)

    async def on_message_receipt_update(self, receipts: list[dict[str, Any]]) -> None:
        async with self.locks.locked("messages"):
            for item in receipts:
                key = item["key"]
                message = await self.storage.messages.get_by_jid_by_id(key["remoteJid"], key["id"])
                if message is None:
                    logger.warning(
                        "Got receipt for non-existent message %s", key["id"], extra=self._extra
                    )
                    continue
                update_message_with_receipt(message, item["receipt"])
                await self.storage.messages.save(message)

    # -- chats -------------------------------------------------------------

    @staticmethod
    def _chat_entity(chat: dict[str, Any]) -> Entity:
        entity = {k: v for k, v in chat.items() if k != "messages"}
        if "conversationTimestamp" in entity:
            entity["conversationTimestamp"] = to_int(entity["conversationTimestamp"])
        return entity

    async def on_chats_upsert(self, chats: list[dict[str, Any]]) -> None:
        if not chats:
            return
        async with self.locks.locked("chats"):
            await self.storage.chats.upsert_many([self._chat_entity(c) for c in chats])

    async def on_chats_update(self, updates: list[dict[str, Any]]) -> None:
        async with self.locks.locked("chats"):
            for update in updates:
                chat = await self.storage.chats.get_by_id(update["id"]) or {}
                chat.update(self._chat_entity(update))
                await self.storage.chats.save(chat)

    async def on_chats_delete(self, ids: list[str]) -> None:
        async with self.locks.locked("chats"):
            for id in ids:
                await self.storage.chats.delete_by_id(id)
        async with self.locks.locked("messages"):
            for id in ids:
                await self.storage.messages.delete_all_by_jid(id)

    # -- contacts ----------------------------------------------------------

    async def on_contacts_upsert(self, contacts: list[dict[str, Any]]) -> None:
        if not contacts:
            return
        async with self.locks.locked("contacts"):
            entities = []
            for contact in contacts:
                existing = await self.storage.contacts.get_by_id(contact["id"]) or {}
                existing.update({k: v for k, v in contact.items() if v is not None})
                entities.append(existing)
            await self.storage.contacts.upsert_many(entities)

    async def on_contacts_update(self, updates: list[dict[str, Any]]) -> None:
        async with self.locks.locked("contacts"):
            for update in updates:
                contact = await self.storage.contacts.get_by_id(update["id"])
                if contact is None:
                    logger.warning(
                        "Got update for non-existent contact %s", update["id"], extra=self._extra
                    )
                    continue
                update = dict(update)
                img_url = update.get("imgUrl")
                if img_url == "changed":
                    update["imgUrl"] = await self._fetch_picture(update["id"])
                elif img_url == "removed":
                    update.pop("imgUrl")
                    contact.pop("imgUrl", None)
                contact.update(update)
                await self.storage.contacts.save(contact)

    async def _fetch_picture(self, jid: str) -> str | None:
        if self.sock is None:
            return None
        try:
            return await self.sock.profile_picture_url(jid)
        except Exception:
            logger.debug("Failed to refresh picture of %s", jid, exc_info=True, extra=self._extra)
            return None

    # -- groups ------------------------------------------------------------

    async def on_groups_upsert(self, groups: list[dict[str, Any]]) -> None:
        async with self.locks.locked("groups"):
            await self.storage.groups.upsert_many(groups)
            self._group_updates += 1

    async def on_groups_update(self, updates: list[dict[str, Any]]) -> None:
        async with self.locks.locked("groups"):
            for update in updates:
                group = await self.storage.groups.get_by_id(update["id"]) or {}
                group.update(update)
                await self.storage.groups.save(group)
            self._group_updates += 1

    async def on_group_participants_update(self, data: dict[str, Any]) -> None:
        group_id = data["id"]
        action = data.get("action")
        participants = data.get("participants") or []
        async with self.locks.locked(f"group-{group_id}"):
            me_id = self.me_id
            if action == "remove" and any(are_jids_same_user(p, me_id) for p in participants):
                logger.info("Left group %s, removing it", group_id, extra=self._extra)
                await self.storage.groups.delete_by_id(group_id)
                return

            group = await self.storage.groups.get_by_id(group_id) or {"id": group_id}
            by_id = {p["id"]: p for p in group.get("participants") or []}
            for participant in participants:
                if action == "remove":
                    by_id.pop(participant, None)
                    continue
                entry = by_id.setdefault(participant, {"id": participant, "admin": None})
                if action == "promote":
                    entry["admin"] = "admin"
                elif action == "demote":
                    entry["admin"] = None
            group["participants"] = list(by_id.values())
            await self.storage.groups.save(group)

    async def get_groups(self, pagination: Pagination | None = None) -> list[Entity]:
        await self._refresh_groups(force=False)
        return await self.storage.groups.get_all(pagination)

    async def get_group_by_id(self, group_id: str) -> Entity | None:
        return await self.storage.groups.get_by_id(group_id)

    async def reset_groups_cache(self) -> None:
        await self._refresh_groups(force=True)

    async def _refresh_groups(self, force: bool) -> None:
        async with self.locks.locked("groups-fetch"):
            fetched_at = self._groups_fetched_at
            if not force and fetched_at and time.monotonic() - fetched_at < GROUPS_CACHE_SECONDS:
                return
            await self._fetch_groups()

    async def _fetch_groups(self) -> None:
        if self.sock is None:
            return
        seen = self._group_updates
        async with self.locks.locked("groups"):
            await self.storage.groups.delete_all()
        await self.sock.group_fetch_all_participating()
        landed = await wait_until(
            lambda: self._group_updates > seen,
            GROUPS_WAIT_INTERVAL_SECONDS,
            GROUPS_WAIT_TIMEOUT_SECONDS,
        )
        if not landed:
            logger.warning("Groups update did not arrive in time", extra=self._extra)
        self._groups_fetched_at = time.monotonic()

    # -- labels ------------------------------------------------------------

    async def on_labels_edit(self, label: dict[str, Any]) -> None:
        async with self.locks.locked("labels"):
            if label.get("deleted"):
                await self.storage.labels.delete_by_id(label["id"])
                await self.storage.label_associations.delete_by_label_id(label["id"])
                return
            await self.storage.labels.save(label)

    async def on_labels_association(self, data: dict[str, Any]) -> None:
        association = data["association"]
        if association.get("type", CHAT_ASSOCIATION) != CHAT_ASSOCIATION:
            return
        async with self.locks.locked("labels"):
            repository = self.storage.label_associations
            if data.get("type") == "remove":
                await repository.delete_one(association)
            else:
                await repository.save(association)

    async def get_labels(self) -> list[Entity]:
        return await self.storage.labels.get_all()

    async def get_label_by_id(self, label_id: str) -> Entity | None:
        return await self.storage.labels.get_by_id(label_id)

    async def get_chats_by_label_id(self, label_id: str) -> list[Entity]:
        associations = await self.storage.label_associations.get_associations_by_label_id(label_id)
        return await self.storage.chats.get_all_by_ids([a["chatId"] for a in associations])

    async def get_chat_labels(self, chat_id: str) -> list[Entity]:
        associations = await self.storage.label_associations.get_associations_by_chat_id(chat_id)
        return await self.storage.labels.get_all_by_ids([a["labelId"] for a in associations])

    # -- presence ----------------------------------------------------------

    def on_presence_update(self, data: dict[str, Any]) -> None:
        chat = self.presences.setdefault(data["id"], {})
        for participant, presence in (data.get("presences") or {}).items():
            chat[participant] = {**chat.get(participant, {}), **presence}

    # -- queries -----------------------------------------------------------

    async def load_message(self, jid: str, id: str) -> Entity | None:
        return await self.storage.messages.get_by_jid_by_id(jid, id)

    async def get_messages_by_jid(
        self,
        jid: str,
        filter: GetChatMessagesFilter | None = None,
        pagination: Pagination | None = None,
    ) -> list[Entity]:
        return await self.storage.messages.get_all_by_jid(jid, filter, pagination)

    async def get_chats(
        self, pagination: Pagination | None = None, broadcast: bool = False
    ) -> list[Entity]:
        return await self.storage.chats.get_all_with_messages(pagination, broadcast)

    async def get_chat(self, jid: str) -> Entity | None:
        return await self.storage.chats.get_by_id(jid)

    async def get_contacts(self, pagination: Pagination | None = None) -> list[Entity]:
        return await self.storage.contacts.get_all(pagination)

    async def get_contact_by_id(self, jid: str) -> Entity | None:
        return await self.storage.contacts.get_by_id(jid)
