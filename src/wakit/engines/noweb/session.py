"""NOWEB engine session: a headless socket client behind the session contract.

The session owns one ``SocketClient`` per connection attempt.  On every
(re)connect it rebuilds the listeners on the new socket: payload fixes
first, then the materialized store, the connection state machine and the
event bus producers.  Bus subscribers are untouched by a reconnect.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import random
import time
from collections.abc import AsyncIterator, Callable
from typing import Any

from pydantic import BaseModel

from wakit.core.acks import MessageAck, ack_to_status
from wakit.core.emitter import AsyncEventEmitter
from wakit.core.errors import (
    GroupNotFoundError,
    MessageNotFoundError,
    NotSupportedByEngineError,
    PreconditionFailedError,
    RequiresHigherTierError,
    SessionStatusError,
    TransientEngineError,
)
from wakit.core.ids import build_message_id, extract_message_keys_for_read, parse_message_id
from wakit.core.jids import (
    STATUS_BROADCAST,
    is_jid_broadcast,
    is_jid_group,
    is_jid_newsletter,
    is_jid_user,
    jid_normalized_user,
    parse_channel_invite_link,
    to_native_address,
    to_public_chat_id,
)
from wakit.core.jobs import SingleDelayedJobRunner, SinglePeriodicJobRunner
from wakit.core.retry import retry_with_backoff
from wakit.core.session import SessionParams, WhatsappSession
from wakit.core.status import wait_until
from wakit.core.streams import afilter, aflatten, amap, amerge, distinct_acks
from wakit.engines.noweb.content import (
    EPHEMERAL_SYNC_RESPONSE,
    REVOKE,
    get_content_type,
    is_real_message,
    normalize_message_content,
    protocol_message_type,
)
from wakit.engines.noweb.events import (
    TO_ENGINE_PRESENCE,
    calls_with_status,
    is_revoke,
    poll_vote_failed_payload,
    poll_vote_payload,
    receipt_to_ack_body,
    rejected_calls,
    to_chat_presences,
    to_label,
    to_reaction,
    to_wa_contact,
    update_to_ack_body,
)
from wakit.engines.noweb.groups import (
    group_join_events,
    group_leave_event,
    group_participants_event,
    group_update_events,
    to_channel,
)
from wakit.engines.noweb.messages import NowebMediaProcessor, to_wa_message
from wakit.engines.noweb.socket import DisconnectReason, SocketClient
from wakit.engines.noweb.store import CHAT_ASSOCIATION, NowebStore
from wakit.models.channels import (
    Channel,
    ChannelSearchByText,
    ChannelSearchByView,
    CreateChannelRequest,
    ListChannelsQuery,
)
from wakit.models.chats import (
    ChatSummary,
    GetChatMessagesFilter,
    GetChatMessagesQuery,
    Pagination,
    ReadChatMessagesQuery,
    ReadChatMessagesResponse,
)
from wakit.models.enums import Engine, PresenceStatus, SessionStatus, WAEvent
from wakit.models.groups import (
    CreateGroupRequest,
    ParticipantsRequest,
    SettingsSecurityChangeInfo,
)
from wakit.models.labels import Label, LabelBody, LabelChatAssociation
from wakit.models.messages import PollVotePayload, WAMessage, WAMessageRevokedBody
from wakit.models.presence import ChatPresences
from wakit.models.requests import (
    BinaryFile,
    ChatRequest,
    CheckNumberStatusQuery,
    EditMessageRequest,
    MessageContactVcardRequest,
    MessageFileRequest,
    MessageForwardRequest,
    MessageImageRequest,
    MessageLinkPreviewRequest,
    MessageLocationRequest,
    MessagePollRequest,
    MessageReactionRequest,
    MessageReplyRequest,
    MessageStarRequest,
    MessageTextRequest,
    MessageVideoRequest,
    MessageVoiceRequest,
    RemoteFile,
    SendSeenRequest,
    WANumberExistResult,
)
from wakit.models.session import MeInfo, PairingCodeResponse
from wakit.models.status import (
    DeleteStatusRequest,
    ImageStatus,
    StatusRequest,
    TextStatus,
    VideoStatus,
    VoiceStatus,
)
from wakit.store import Entity, Storage, StoreKind, build_storage

logger = logging.getLogger("wakit.noweb.session")

SocketFactory = Callable[["WhatsappSessionNoWebCore"], SocketClient]

SOCKET_WAIT_INTERVAL_SECONDS = 1.0
SOCKET_WAIT_TIMEOUT_SECONDS = 10.0
UNPAIR_GRACE_SECONDS = 1.0
PRESENCE_WAIT_SECONDS = 1.0
UNREAD_WINDOW_GROUP = 100
UNREAD_WINDOW_CHAT = 30
DAY_SECONDS = 24 * 60 * 60
PAIRING_CODE_CHUNK = 4
MEDIA_FEATURE = "Sending media (image, video, pdf)"

_MISSING_PICTURE_ERRORS = ("item-not-found", "not-authorized")


def _dump(model: BaseModel | None) -> dict[str, Any] | None:
    return model.model_dump(by_alias=True) if model is not None else None


def _messages_of(data: dict[str, Any]) -> list[dict[str, Any]]:
    return data.get("messages") or []


def _is_deleted_label(label: dict[str, Any]) -> bool:
    return bool(label.get("deleted"))


def _is_live_label(label: dict[str, Any]) -> bool:
    return not label.get("deleted")


class WhatsappSessionNoWebCore(WhatsappSession):
    """Session backed by a Baileys-shaped socket client."""

    engine = Engine.NOWEB

    def __init__(
        self,
        params: SessionParams,
        socket_factory: SocketFactory,
        storage: Storage | None = None,
        store_kind: StoreKind = StoreKind.MEMORY,
    ) -> None:
        super().__init__(params)
        self.socket_factory = socket_factory
        self.store = NowebStore(storage or build_storage(store_kind), self.name)
        self.sock: SocketClient | None = None
        self.should_restart = True
        self._store_ready = False
        self._processed: AsyncEventEmitter | None = None

        config = self.engine_config
        self._restart_job = SingleDelayedJobRunner(
            f"{self.name}:restart", config.start_attempt_delay_seconds
        )
        jitter = random.randint(0, config.auto_restart_jitter_seconds)
        self._auto_restart_job = SinglePeriodicJobRunner(
            f"{self.name}:auto-restart", config.auto_restart_after_seconds + jitter
        )

    # -- lifecycle -------------------------------------------------------

    async def start(self) -> None:
        self.status = SessionStatus.STARTING
        try:
            await self.build_client()
        except Exception:
            logger.exception("Failed to start the client", extra=self.log_extra)
            self.status = SessionStatus.FAILED
            self.restart_client()
            return
        if self.engine_config.auto_restart_enabled:
            self._auto_restart_job.start(self._auto_restart)

    async def build_client(self) -> None:
        self.should_restart = True
        if self.sock is not None:
            self.sock.ev.remove_all_listeners()

        await self._ensure_store()
        sock = self.socket_factory(self)
        self.sock = sock

        ev = sock.ev
        ev.on("messages.upsert", self._issue_message_update_on_edits)
        ev.on("messages.upsert", self._fix_message_upsert_status)
        ev.on("messages.upsert", self._issue_presence_update_on_message_upsert)
        self.store.bind(ev, sock)
        ev.on("connection.update", self._on_connection_update)
        self._subscribe_engine_events(sock)
        ev.on("contacts.update", self._on_contacts_update)

        await sock.connect()

    async def _ensure_store(self) -> None:
        if self._store_ready:
            return
        logger.debug("Initializing the store", extra=self.log_extra)
        await self.store.init()
        self._store_ready = True

    async def _close_store(self) -> None:
        if not self._store_ready:
            return
        await self.store.close()
        self._store_ready = False

    def restart_client(self) -> None:
        if not self.should_restart:
            logger.debug("Should not restart the client, ignoring", extra=self.log_extra)
            return
        self._restart_job.schedule(self._restart)

    async def _restart(self) -> None:
        if not self.should_restart:
            logger.warning("Should not restart the client, ignoring", extra=self.log_extra)
            return
        await self.end()
        await self.start()

    async def _auto_restart(self) -> None:
        sock = self.sock
        if sock is None:
            return
        if sock.is_connecting:
            logger.warning("Auto-restart skipped, the client is connecting", extra=self.log_extra)
            return
        logger.info("Auto-restarting the client connection", extra=self.log_extra)
        await sock.end()

    async def end(self) -> None:
        """Detach every listener and close the socket once it is not connecting."""
        self._auto_restart_job.stop()
        if self._processed is not None:
            self._processed.remove_all_listeners()
            self._processed = None
        sock = self.sock
        if sock is None:
            return
        sock.ev.remove_all_listeners()
        await wait_until(
            lambda: not sock.is_connecting,
            SOCKET_WAIT_INTERVAL_SECONDS,
            SOCKET_WAIT_TIMEOUT_SECONDS,
        )
        await sock.end()

    async def stop(self) -> None:
        self.should_restart = False
        self._restart_job.cancel()
        self._auto_restart_job.stop()
        await self._cancel_deferred()

        self.status = SessionStatus.STOPPED
        await self._finish_events()
        await self.end()
        await self._close_store()

    async def failed(self) -> None:
        self.should_restart = False
        self._restart_job.cancel()
        self._auto_restart_job.stop()

        self.status = SessionStatus.FAILED
        if self.unpairing:
            await asyncio.sleep(UNPAIR_GRACE_SECONDS)
        await self.end()
        await self._close_store()

    async def unpair(self) -> None:
        self.unpairing = True
        self.should_restart = False
        if self.sock is not None:
            await self.sock.logout()
        await self.stop()

    async def _on_connection_update(self, update: dict[str, Any]) -> None:
        connection = update.get("connection")
        if update.get("isNewLogin"):
            self.restart_client()
        elif connection == "open":
            self.qr.clear()
            self.status = SessionStatus.WORKING
            await self._resubscribe_to_known_presences()
            return
        elif connection == "close":
            self.qr.clear()
            last_disconnect = update.get("lastDisconnect") or {}
            status_code = last_disconnect.get("statusCode")
            error = last_disconnect.get("error")

            if status_code == DisconnectReason.RESTART_REQUIRED:
                self.restart_client()
                return
            if self.is_stuck_in_starting():
                logger.error(
                    "Session stuck in STARTING status, force stopping the session",
                    extra=self.log_extra,
                )
                await self.failed()
                return
            if self.status == SessionStatus.SCAN_QR_CODE:
                logger.warning(
                    "QR code has not been scanned yet, force stopping the session",
                    extra=self.log_extra,
                )
                await self.failed()
                return
            if status_code != DisconnectReason.LOGGED_OUT:
                logger.info(
                    "Connection closed due to '%s', reconnecting", error, extra=self.log_extra
                )
                self.restart_client()
                return
            logger.error(
                "Connection closed due to '%s', not reconnecting", error, extra=self.log_extra
            )
            await self.failed()
            return

        qr = update.get("qr")
        if qr:
            self.qr.save(qr)
            self.print_qr()
            self.status = SessionStatus.SCAN_QR_CODE

    async def _resubscribe_to_known_presences(self) -> None:
        for jid in list(self.store.presences):
            try:
                await self.sock.presence_subscribe(jid)  # type: ignore[union-attr]
            except Exception:
                logger.warning(
                    "Failed to resubscribe to presence of %s", jid, exc_info=True, extra=self.log_extra
                )

    # -- payload fixes -----------------------------------------------------

    def _issue_message_update_on_edits(self, data: dict[str, Any]) -> None:
        """Edits arrive as protocol messages; replay them as message updates."""
        for message in _messages_of(data):
            content = normalize_message_content(message.get("message")) or {}
            protocol = content.get("protocolMessage")
            if not protocol or not protocol.get("editedMessage"):
                continue
            key = {**message["key"], "id": protocol["key"]["id"]}
            self.sock.ev.emit(  # type: ignore[union-attr]
                "messages.update",
                [{"key": key, "update": {"message": protocol["editedMessage"]}}],
            )

    def _fix_message_upsert_status(self, data: dict[str, Any]) -> None:
        for message in _messages_of(data):
            if message.get("status") is None:
                message["status"] = ack_to_status(MessageAck.DEVICE)

    def _issue_presence_update_on_message_upsert(self, data: dict[str, Any]) -> None:
        """A delivered message ends its sender's typing."""
        me_id = self.store.me_id
        for message in _messages_of(data):
            if not is_real_message(message, me_id):
                continue
            key = message["key"]
            if key.get("fromMe"):
                continue
            jid = key["remoteJid"]
            participant = key.get("participant") or jid
            presence = self.store.presences.get(jid, {}).get(participant) or {}
            if presence.get("lastKnownPresence") != "composing":
                continue
            logger.debug(
                "Fixing presence for '%s' in '%s' since it's typing",
                participant,
                jid,
                extra=self.log_extra,
            )
            self.sock.ev.emit(  # type: ignore[union-attr]
                "presence.update",
                {"id": jid, "presences": {participant: {"lastKnownPresence": "available"}}},
            )

    def _on_contacts_update(self, updates: list[dict[str, Any]]) -> None:
        for update in updates:
            if update.get("imgUrl") not in ("changed", "removed"):
                continue
            jid = update["id"]
            logger.debug("Profile picture of %s changed", jid, extra=self.log_extra)
            self._profile_pictures.delete(jid)
            public = to_public_chat_id(jid)
            if public:
                self._profile_pictures.delete(public)

    # -- event bus producers -----------------------------------------------

    def _subscribe_engine_events(self, sock: SocketClient) -> None:
        ev = sock.ev
        bus = self.events

        # Incoming messages are processed once and shared by both message streams
        processed = AsyncEventEmitter()
        self._processed = processed

        async def process_upsert(data: dict[str, Any]) -> None:
            for message in _messages_of(data):
                wa_message = await self._process_incoming_message(message)
                if wa_message is not None:
                    processed.emit("message", wa_message)

        ev.on("messages.upsert", process_upsert)

        def upserted() -> AsyncIterator[dict[str, Any]]:
            return aflatten(amap(ev.stream("messages.upsert"), _messages_of))

        def updates() -> AsyncIterator[dict[str, Any]]:
            return aflatten(ev.stream("messages.update"))

        def receipts() -> AsyncIterator[dict[str, Any]]:
            return aflatten(ev.stream("message-receipt.update"))

        def acks() -> AsyncIterator[dict[str, Any]]:
            direct = amap(updates(), lambda item: _dump(update_to_ack_body(item)))
            groups = amap(
                receipts(), lambda item: _dump(receipt_to_ack_body(item, self.store.me_id))
            )
            return distinct_acks(amerge(afilter(direct, bool), afilter(groups, bool)))

        def calls(status: str) -> AsyncIterator[Any]:
            return aflatten(amap(ev.stream("call"), lambda batch: calls_with_status(batch, status)))

        bus.switch(WAEvent.ENGINE_EVENT, lambda: ev.stream())

        bus.switch(
            WAEvent.MESSAGE,
            lambda: afilter(processed.stream("message"), lambda message: not message.from_me),
        )
        bus.switch(WAEvent.MESSAGE_ANY, lambda: processed.stream("message"))
        bus.switch(
            WAEvent.MESSAGE_REVOKED,
            lambda: amap(afilter(upserted(), is_revoke), self._to_revoked),
        )
        bus.switch(
            WAEvent.MESSAGE_REACTION,
            lambda: amap(
                upserted(),
                lambda message: to_reaction(message, self.get_message_source(message["key"]["id"])),
            ),
        )
        bus.switch(WAEvent.MESSAGE_ACK, acks)

        bus.switch(WAEvent.STATE_CHANGE, lambda: amap(ev.stream("connection.update"), dict))
        bus.switch(WAEvent.GROUP_JOIN, lambda: amap(aflatten(ev.stream("groups.upsert")), dict))
        bus.switch(
            WAEvent.GROUP_V2_JOIN,
            lambda: aflatten(amap(ev.stream("groups.upsert"), group_join_events)),
        )
        bus.switch(
            WAEvent.GROUP_V2_UPDATE,
            lambda: aflatten(amap(ev.stream("groups.update"), group_update_events)),
        )
        bus.switch(
            WAEvent.GROUP_V2_PARTICIPANTS,
            lambda: amap(ev.stream("group-participants.update"), group_participants_event),
        )
        bus.switch(
            WAEvent.GROUP_V2_LEAVE,
            lambda: amap(
                ev.stream("group-participants.update"),
                lambda data: group_leave_event(data, self.store.me_id),
            ),
        )
        bus.switch(
            WAEvent.PRESENCE_UPDATE,
            lambda: amap(
                ev.stream("presence.update"),
                lambda data: to_chat_presences(data["id"], data.get("presences") or {}),
            ),
        )

        bus.switch(WAEvent.POLL_VOTE, lambda: amap(updates(), self._poll_vote))
        bus.switch(WAEvent.POLL_VOTE_FAILED, lambda: amap(upserted(), self._poll_vote_failed))

        bus.switch(WAEvent.CALL_RECEIVED, lambda: calls("offer"))
        bus.switch(WAEvent.CALL_ACCEPTED, lambda: calls("accept"))
        bus.switch(
            WAEvent.CALL_REJECTED, lambda: aflatten(amap(ev.stream("call"), rejected_calls))
        )

        bus.switch(
            WAEvent.LABEL_UPSERT,
            lambda: amap(afilter(ev.stream("labels.edit"), _is_live_label), to_label),
        )
        bus.switch(
            WAEvent.LABEL_DELETED,
            lambda: amap(afilter(ev.stream("labels.edit"), _is_deleted_label), to_label),
        )
        bus.switch(
            WAEvent.LABEL_CHAT_ADDED,
            lambda: amap(
                ev.stream("labels.association"),
                lambda data: self._label_chat_association(data, "add"),
            ),
        )
        bus.switch(
            WAEvent.LABEL_CHAT_DELETED,
            lambda: amap(
                ev.stream("labels.association"),
                lambda data: self._label_chat_association(data, "remove"),
            ),
        )

    async def _process_incoming_message(
        self, message: dict[str, Any], download_media: bool = True
    ) -> WAMessage | None:
        content = message.get("message")
        if not content:
            return None
        if content.get("reactionMessage") or content.get("pollUpdateMessage"):
            return None
        if (content.get("call") or {}).get("callKey"):
            return None
        if protocol_message_type(message) in (REVOKE, EPHEMERAL_SYNC_RESPONSE):
            return None
        if not get_content_type(normalize_message_content(content)):
            if content.get("senderKeyDistributionMessage"):
                return None

        media = None
        if download_media and self.media_manager is not None and self.sock is not None:
            media = await self.media_manager.process_media(
                NowebMediaProcessor(self.sock), message, self.name
            )
        try:
            return to_wa_message(message, self.get_message_source(message["key"]["id"]), media)
        except Exception:
            logger.exception("Failed to process incoming message", extra=self.log_extra)
            return None

    def _to_revoked(self, message: dict[str, Any]) -> WAMessageRevokedBody:
        after = to_wa_message(message, self.get_message_source(message["key"]["id"]))
        return WAMessageRevokedBody(after=after, before=None, raw=message)

    async def _poll_vote(self, item: dict[str, Any]) -> PollVotePayload | None:
        poll_updates = (item.get("update") or {}).get("pollUpdates")
        if not poll_updates:
            return None
        key = item["key"]
        poll_message = await self.store.load_message(key["remoteJid"], key["id"])
        return poll_vote_payload(key, poll_message, poll_updates[0], self.store.me_id)

    async def _poll_vote_failed(self, message: dict[str, Any]) -> PollVotePayload | None:
        poll_update = (message.get("message") or {}).get("pollUpdateMessage")
        if not poll_update:
            return None
        poll_key = poll_update["pollCreationMessageKey"]
        if await self.store.load_message(poll_key["remoteJid"], poll_key["id"]):
            # The engine follows up with a decrypted messages.update
            return None
        return poll_vote_failed_payload(message, self.store.me_id)

    async def _label_chat_association(
        self, data: dict[str, Any], action: str
    ) -> LabelChatAssociation | None:
        association = data.get("association") or {}
        if data.get("type") != action or association.get("type") != CHAT_ASSOCIATION:
            return None
        stored = await self.store.get_label_by_id(association["labelId"])
        return LabelChatAssociation(
            label_id=association["labelId"],
            chat_id=to_public_chat_id(association["chatId"]) or association["chatId"],
            label=to_label(stored) if stored else None,
        )

    # -- auth and info -------------------------------------------------------

    def get_session_me_info(self) -> MeInfo | None:
        me = self.sock.me if self.sock is not None else None
        if not me or not me.get("id"):
            return None
        return MeInfo(
            id=to_public_chat_id(jid_normalized_user(me["id"])) or me["id"],
            push_name=me.get("name"),
        )

    def get_engine_info(self) -> dict[str, Any]:
        return {"engine": self.engine.value}

    async def request_code(
        self, phone_number: str, method: str | None = None, params: dict[str, Any] | None = None
    ) -> PairingCodeResponse:
        if method:
            raise PreconditionFailedError(
                "NOWEB engine doesn't support any 'method', remove it and try again"
            )
        if self.status == SessionStatus.STARTING and self.sock is not None:
            logger.debug("Waiting for the first QR code", extra=self.log_extra)
            await self.sock.wait_for_connection_update("qr")
        if self.status != SessionStatus.SCAN_QR_CODE:
            raise SessionStatusError(
                str(self.status),
                f"Can request code only in SCAN_QR_CODE status, the current status is {self.status}",
            )

        logger.info("Requesting pairing code for '%s'", phone_number, extra=self.log_extra)
        code = await self._socket.request_pairing_code(phone_number)
        parts = [code[i : i + PAIRING_CODE_CHUNK] for i in range(0, len(code), PAIRING_CODE_CHUNK)]
        return PairingCodeResponse(code="-".join(parts))

    async def get_screenshot(self) -> bytes:
        match self.status:
            case SessionStatus.STARTING:
                raise SessionStatusError(
                    str(self.status), "The session is starting, please try again after few seconds"
                )
            case SessionStatus.SCAN_QR_CODE:
                return self.qr.get_png()
            case SessionStatus.WORKING:
                raise SessionStatusError(
                    str(self.status), "Can not get screenshot for non chrome based engine"
                )
            case _:
                raise SessionStatusError(str(self.status))

    @property
    def _socket(self) -> SocketClient:
        if self.sock is None:
            raise SessionStatusError(str(self.status), "The session is not started")
        return self.sock

    def _require_store(self) -> None:
        if not self.session_config.noweb.store.enabled:
            raise PreconditionFailedError(
                "Enable NOWEB store with 'noweb.store.enabled' in the session config"
            )

    # -- profile -----------------------------------------------------------

    async def set_profile_name(self, name: str) -> bool:
        await self._socket.update_profile_name(name)
        return True

    async def set_profile_status(self, status: str) -> bool:
        await self._socket.update_profile_status(status)
        return True

    async def _set_profile_picture(self, file: RemoteFile | BinaryFile) -> None:
        raise RequiresHigherTierError("Setting a profile picture")

    async def _delete_profile_picture(self) -> None:
        raise RequiresHigherTierError("Deleting a profile picture")

    async def _fetch_contact_profile_picture(self, contact_id: str) -> str | None:
        if is_jid_broadcast(contact_id):
            return None
        if is_jid_newsletter(contact_id):
            channel = await self.channels_get(contact_id)
            return channel.picture or channel.preview
        try:
            return await self._socket.profile_picture_url(to_native_address(contact_id), "image")
        except Exception as exc:
            if str(exc) in _MISSING_PICTURE_ERRORS:
                return None
            raise

    # -- messages ----------------------------------------------------------

    def generate_new_message_id(self) -> str:
        message_id = self._socket.generate_message_id()
        self.save_sent_message_id(message_id)
        return message_id

    async def _send(
        self, jid: str, content: dict[str, Any], options: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        result = await self._socket.send_message(jid, content, options)
        # Engines may assign their own id
        self.save_sent_message_id(result["key"]["id"])
        return result

    async def _message_options(self, chat_id: str, reply_to: str | None = None) -> dict[str, Any]:
        jid = to_native_address(chat_id)
        quoted = None
        if reply_to:
            key = parse_message_id(reply_to, soft=True)
            quoted = await self.store.load_message(jid, key.id)
        chat = await self.store.get_chat(jid)
        return {
            "quoted": quoted,
            "ephemeralExpiration": chat.get("ephemeralExpiration") if chat else None,
            "messageId": self.generate_new_message_id(),
        }

    @staticmethod
    def _link_preview(request: Any) -> bool | None:
        return None if request.link_preview else False

    @staticmethod
    def _mentions(mentions: list[str] | None) -> list[str] | None:
        return [to_native_address(m) for m in mentions] if mentions else None

    async def check_number_status(self, request: CheckNumberStatusQuery) -> WANumberExistResult:
        phone = request.phone.split("@")[0]
        results = await self._socket.on_whatsapp(phone)
        if not results or not results[0].get("exists"):
            return WANumberExistResult(number_exists=False)
        return WANumberExistResult(number_exists=True, chat_id=to_public_chat_id(results[0]["jid"]))

    async def send_text(self, request: MessageTextRequest) -> dict[str, Any]:
        message = {
            "text": request.text,
            "mentions": self._mentions(request.mentions),
            "linkPreview": self._link_preview(request),
        }
        options = await self._message_options(request.chat_id, request.reply_to)
        options["linkPreviewHighQuality"] = request.link_preview_high_quality
        return await self._send(to_native_address(request.chat_id), message, options)

    async def reply(self, request: MessageReplyRequest) -> dict[str, Any]:
        message = {"text": request.text, "mentions": self._mentions(request.mentions)}
        options = await self._message_options(request.chat_id, request.reply_to)
        return await self._send(to_native_address(request.chat_id), message, options)

    async def delete_message(self, chat_id: str, message_id: str) -> dict[str, Any]:
        key = parse_message_id(message_id).to_native()
        options = {"messageId": self.generate_new_message_id()}
        return await self._send(to_native_address(chat_id), {"delete": key}, options)

    async def edit_message(
        self, chat_id: str, message_id: str, request: EditMessageRequest
    ) -> dict[str, Any]:
        message = {
            "text": request.text,
            "mentions": self._mentions(request.mentions),
            "edit": parse_message_id(message_id).to_native(),
            "linkPreview": self._link_preview(request),
            "linkPreviewHighQuality": request.link_preview_high_quality,
        }
        options = {"messageId": self.generate_new_message_id()}
        return await self._send(to_native_address(chat_id), message, options)

    async def send_contact_vcard(self, request: MessageContactVcardRequest) -> dict[str, Any]:
        contacts = [{"vcard": contact.to_vcard()} for contact in request.contacts]
        options = await self._message_options(request.chat_id, request.reply_to)
        return await self._send(
            to_native_address(request.chat_id), {"contacts": {"contacts": contacts}}, options
        )

    async def send_poll(self, request: MessagePollRequest) -> WAMessage:
        poll = request.poll
        message = {
            "poll": {
                "name": poll.name,
                "values": poll.options,
                "selectableCount": len(poll.options) if poll.multiple_answers else 1,
            }
        }
        options = await self._message_options(request.chat_id, request.reply_to)
        result = await self._send(to_native_address(request.chat_id), message, options)
        return to_wa_message(result, self.get_message_source(result["key"]["id"]))

    async def send_location(self, request: MessageLocationRequest) -> dict[str, Any]:
        location: dict[str, Any] = {
            "degreesLatitude": request.latitude,
            "degreesLongitude": request.longitude,
        }
        if request.title:
            location["name"] = request.title
        options = await self._message_options(request.chat_id, request.reply_to)
        return await self._send(
            to_native_address(request.chat_id), {"location": location}, options
        )

    async def forward_message(self, request: MessageForwardRequest) -> WAMessage:
        key = parse_message_id(request.message_id)
        message = await self.store.load_message(to_native_address(key.remote_jid or ""), key.id)
        if message is None:
            raise MessageNotFoundError(f"Message with id '{request.message_id}' not found")
        options = await self._message_options(request.chat_id)
        result = await self._send(
            to_native_address(request.chat_id), {"forward": message, "force": True}, options
        )
        return to_wa_message(result, self.get_message_source(result["key"]["id"]))

    async def send_link_preview(self, request: MessageLinkPreviewRequest) -> dict[str, Any]:
        options = await self._message_options(request.chat_id, request.reply_to)
        return await self._send(
            to_native_address(request.chat_id), {"text": f"{request.title}\n{request.url}"}, options
        )

    async def send_image(self, request: MessageImageRequest) -> Any:
        raise RequiresHigherTierError(MEDIA_FEATURE)

    async def send_file(self, request: MessageFileRequest) -> Any:
        raise RequiresHigherTierError(MEDIA_FEATURE)

    async def send_voice(self, request: MessageVoiceRequest) -> Any:
        raise RequiresHigherTierError(MEDIA_FEATURE)

    async def send_video(self, request: MessageVideoRequest) -> Any:
        raise RequiresHigherTierError(MEDIA_FEATURE)

    async def send_seen(self, request: SendSeenRequest) -> None:
        keys = [key.to_native() for key in extract_message_keys_for_read(request)]
        if not keys:
            return
        sock = self._socket
        await sock.read_messages(keys)
        # Our own reads never come back from the engine
        read = ack_to_status(MessageAck.READ)
        sock.ev.emit("messages.update", [{"key": key, "update": {"status": read}} for key in keys])

    async def start_typing(self, request: ChatRequest) -> None:
        await self._socket.send_presence_update("composing", to_native_address(request.chat_id))

    async def stop_typing(self, request: ChatRequest) -> None:
        await self._socket.send_presence_update("paused", to_native_address(request.chat_id))

    async def set_reaction(self, request: MessageReactionRequest) -> Any:
        key = parse_message_id(request.message_id)
        jid = key.remote_jid or ""
        if is_jid_newsletter(jid):
            server_id = key.id if key.id.isdigit() else None
            if server_id is None:
                message = await self.store.load_message(jid, key.id)
                if message and message["key"].get("server_id"):
                    server_id = str(message["key"]["server_id"])
            if server_id is None:
                raise PreconditionFailedError(
                    f"Unable to get server id for channel message '{key.id}'"
                )
            return await self._socket.newsletter_react_message(jid, server_id, request.reaction)
        reaction = {"react": {"text": request.reaction, "key": key.to_native()}}
        return await self._send(to_native_address(jid), reaction)

    async def set_star(self, request: MessageStarRequest) -> None:
        key = parse_message_id(request.message_id)
        modification = {
            "star": {"messages": [{"id": key.id, "fromMe": key.from_me}], "star": request.star}
        }
        await self._socket.chat_modify(modification, to_native_address(request.chat_id))

    async def pin_message(self, chat_id: str, message_id: str, duration: int) -> bool:
        key = parse_message_id(message_id).to_native()
        await self._send(
            to_native_address(chat_id), {"pin": key, "type": "PIN_FOR_ALL", "time": duration}
        )
        return True

    async def unpin_message(self, chat_id: str, message_id: str) -> bool:
        key = parse_message_id(message_id).to_native()
        await self._send(
            to_native_address(chat_id), {"pin": key, "type": "UNPIN_FOR_ALL"}
        )
        return True

    # -- chats -------------------------------------------------------------

    async def get_chats(self, pagination: Pagination) -> list[dict[str, Any]]:
        self._require_store()
        chats = await self.store.get_chats(pagination, broadcast=True)
        for chat in chats:
            chat.pop("unreadCount", None)
        return chats

    async def get_chats_overview(self, pagination: Pagination) -> list[ChatSummary]:
        self._require_store()
        chats = await self.store.get_chats(pagination, broadcast=False)
        return list(await asyncio.gather(*(self._fetch_chat_summary(chat) for chat in chats)))

    async def _fetch_chat_summary(self, chat: Entity) -> ChatSummary:
        chat.pop("unreadCount", None)
        name = chat.get("name")
        if not name:
            contact = await self.store.get_contact_by_id(chat["id"])
            if contact:
                name = contact.get("name") or contact.get("notify")
        picture = await self.get_contact_profile_picture(chat["id"])
        messages = await self.get_chat_messages(
            chat["id"],
            GetChatMessagesQuery(limit=1, offset=0, download_media=False),
            GetChatMessagesFilter(),
        )
        return ChatSummary(
            id=to_public_chat_id(chat["id"]) or chat["id"],
            name=name or None,
            picture=picture,
            last_message=messages[0] if messages else None,
            chat=chat,
        )

    async def get_chat_messages(
        self, chat_id: str, query: GetChatMessagesQuery, filter: GetChatMessagesFilter
    ) -> list[WAMessage]:
        self._require_store()
        messages = await self.store.get_messages_by_jid(to_native_address(chat_id), filter, query)
        results = await asyncio.gather(
            *(self._process_incoming_message(m, query.download_media) for m in messages)
        )
        return [r for r in results if r is not None]

    async def get_chat_message(
        self, chat_id: str, message_id: str, query: GetChatMessagesQuery
    ) -> WAMessage | None:
        self._require_store()
        key = parse_message_id(message_id, soft=True)
        message = await self.store.load_message(to_native_address(chat_id), key.id)
        if message is None:
            return None
        return await self._process_incoming_message(message, query.download_media)

    async def read_chat_messages(
        self, chat_id: str, request: ReadChatMessagesQuery
    ) -> ReadChatMessagesResponse:
        """Mark the recent inbound messages that are not read yet as seen."""
        self._require_store()
        jid = to_native_address(chat_id)
        limit = request.messages or (UNREAD_WINDOW_GROUP if is_jid_group(jid) else UNREAD_WINDOW_CHAT)
        filter = GetChatMessagesFilter(
            from_me=False,
            ack_lte=MessageAck.DEVICE,
            timestamp_gte=int(time.time()) - request.days * DAY_SECONDS,
        )
        messages = await self.store.get_messages_by_jid(jid, filter, Pagination(limit=limit))
        ids = [build_message_id(message["key"]) for message in messages]
        if not ids:
            return ReadChatMessagesResponse(ids=[])
        await self.send_seen(SendSeenRequest(chat_id=chat_id, message_ids=ids))
        return ReadChatMessagesResponse(ids=ids)

    async def _chats_put_archive(self, chat_id: str, archive: bool) -> None:
        jid = to_native_address(chat_id)
        messages = await self.store.get_messages_by_jid(jid, None, Pagination(limit=1))
        await self._socket.chat_modify({"archive": archive, "lastMessages": messages}, jid)

    async def chats_archive_chat(self, chat_id: str) -> None:
        await self._chats_put_archive(chat_id, True)

    async def chats_unarchive_chat(self, chat_id: str) -> None:
        await self._chats_put_archive(chat_id, False)

    async def chats_unread_chat(self, chat_id: str) -> None:
        jid = to_native_address(chat_id)
        messages = await self.store.get_messages_by_jid(jid, None, Pagination(limit=1))
        await self._socket.chat_modify({"markRead": False, "lastMessages": messages}, jid)

    # -- labels ------------------------------------------------------------

    async def get_labels(self) -> list[Label]:
        self._require_store()
        return [to_label(label) for label in await self.store.get_labels()]

    async def create_label(self, body: LabelBody) -> Label:
        self._require_store()
        labels = await self.store.get_labels()
        highest = max((int(label["id"]) for label in labels if str(label["id"]).isdigit()), default=0)
        label_id = str(highest + 1)
        await self._socket.add_label(
            "", {"id": label_id, "name": body.name, "color": body.color, "deleted": False}
        )
        return Label.build(id=label_id, name=body.name, color=body.color)

    async def update_label(self, label_id: str, body: LabelBody) -> Label:
        await self._socket.add_label(
            "", {"id": label_id, "name": body.name, "color": body.color, "deleted": False}
        )
        return Label.build(id=label_id, name=body.name, color=body.color)

    async def delete_label(self, label_id: str) -> None:
        self._require_store()
        label = await self.store.get_label_by_id(label_id)
        if label is None:
            raise PreconditionFailedError(f"Label with id '{label_id}' not found")
        await self._socket.add_label(
            "",
            {"id": label_id, "name": label.get("name"), "color": label.get("color"), "deleted": True},
        )

    async def get_chats_by_label_id(self, label_id: str) -> list[dict[str, Any]]:
        self._require_store()
        chats = await self.store.get_chats_by_label_id(label_id)
        for chat in chats:
            chat.pop("unreadCount", None)
        return chats

    async def get_chat_labels(self, chat_id: str) -> list[Label]:
        self._require_store()
        labels = await self.store.get_chat_labels(to_native_address(chat_id))
        return [to_label(label) for label in labels]

    async def put_labels_to_chat(self, chat_id: str, label_ids: list[str]) -> None:
        self._require_store()
        jid = to_native_address(chat_id)
        current = [label["id"] for label in await self.store.get_chat_labels(jid)]
        for label_id in [i for i in label_ids if i not in current]:
            await self._socket.add_chat_label(jid, label_id)
        for label_id in [i for i in current if i not in label_ids]:
            await self._socket.remove_chat_label(jid, label_id)

    # -- contacts ----------------------------------------------------------

    async def get_contact(self, contact_id: str) -> dict[str, Any] | None:
        self._require_store()
        contact = await self.store.get_contact_by_id(to_native_address(contact_id))
        return to_wa_contact(contact) if contact else None

    async def get_contacts(self, pagination: Pagination) -> list[dict[str, Any]]:
        self._require_store()
        return [to_wa_contact(contact) for contact in await self.store.get_contacts(pagination)]

    async def get_contact_about(self, contact_id: str) -> dict[str, Any]:
        result = await self._socket.fetch_status(to_native_address(contact_id))
        return {"about": result.get("status") if result else None}

    async def block_contact(self, contact_id: str) -> None:
        raise NotSupportedByEngineError()

    async def unblock_contact(self, contact_id: str) -> None:
        raise NotSupportedByEngineError()

    # -- groups ------------------------------------------------------------

    @staticmethod
    def _participant_jids(request: ParticipantsRequest | CreateGroupRequest) -> list[str]:
        return [to_native_address(p.id) for p in request.participants]

    async def create_group(self, request: CreateGroupRequest) -> dict[str, Any]:
        return await self._socket.group_create(request.name, self._participant_jids(request))

    async def join_group(self, code: str) -> str:
        return await self._socket.group_accept_invite(code)

    async def join_info_group(self, code: str) -> dict[str, Any]:
        return await self._socket.group_get_invite_info(code)

    async def get_groups(self, pagination: Pagination) -> dict[str, dict[str, Any]]:
        groups = await self.store.get_groups(pagination)
        return {group["id"]: group for group in groups}

    async def refresh_groups(self) -> bool:
        await self.store.reset_groups_cache()
        return True

    async def get_group(self, group_id: str) -> dict[str, Any]:
        groups = await self.get_groups(Pagination())
        group = groups.get(group_id)
        if group is None:
            raise GroupNotFoundError(group_id)
        return group

    async def delete_group(self, group_id: str) -> None:
        raise NotSupportedByEngineError()

    async def leave_group(self, group_id: str) -> None:
        await self._socket.group_leave(group_id)

    async def set_description(self, group_id: str, description: str) -> bool:
        await self._socket.group_update_description(group_id, description)
        return True

    async def set_subject(self, group_id: str, subject: str) -> bool:
        await self._socket.group_update_subject(group_id, subject)
        return True

    async def get_info_admin_only(self, group_id: str) -> SettingsSecurityChangeInfo:
        group = await self.get_group(group_id)
        return SettingsSecurityChangeInfo(admins_only=bool(group.get("restrict")))

    async def set_info_admins_only(self, group_id: str, value: bool) -> None:
        await self._socket.group_setting_update(group_id, "locked" if value else "unlocked")

    async def get_messages_admin_only(self, group_id: str) -> SettingsSecurityChangeInfo:
        group = await self.get_group(group_id)
        return SettingsSecurityChangeInfo(admins_only=bool(group.get("announce")))

    async def set_messages_admins_only(self, group_id: str, value: bool) -> None:
        setting = "announcement" if value else "not_announcement"
        await self._socket.group_setting_update(group_id, setting)

    async def get_invite_code(self, group_id: str) -> str:
        return await self._socket.group_invite_code(group_id)

    async def revoke_invite_code(self, group_id: str) -> str:
        await self._socket.group_revoke_invite(group_id)
        return await self._socket.group_invite_code(group_id)

    async def get_participants(self, group_id: str) -> list[dict[str, Any]]:
        groups = await self._socket.group_fetch_all_participating()
        if group_id not in groups:
            raise GroupNotFoundError(group_id)
        return groups[group_id].get("participants") or []

    async def add_participants(self, group_id: str, request: ParticipantsRequest) -> Any:
        return await self._socket.group_participants_update(
            group_id, self._participant_jids(request), "add"
        )

    async def remove_participants(self, group_id: str, request: ParticipantsRequest) -> Any:
        return await self._socket.group_participants_update(
            group_id, self._participant_jids(request), "remove"
        )

    async def promote_participants_to_admin(
        self, group_id: str, request: ParticipantsRequest
    ) -> Any:
        return await self._socket.group_participants_update(
            group_id, self._participant_jids(request), "promote"
        )

    async def demote_participants_to_user(
        self, group_id: str, request: ParticipantsRequest
    ) -> Any:
        return await self._socket.group_participants_update(
            group_id, self._participant_jids(request), "demote"
        )

    # -- presence ----------------------------------------------------------

    async def set_presence(self, presence: PresenceStatus, chat_id: str | None = None) -> None:
        jid = to_native_address(chat_id) if chat_id else None
        await self._socket.send_presence_update(TO_ENGINE_PRESENCE[presence], jid)

    async def get_presences(self) -> list[ChatPresences]:
        return [to_chat_presences(jid, stored) for jid, stored in self.store.presences.items()]

    async def get_presence(self, chat_id: str) -> ChatPresences:
        jid = to_native_address(chat_id)
        if jid not in self.store.presences:
            self.store.presences[jid] = {}
            await self._socket.presence_subscribe(jid)
            await asyncio.sleep(PRESENCE_WAIT_SECONDS)
        return to_chat_presences(jid, self.store.presences[jid])

    async def subscribe_presence(self, chat_id: str) -> None:
        await self._socket.presence_subscribe(to_native_address(chat_id))

    # -- channels ----------------------------------------------------------

    async def search_channels_by_view(self, query: ChannelSearchByView) -> Any:
        raise RequiresHigherTierError("Searching channels")

    async def search_channels_by_text(self, query: ChannelSearchByText) -> Any:
        raise RequiresHigherTierError("Searching channels")

    async def preview_channel_messages(self, invite_code: str, limit: int = 10) -> Any:
        raise RequiresHigherTierError("Previewing channel messages")

    async def channels_list(self, query: ListChannelsQuery) -> list[Channel]:
        channels = [to_channel(n) for n in await self._socket.newsletter_subscribed()]
        if query.role:
            channels = [channel for channel in channels if channel.role == query.role]
        return channels

    async def channels_create(self, request: CreateChannelRequest) -> Channel:
        newsletter = await self._socket.newsletter_create(request.name, request.description)
        return to_channel(newsletter)

    async def channels_get(self, id: str) -> Channel:
        """Channel by ``...@newsletter`` id, invite code or invite link."""
        if is_jid_newsletter(id):
            newsletter = await self._socket.newsletter_metadata("jid", id)
        else:
            newsletter = await self._socket.newsletter_metadata("invite", parse_channel_invite_link(id))
        if newsletter is None:
            raise PreconditionFailedError(f"Channel '{id}' not found")
        return to_channel(newsletter)

    async def channels_delete(self, id: str) -> None:
        await self._socket.newsletter_delete(id)

    async def channels_follow(self, id: str) -> None:
        await self._socket.newsletter_follow(id)

    async def channels_unfollow(self, id: str) -> None:
        await self._socket.newsletter_unfollow(id)

    async def channels_mute(self, id: str) -> None:
        await self._socket.newsletter_mute(id)

    async def channels_unmute(self, id: str) -> None:
        await self._socket.newsletter_unmute(id)

    # -- status (stories) --------------------------------------------------

    async def send_text_status(self, status: TextStatus) -> Any:
        message = {"text": status.text, "linkPreview": self._link_preview(status)}
        jids = await self._prepare_jids_for_status(status.contacts)
        if not status.id:
            self._upsert_me_in_jids(jids)
        options = {
            "backgroundColor": status.background_color,
            "font": status.font,
            "linkPreviewHighQuality": status.link_preview_high_quality,
            "messageId": self._prepare_message_id_for_status(status),
        }
        return await self._send_status_message(message, options, jids)

    async def send_image_status(self, status: ImageStatus) -> Any:
        raise RequiresHigherTierError(MEDIA_FEATURE)

    async def send_voice_status(self, status: VoiceStatus) -> Any:
        raise RequiresHigherTierError(MEDIA_FEATURE)

    async def send_video_status(self, status: VideoStatus) -> Any:
        raise RequiresHigherTierError(MEDIA_FEATURE)

    async def delete_status(self, request: DeleteStatusRequest) -> Any:
        key = dataclasses.replace(
            parse_message_id(request.id, soft=True), from_me=True, remote_jid=STATUS_BROADCAST
        )
        jids = await self._prepare_jids_for_status(request.contacts)
        self._upsert_me_in_jids(jids)
        options = {"statusJidList": jids, "messageId": self.generate_new_message_id()}
        return await self._send_status_message({"delete": key.to_native()}, options, jids)

    def _prepare_message_id_for_status(self, status: StatusRequest) -> str:
        if status.id:
            self.save_sent_message_id(status.id)
            return status.id
        return self.generate_new_message_id()

    async def _prepare_jids_for_status(self, contacts: list[str] | None) -> list[str]:
        if contacts:
            return [to_native_address(contact) for contact in contacts]
        # Status goes to every known user contact by default
        stored = await self.store.get_contacts()
        return [c["id"] for c in stored if is_jid_user(c["id"])]

    def _upsert_me_in_jids(self, jids: list[str]) -> None:
        me = self.sock.me if self.sock is not None else None
        if not me or not me.get("id"):
            return
        my_jid = jid_normalized_user(me["id"])
        if my_jid not in jids:
            jids.insert(0, my_jid)

    async def _send_status_message(
        self,
        message: dict[str, Any],
        options: dict[str, Any],
        jids: list[str],
    ) -> Any:
        size = self.engine_config.status_batch_size
        chunks = [jids[i : i + size] for i in range(0, len(jids), size)]
        if not chunks:
            raise PreconditionFailedError("No participants to send status")

        extra = {**self.log_extra, "message_id": options.get("messageId"), "chunks": len(chunks)}
        logger.info("Sending status message to %d participants", len(jids), extra=extra)
        result = None
        for index, participants in enumerate(chunks):
            chunk_options = {**options, "statusJidList": participants}
            try:
                response = await retry_with_backoff(
                    self._send,
                    self.engine_config.status_retry,
                    STATUS_BROADCAST,
                    message,
                    chunk_options,
                    log_extra=extra,
                )
            except TransientEngineError:
                logger.error("Sending status message (chunk %d) failed", index + 1, extra=extra)
                raise
            logger.info("Sending status message (chunk %d) - success", index + 1, extra=extra)
            result = result or response
        return result
