"""Engine-independent session contract.

``WhatsappSession`` is the operation surface every engine adapter realizes.
Operations an engine does not override raise ``NotSupportedByEngineError``,
so callers branch on the error kind and never on the engine type.

Sessions must be created inside a running event loop.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, Field

from wakit.core.bus import EventBus
from wakit.core.cache import TTLCache
from wakit.core.emitter import AsyncEventEmitter
from wakit.core.errors import NotSupportedByEngineError, SessionStatusError
from wakit.core.jobs import DeferredTasks
from wakit.core.media import MediaManager
from wakit.core.qr import QR
from wakit.core.status import StatusTracker
from wakit.models.channels import (
    Channel,
    ChannelSearchByText,
    ChannelSearchByView,
    CreateChannelRequest,
    ListChannelsQuery,
)
from wakit.models.chats import (
    GetChatMessagesFilter,
    GetChatMessagesQuery,
    Pagination,
    ReadChatMessagesQuery,
    ReadChatMessagesResponse,
)
from wakit.models.config import NowebEngineConfig, ProxyConfig, SessionConfig
from wakit.models.enums import Engine, MessageSource, PresenceStatus, SessionStatus, WAEvent
from wakit.models.groups import (
    CreateGroupRequest,
    ParticipantsRequest,
    SettingsSecurityChangeInfo,
)
from wakit.models.labels import LabelBody
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
)
from wakit.models.session import MeInfo, PairingCodeResponse, SessionStatusEvent
from wakit.models.status import (
    DeleteStatusRequest,
    ImageStatus,
    TextStatus,
    VideoStatus,
    VoiceStatus,
)

logger = logging.getLogger("wakit.session")

PROFILE_PICTURE_TTL_SECONDS = 24 * 60 * 60
SENT_MESSAGE_ID_TTL_SECONDS = 10 * 60
WORKING_DELAY_SECONDS = 2.0
MY_PICTURE_REFRESH_DELAY_SECONDS = 3.0
STATUS_DRAIN_TIMEOUT_SECONDS = 1.0


class SessionParams(BaseModel):
    """Everything a session needs from its owner."""

    model_config = {"arbitrary_types_allowed": True}

    name: str
    print_qr: bool = False
    media_manager: MediaManager | None = None
    session_config: SessionConfig = Field(default_factory=SessionConfig)
    proxy_config: ProxyConfig | None = None
    engine_config: NowebEngineConfig = Field(default_factory=NowebEngineConfig)


class WhatsappSession(ABC):
    """Abstract session: lifecycle, status stream, caches and the operation surface."""

    engine: Engine

    def __init__(self, params: SessionParams) -> None:
        self.name = params.name
        self.print_qr_enabled = params.print_qr
        self.media_manager = params.media_manager
        self.session_config = params.session_config
        self.proxy_config = params.proxy_config
        self.engine_config = params.engine_config

        self.events = EventBus()
        self.qr = QR()
        self.unpairing = False

        self._status: SessionStatus | None = None
        self._status_tracker = StatusTracker()
        self._published_status: SessionStatus | None = None
        self._delayed_status: asyncio.Task[None] | None = None
        self._status_events = AsyncEventEmitter()
        self.events.switch(WAEvent.SESSION_STATUS, lambda: self._status_events.stream("status"))

        self._profile_pictures = TTLCache(PROFILE_PICTURE_TTL_SECONDS)
        self._sent_message_ids = TTLCache(SENT_MESSAGE_ID_TTL_SECONDS)
        self._deferred = DeferredTasks()

    @property
    def log_extra(self) -> dict[str, Any]:
        return {"session": self.name}

    # -- status ----------------------------------------------------------

    @property
    def status(self) -> SessionStatus | None:
        return self._status

    @status.setter
    def status(self, value: SessionStatus) -> None:
        if self.unpairing and value != SessionStatus.STOPPED:
            logger.info(
                "Session is unpairing, ignoring status change to %s", value, extra=self.log_extra
            )
            return
        self._status = value
        self._status_tracker.track(value)
        self._on_status(value)

    def is_stuck_in_starting(self) -> bool:
        return self._status_tracker.is_stuck_in_starting()

    def _on_status(self, status: SessionStatus) -> None:
        # A newer status replaces a WORKING still waiting for me-info
        if self._delayed_status is not None:
            self._delayed_status.cancel()
            self._delayed_status = None
        if status == SessionStatus.WORKING and not self._has_me_info():
            self._delayed_status = asyncio.create_task(self._publish_status_later(status))
            return
        self._publish_status(status)

    async def _publish_status_later(self, status: SessionStatus) -> None:
        await asyncio.sleep(WORKING_DELAY_SECONDS)
        self._delayed_status = None
        self._publish_status(status)

    def _publish_status(self, status: SessionStatus) -> None:
        if status == SessionStatus.WORKING and self._published_status == SessionStatus.WORKING:
            return
        self._published_status = status
        logger.info("Session status: %s", status, extra=self.log_extra)
        self._status_events.emit("status", SessionStatusEvent(name=self.name, status=status))

    def _has_me_info(self) -> bool:
        me = self.get_session_me_info()
        return bool(me and me.id and me.push_name)

    def assert_status(self, *allowed: SessionStatus) -> None:
        if self._status not in allowed:
            raise SessionStatusError(str(self._status))

    async def _finish_events(self) -> None:
        """Publish what is pending on the status stream, then complete the bus."""
        if self._delayed_status is not None:
            self._delayed_status.cancel()
            self._delayed_status = None
        self._status_events.remove_all_listeners()
        await self.events.get(WAEvent.SESSION_STATUS).wait_drained(STATUS_DRAIN_TIMEOUT_SECONDS)
        await self.events.complete()

    async def _cancel_deferred(self) -> None:
        await self._deferred.cancel_all()

    # -- lifecycle -------------------------------------------------------

    @abstractmethod
    async def start(self) -> None: ...

    @abstractmethod
    async def stop(self) -> None: ...

    async def unpair(self) -> None:
        raise NotSupportedByEngineError()

    def get_session_me_info(self) -> MeInfo | None:
        return None

    def get_qr(self) -> str:
        return self.qr.raw

    def print_qr(self) -> None:
        if not self.print_qr_enabled:
            return
        logger.info("Scan the QR code to log in", extra=self.log_extra)
        self.qr.print_terminal()

    async def request_code(
        self, phone_number: str, method: str | None = None, params: dict[str, Any] | None = None
    ) -> PairingCodeResponse:
        raise NotSupportedByEngineError()

    async def get_screenshot(self) -> bytes:
        raise NotSupportedByEngineError()

    def get_engine_info(self) -> dict[str, Any]:
        return {}

    # -- sent ids and message source -------------------------------------

    def save_sent_message_id(self, message_id: str) -> None:
        self._sent_message_ids.set(message_id, True)

    def get_message_source(self, message_id: str) -> MessageSource:
        if self._sent_message_ids.has(message_id):
            return MessageSource.API
        return MessageSource.APP

    # -- profile ---------------------------------------------------------

    async def set_profile_name(self, name: str) -> bool:
        raise NotSupportedByEngineError()

    async def set_profile_status(self, status: str) -> bool:
        raise NotSupportedByEngineError()

    async def update_profile_picture(self, file: RemoteFile | BinaryFile) -> bool:
        await self._set_profile_picture(file)
        self._schedule_my_picture_refresh()
        return True

    async def delete_profile_picture(self) -> bool:
        await self._delete_profile_picture()
        self._schedule_my_picture_refresh()
        return True

    async def _set_profile_picture(self, file: RemoteFile | BinaryFile) -> None:
        raise NotSupportedByEngineError()

    async def _delete_profile_picture(self) -> None:
        raise NotSupportedByEngineError()

    def _schedule_my_picture_refresh(self) -> None:
        me = self.get_session_me_info()
        if me is None:
            return

        async def refresh() -> None:
            await self.get_contact_profile_picture(me.id, refresh=True)

        self._deferred.schedule(MY_PICTURE_REFRESH_DELAY_SECONDS, refresh, "refresh-my-picture")

    async def get_contact_profile_picture(self, contact_id: str, refresh: bool = False) -> str | None:
        """Picture url of *contact_id*, cached for a day.

        A failed fetch is cached as ``None`` and not retried until the entry
        expires or ``refresh`` is requested.
        """
        if refresh or not self._profile_pictures.has(contact_id):
            try:
                url = await self._fetch_contact_profile_picture(contact_id)
            except Exception:
                logger.warning(
                    "Failed to fetch profile picture for %s",
                    contact_id,
                    exc_info=True,
                    extra=self.log_extra,
                )
                url = None
            self._profile_pictures.set(contact_id, url)
        return self._profile_pictures.get(contact_id)

    async def _fetch_contact_profile_picture(self, contact_id: str) -> str | None:
        raise NotSupportedByEngineError()

    # -- messages --------------------------------------------------------

    async def send_text(self, request: MessageTextRequest) -> Any:
        raise NotSupportedByEngineError()

    async def reply(self, request: MessageReplyRequest) -> Any:
        raise NotSupportedByEngineError()

    async def send_contact_vcard(self, request: MessageContactVcardRequest) -> Any:
        raise NotSupportedByEngineError()

    async def send_poll(self, request: MessagePollRequest) -> Any:
        raise NotSupportedByEngineError()

    async def send_location(self, request: MessageLocationRequest) -> Any:
        raise NotSupportedByEngineError()

    async def send_link_preview(self, request: MessageLinkPreviewRequest) -> Any:
        raise NotSupportedByEngineError()

    async def forward_message(self, request: MessageForwardRequest) -> Any:
        raise NotSupportedByEngineError()

    async def send_image(self, request: MessageImageRequest) -> Any:
        raise NotSupportedByEngineError()

    async def send_file(self, request: MessageFileRequest) -> Any:
        raise NotSupportedByEngineError()

    async def send_voice(self, request: MessageVoiceRequest) -> Any:
        raise NotSupportedByEngineError()

    async def send_video(self, request: MessageVideoRequest) -> Any:
        raise NotSupportedByEngineError()

    async def edit_message(self, chat_id: str, message_id: str, request: EditMessageRequest) -> Any:
        raise NotSupportedByEngineError()

    async def delete_message(self, chat_id: str, message_id: str) -> Any:
        raise NotSupportedByEngineError()

    async def send_seen(self, request: SendSeenRequest) -> Any:
        raise NotSupportedByEngineError()

    async def start_typing(self, request: ChatRequest) -> None:
        raise NotSupportedByEngineError()

    async def stop_typing(self, request: ChatRequest) -> None:
        raise NotSupportedByEngineError()

    async def set_reaction(self, request: MessageReactionRequest) -> Any:
        raise NotSupportedByEngineError()

    async def set_star(self, request: MessageStarRequest) -> None:
        raise NotSupportedByEngineError()

    async def pin_message(self, chat_id: str, message_id: str, duration: int) -> bool:
        raise NotSupportedByEngineError()

    async def unpin_message(self, chat_id: str, message_id: str) -> bool:
        raise NotSupportedByEngineError()

    async def check_number_status(self, request: CheckNumberStatusQuery) -> Any:
        raise NotSupportedByEngineError()

    def generate_new_message_id(self) -> str:
        raise NotSupportedByEngineError()

    # -- chats -----------------------------------------------------------

    async def get_chats(self, pagination: Pagination) -> list[dict[str, Any]]:
        raise NotSupportedByEngineError()

    async def get_chats_overview(self, pagination: Pagination) -> list[Any]:
        raise NotSupportedByEngineError()

    async def get_chat_messages(
        self, chat_id: str, query: GetChatMessagesQuery, filter: GetChatMessagesFilter
    ) -> list[Any]:
        raise NotSupportedByEngineError()

    async def get_chat_message(
        self, chat_id: str, message_id: str, query: GetChatMessagesQuery
    ) -> Any:
        raise NotSupportedByEngineError()

    async def read_chat_messages(
        self, chat_id: str, request: ReadChatMessagesQuery
    ) -> ReadChatMessagesResponse:
        raise NotSupportedByEngineError()

    async def delete_chat(self, chat_id: str) -> Any:
        raise NotSupportedByEngineError()

    async def clear_messages(self, chat_id: str) -> Any:
        raise NotSupportedByEngineError()

    async def chats_archive_chat(self, chat_id: str) -> Any:
        raise NotSupportedByEngineError()

    async def chats_unarchive_chat(self, chat_id: str) -> Any:
        raise NotSupportedByEngineError()

    async def chats_unread_chat(self, chat_id: str) -> Any:
        raise NotSupportedByEngineError()

    # -- labels ----------------------------------------------------------

    async def get_labels(self) -> list[Any]:
        raise NotSupportedByEngineError()

    async def create_label(self, body: LabelBody) -> Any:
        raise NotSupportedByEngineError()

    async def update_label(self, label_id: str, body: LabelBody) -> Any:
        raise NotSupportedByEngineError()

    async def delete_label(self, label_id: str) -> None:
        raise NotSupportedByEngineError()

    async def get_chats_by_label_id(self, label_id: str) -> list[dict[str, Any]]:
        raise NotSupportedByEngineError()

    async def get_chat_labels(self, chat_id: str) -> list[Any]:
        raise NotSupportedByEngineError()

    async def put_labels_to_chat(self, chat_id: str, label_ids: list[str]) -> None:
        raise NotSupportedByEngineError()

    # -- contacts --------------------------------------------------------

    async def get_contact(self, contact_id: str) -> Any:
        raise NotSupportedByEngineError()

    async def get_contacts(self, pagination: Pagination) -> list[Any]:
        raise NotSupportedByEngineError()

    async def get_contact_about(self, contact_id: str) -> Any:
        raise NotSupportedByEngineError()

    async def block_contact(self, contact_id: str) -> None:
        raise NotSupportedByEngineError()

    async def unblock_contact(self, contact_id: str) -> None:
        raise NotSupportedByEngineError()

    # -- groups ----------------------------------------------------------

    async def create_group(self, request: CreateGroupRequest) -> Any:
        raise NotSupportedByEngineError()

    async def join_group(self, code: str) -> str:
        raise NotSupportedByEngineError()

    async def join_info_group(self, code: str) -> Any:
        raise NotSupportedByEngineError()

    async def get_groups(self, pagination: Pagination) -> Any:
        raise NotSupportedByEngineError()

    async def get_group(self, group_id: str) -> Any:
        raise NotSupportedByEngineError()

    async def refresh_groups(self) -> bool:
        raise NotSupportedByEngineError()

    async def delete_group(self, group_id: str) -> None:
        raise NotSupportedByEngineError()

    async def leave_group(self, group_id: str) -> None:
        raise NotSupportedByEngineError()

    async def set_description(self, group_id: str, description: str) -> bool:
        raise NotSupportedByEngineError()

    async def set_subject(self, group_id: str, subject: str) -> bool:
        raise NotSupportedByEngineError()

    async def set_info_admins_only(self, group_id: str, value: bool) -> None:
        raise NotSupportedByEngineError()

    async def get_info_admin_only(self, group_id: str) -> SettingsSecurityChangeInfo:
        raise NotSupportedByEngineError()

    async def set_messages_admins_only(self, group_id: str, value: bool) -> None:
        raise NotSupportedByEngineError()

    async def get_messages_admin_only(self, group_id: str) -> SettingsSecurityChangeInfo:
        raise NotSupportedByEngineError()

    async def get_invite_code(self, group_id: str) -> str:
        raise NotSupportedByEngineError()

    async def revoke_invite_code(self, group_id: str) -> str:
        raise NotSupportedByEngineError()

    async def get_participants(self, group_id: str) -> list[Any]:
        raise NotSupportedByEngineError()

    async def add_participants(self, group_id: str, request: ParticipantsRequest) -> Any:
        raise NotSupportedByEngineError()

    async def remove_participants(self, group_id: str, request: ParticipantsRequest) -> Any:
        raise NotSupportedByEngineError()

    async def promote_participants_to_admin(
        self, group_id: str, request: ParticipantsRequest
    ) -> Any:
        raise NotSupportedByEngineError()

    async def demote_participants_to_user(
        self, group_id: str, request: ParticipantsRequest
    ) -> Any:
        raise NotSupportedByEngineError()

    # -- presence --------------------------------------------------------

    async def set_presence(self, presence: PresenceStatus, chat_id: str | None = None) -> None:
        raise NotSupportedByEngineError()

    async def get_presences(self) -> list[Any]:
        raise NotSupportedByEngineError()

    async def get_presence(self, chat_id: str) -> Any:
        raise NotSupportedByEngineError()

    async def subscribe_presence(self, chat_id: str) -> None:
        raise NotSupportedByEngineError()

    # -- channels --------------------------------------------------------

    async def search_channels_by_view(self, query: ChannelSearchByView) -> Any:
        raise NotSupportedByEngineError()

    async def search_channels_by_text(self, query: ChannelSearchByText) -> Any:
        raise NotSupportedByEngineError()

    async def preview_channel_messages(self, invite_code: str, limit: int = 10) -> Any:
        raise NotSupportedByEngineError()

    async def channels_list(self, query: ListChannelsQuery) -> list[Channel]:
        raise NotSupportedByEngineError()

    async def channels_create(self, request: CreateChannelRequest) -> Channel:
        raise NotSupportedByEngineError()

    async def channels_get(self, id: str) -> Channel:
        raise NotSupportedByEngineError()

    async def channels_delete(self, id: str) -> None:
        raise NotSupportedByEngineError()

    async def channels_follow(self, id: str) -> None:
        raise NotSupportedByEngineError()

    async def channels_unfollow(self, id: str) -> None:
        raise NotSupportedByEngineError()

    async def channels_mute(self, id: str) -> None:
        raise NotSupportedByEngineError()

    async def channels_unmute(self, id: str) -> None:
        raise NotSupportedByEngineError()

    # -- status (stories) ------------------------------------------------

    async def send_text_status(self, status: TextStatus) -> Any:
        raise NotSupportedByEngineError()

    async def send_image_status(self, status: ImageStatus) -> Any:
        raise NotSupportedByEngineError()

    async def send_voice_status(self, status: VoiceStatus) -> Any:
        raise NotSupportedByEngineError()

    async def send_video_status(self, status: VideoStatus) -> Any:
        raise NotSupportedByEngineError()

    async def delete_status(self, request: DeleteStatusRequest) -> Any:
        raise NotSupportedByEngineError()

