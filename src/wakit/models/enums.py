"""All string enums for WaKit."""

from __future__ import annotations

from enum import StrEnum, unique


@unique
class SessionStatus(StrEnum):
    STOPPED = "STOPPED"
    STARTING = "STARTING"
    SCAN_QR_CODE = "SCAN_QR_CODE"
    WORKING = "WORKING"
    FAILED = "FAILED"


@unique
class Engine(StrEnum):
    WEBJS = "WEBJS"
    NOWEB = "NOWEB"
    GOWS = "GOWS"


@unique
class WAEvent(StrEnum):
    SESSION_STATUS = "session.status"
    MESSAGE = "message"
    MESSAGE_REACTION = "message.reaction"
    MESSAGE_ANY = "message.any"
    MESSAGE_ACK = "message.ack"
    MESSAGE_REVOKED = "message.revoked"
    STATE_CHANGE = "state.change"
    GROUP_JOIN = "group.join"
    GROUP_V2_JOIN = "group.v2.join"
    GROUP_V2_LEAVE = "group.v2.leave"
    GROUP_V2_UPDATE = "group.v2.update"
    GROUP_V2_PARTICIPANTS = "group.v2.participants"
    PRESENCE_UPDATE = "presence.update"
    POLL_VOTE = "poll.vote"
    POLL_VOTE_FAILED = "poll.vote.failed"
    CALL_RECEIVED = "call.received"
    CALL_ACCEPTED = "call.accepted"
    CALL_REJECTED = "call.rejected"
    LABEL_UPSERT = "label.upsert"
    LABEL_DELETED = "label.deleted"
    LABEL_CHAT_ADDED = "label.chat.added"
    LABEL_CHAT_DELETED = "label.chat.deleted"
    ENGINE_EVENT = "engine.event"


@unique
class PresenceStatus(StrEnum):
    OFFLINE = "offline"
    ONLINE = "online"
    TYPING = "typing"
    RECORDING = "recording"
    PAUSED = "paused"


@unique
class MessageSource(StrEnum):
    API = "api"
    APP = "app"


@unique
class ChannelRole(StrEnum):
    OWNER = "OWNER"
    ADMIN = "ADMIN"
    SUBSCRIBER = "SUBSCRIBER"
    GUEST = "GUEST"


@unique
class GroupParticipantRole(StrEnum):
    LEFT = "left"
    PARTICIPANT = "participant"
    ADMIN = "admin"
    SUPERADMIN = "superadmin"


@unique
class SortOrder(StrEnum):
    ASC = "asc"
    DESC = "desc"
