"""Group request and group event models."""

from __future__ import annotations

from enum import StrEnum, unique

from pydantic import BaseModel, Field

from wakit.models.enums import GroupParticipantRole


class ParticipantRef(BaseModel):
    id: str


class CreateGroupRequest(BaseModel):
    name: str
    participants: list[ParticipantRef] = Field(default_factory=list)


class ParticipantsRequest(BaseModel):
    participants: list[ParticipantRef]


class SettingsSecurityChangeInfo(BaseModel):
    admins_only: bool = False


class GroupId(BaseModel):
    id: str


class GroupParticipant(BaseModel):
    id: str
    role: GroupParticipantRole = GroupParticipantRole.PARTICIPANT


class GroupInfo(BaseModel):
    id: str
    subject: str | None = None
    description: str | None = None
    invite: str | None = None
    members_can_send_messages: bool | None = None
    members_can_change_info: bool | None = None
    participants: list[GroupParticipant] | None = None


@unique
class GroupParticipantType(StrEnum):
    JOIN = "join"
    LEAVE = "leave"
    PROMOTE = "promote"
    DEMOTE = "demote"


class GroupV2JoinEvent(BaseModel):
    group: GroupInfo
    timestamp: int


class GroupV2LeaveEvent(BaseModel):
    group: GroupId
    timestamp: int


class GroupV2UpdateEvent(BaseModel):
    group: GroupInfo
    timestamp: int


class GroupV2ParticipantsEvent(BaseModel):
    group: GroupId
    type: GroupParticipantType
    participants: list[GroupParticipant]
    timestamp: int
