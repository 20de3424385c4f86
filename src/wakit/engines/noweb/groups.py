"""Group and channel payloads of the NOWEB engine."""

from __future__ import annotations

import time
from typing import Any

from wakit.core.jids import (
    are_jids_same_user,
    get_channel_invite_link,
    get_group_invite_link,
    get_public_url_from_direct_path,
    to_public_chat_id,
)
from wakit.models.channels import Channel
from wakit.models.enums import ChannelRole, GroupParticipantRole
from wakit.models.groups import (
    GroupId,
    GroupInfo,
    GroupParticipant,
    GroupParticipantType,
    GroupV2JoinEvent,
    GroupV2LeaveEvent,
    GroupV2ParticipantsEvent,
    GroupV2UpdateEvent,
)

_PARTICIPANT_TYPES = {
    "add": GroupParticipantType.JOIN,
    "remove": GroupParticipantType.LEAVE,
    "promote": GroupParticipantType.PROMOTE,
    "demote": GroupParticipantType.DEMOTE,
}
_PARTICIPANT_ROLES = {
    "add": GroupParticipantRole.PARTICIPANT,
    "remove": GroupParticipantRole.LEFT,
    "promote": GroupParticipantRole.ADMIN,
    "demote": GroupParticipantRole.PARTICIPANT,
}


def _now() -> int:
    return int(time.time())


def participant_role(admin: str | None) -> GroupParticipantRole:
    if admin == "superadmin":
        return GroupParticipantRole.SUPERADMIN
    if admin == "admin":
        return GroupParticipantRole.ADMIN
    return GroupParticipantRole.PARTICIPANT


def to_group_info(group: dict[str, Any]) -> GroupInfo:
    participants = None
    if group.get("participants") is not None:
        participants = [
            GroupParticipant(id=to_public_chat_id(p["id"]), role=participant_role(p.get("admin")))
            for p in group["participants"]
        ]
    announce = group.get("announce")
    restrict = group.get("restrict")
    invite = group.get("inviteCode")
    return GroupInfo(
        id=group["id"],
        subject=group.get("subject"),
        description=group.get("desc"),
        invite=get_group_invite_link(invite) if invite else None,
        members_can_send_messages=None if announce is None else not announce,
        members_can_change_info=None if restrict is None else not restrict,
        participants=participants,
    )


def group_join_events(groups: list[dict[str, Any]]) -> list[GroupV2JoinEvent]:
    return [GroupV2JoinEvent(group=to_group_info(g), timestamp=_now()) for g in groups]


def group_update_events(updates: list[dict[str, Any]]) -> list[GroupV2UpdateEvent]:
    return [GroupV2UpdateEvent(group=to_group_info(u), timestamp=_now()) for u in updates]


def group_leave_event(data: dict[str, Any], me_id: str | None) -> GroupV2LeaveEvent | None:
    """Leave event when the local account is among the removed participants."""
    if data.get("action") != "remove":
        return None
    if not any(are_jids_same_user(p, me_id) for p in data.get("participants") or []):
        return None
    return GroupV2LeaveEvent(group=GroupId(id=data["id"]), timestamp=_now())


def group_participants_event(data: dict[str, Any]) -> GroupV2ParticipantsEvent | None:
    action = data.get("action")
    if action not in _PARTICIPANT_TYPES:
        return None
    role = _PARTICIPANT_ROLES[action]
    return GroupV2ParticipantsEvent(
        group=GroupId(id=data["id"]),
        type=_PARTICIPANT_TYPES[action],
        participants=[
            GroupParticipant(id=to_public_chat_id(p), role=role)
            for p in data.get("participants") or []
        ],
        timestamp=_now(),
    )


def to_channel(newsletter: dict[str, Any]) -> Channel:
    viewer = newsletter.get("viewer_metadata") or {}
    role = viewer.get("role") or viewer.get("view_role") or ChannelRole.GUEST
    picture = newsletter.get("picture")
    preview = newsletter.get("preview")
    invite = newsletter.get("invite")
    return Channel(
        id=newsletter["id"],
        name=newsletter.get("name"),
        description=newsletter.get("description"),
        invite=get_channel_invite_link(invite) if invite else None,
        picture=get_public_url_from_direct_path(picture) if picture else None,
        preview=get_public_url_from_direct_path(preview) if preview else None,
        verified=newsletter.get("verification") == "VERIFIED",
        role=ChannelRole(str(role).upper()),
        subscribers_count=newsletter.get("subscribers"),
    )
