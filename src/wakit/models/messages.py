"""Outward message and message-event models."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from wakit.models.enums import MessageSource


class WAMedia(BaseModel):
    """Media attached to a message, as returned by the media manager."""

    url: str | None = None
    mimetype: str | None = None
    filename: str | None = None
    error: str | None = None


class ReplyToMessage(BaseModel):
    id: str
    participant: str | None = None
    body: str | None = None
    raw: Any = None


class WAMessage(BaseModel):
    """Engine-independent message."""

    id: str
    timestamp: int
    from_: str | None = Field(default=None, alias="from")
    from_me: bool
    source: MessageSource = MessageSource.APP
    to: str | None = None
    participant: str | None = None
    body: str | None = None
    has_media: bool = False
    media: WAMedia | None = None
    ack: int | None = None
    ack_name: str
    location: dict[str, Any] | None = None
    v_cards: list[str] | None = None
    reply_to: ReplyToMessage | None = None
    raw: Any = None

    model_config = {"populate_by_name": True}


class MessageDestination(BaseModel):
    id: str
    to: str | None = None
    from_: str | None = Field(default=None, alias="from")
    from_me: bool

    model_config = {"populate_by_name": True}


class ReactionInfo(BaseModel):
    text: str
    message_id: str


class WAMessageReaction(BaseModel):
    id: str
    timestamp: int
    from_: str | None = Field(default=None, alias="from")
    from_me: bool
    source: MessageSource
    to: str | None = None
    participant: str | None = None
    reaction: ReactionInfo

    model_config = {"populate_by_name": True}


class WAMessageAckBody(BaseModel):
    id: str
    from_: str | None = Field(default=None, alias="from")
    to: str | None = None
    participant: str | None = None
    from_me: bool
    ack: int | None = None
    ack_name: str
    raw: Any = None

    model_config = {"populate_by_name": True}


class WAMessageRevokedBody(BaseModel):
    after: WAMessage | None = None
    before: WAMessage | None = None
    raw: Any = None


class PollVote(MessageDestination):
    selected_options: list[str] = Field(default_factory=list)
    timestamp: int


class PollVotePayload(BaseModel):
    vote: PollVote
    poll: MessageDestination


class CallData(BaseModel):
    id: str
    from_: str | None = Field(default=None, alias="from")
    timestamp: float
    is_video: bool = False
    is_group: bool | None = None

    model_config = {"populate_by_name": True}
