"""Channel (newsletter) models."""

from __future__ import annotations

from pydantic import BaseModel

from wakit.models.enums import ChannelRole


class Channel(BaseModel):
    id: str
    name: str | None = None
    description: str | None = None
    invite: str | None = None
    preview: str | None = None
    picture: str | None = None
    verified: bool = False
    role: ChannelRole = ChannelRole.GUEST
    subscribers_count: int | None = None


class CreateChannelRequest(BaseModel):
    name: str
    description: str | None = None


class ListChannelsQuery(BaseModel):
    role: ChannelRole | None = None


class ChannelSearchByText(BaseModel):
    text: str
    limit: int = 50


class ChannelSearchByView(BaseModel):
    view: str
    countries: list[str] = []
    categories: list[str] = []
    limit: int = 50


class ChannelListResult(BaseModel):
    channels: list[Channel] = []
