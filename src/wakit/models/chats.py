"""Chat, pagination and chat-message query models."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from wakit.models.enums import SortOrder
from wakit.models.messages import WAMessage


class Pagination(BaseModel):
    limit: int | None = Field(default=None, ge=0)
    offset: int | None = Field(default=None, ge=0)
    sort_by: str | None = None
    sort_order: SortOrder | None = None


class GetChatMessagesQuery(Pagination):
    download_media: bool = True


class GetChatMessagesFilter(BaseModel):
    """Filters for chat message listing.

    ``ack_lte`` keeps messages whose ack is at most the given level, which
    is how "not read yet" is expressed.
    """

    timestamp_gte: int | None = None
    timestamp_lte: int | None = None
    from_me: bool | None = None
    ack_lte: int | None = None


class ReadChatMessagesQuery(BaseModel):
    messages: int | None = Field(default=None, gt=0)
    days: int = Field(default=7, ge=0)


class ReadChatMessagesResponse(BaseModel):
    ids: list[str] = Field(default_factory=list)


class ChatSummary(BaseModel):
    id: str
    name: str | None = None
    picture: str | None = None
    last_message: WAMessage | None = None
    chat: dict[str, Any] | None = None
