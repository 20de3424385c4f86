"""Presence models."""

from __future__ import annotations

from pydantic import BaseModel, Field

from wakit.models.enums import PresenceStatus


class PresenceData(BaseModel):
    participant: str
    last_known_presence: PresenceStatus | str
    last_seen: int | None = None


class ChatPresences(BaseModel):
    id: str
    presences: list[PresenceData] = Field(default_factory=list)
