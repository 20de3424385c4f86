"""Session-level models."""

from __future__ import annotations

from pydantic import BaseModel

from wakit.models.enums import SessionStatus


class MeInfo(BaseModel):
    id: str
    push_name: str | None = None


class SessionStatusEvent(BaseModel):
    name: str
    status: SessionStatus


class PairingCodeResponse(BaseModel):
    code: str
