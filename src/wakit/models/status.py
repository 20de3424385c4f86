"""Status (stories) models."""

from __future__ import annotations

from pydantic import BaseModel

from wakit.core.jids import STATUS_BROADCAST
from wakit.models.requests import BinaryFile, RemoteFile

BROADCAST_ID = STATUS_BROADCAST


class StatusRequest(BaseModel):
    id: str | None = None
    contacts: list[str] | None = None


class TextStatus(StatusRequest):
    text: str
    background_color: str | None = None
    font: int | None = None
    link_preview: bool = True
    link_preview_high_quality: bool = False


class MediaStatus(StatusRequest):
    file: RemoteFile | BinaryFile
    caption: str | None = None


class ImageStatus(MediaStatus):
    pass


class VoiceStatus(MediaStatus):
    background_color: str | None = None


class VideoStatus(MediaStatus):
    pass


class DeleteStatusRequest(StatusRequest):
    id: str  # type: ignore[assignment]
