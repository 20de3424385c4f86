"""Media processing collaborator contract.

Engines describe how to pull media out of their native messages through a
``MediaEngineProcessor``; a ``MediaManager`` decides where the bytes go and
returns the message enriched with a ``media`` descriptor.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Protocol, runtime_checkable

from wakit.models.messages import WAMedia

logger = logging.getLogger("wakit.media")


@runtime_checkable
class MediaEngineProcessor(Protocol):
    def has_media(self, message: Any) -> bool: ...

    def get_message_id(self, message: Any) -> str: ...

    def get_chat_id(self, message: Any) -> str: ...

    def get_mimetype(self, message: Any) -> str: ...

    async def get_media_buffer(self, message: Any) -> bytes | None: ...

    def get_filename(self, message: Any) -> str | None: ...


class MediaManager(ABC):
    """Stores downloaded media and describes where it went."""

    @abstractmethod
    async def store(
        self,
        session: str,
        message_id: str,
        chat_id: str,
        mimetype: str,
        data: bytes,
        filename: str | None,
    ) -> WAMedia: ...

    async def process_media(
        self, processor: MediaEngineProcessor, message: Any, session: str
    ) -> WAMedia | None:
        """Download and store the media of *message*.

        Returns ``None`` when the message has no media.  Failures are
        logged and reported in ``WAMedia.error``.
        """
        if not processor.has_media(message):
            return None
        message_id = processor.get_message_id(message)
        mimetype = processor.get_mimetype(message)
        filename = processor.get_filename(message)
        try:
            data = await processor.get_media_buffer(message)
            if data is None:
                return WAMedia(mimetype=mimetype, filename=filename, error="Media is not available")
            return await self.store(
                session, message_id, processor.get_chat_id(message), mimetype, data, filename
            )
        except Exception as exc:
            logger.error(
                "Failed to process media for message %s",
                message_id,
                exc_info=True,
                extra={"session": session},
            )
            return WAMedia(mimetype=mimetype, filename=filename, error=str(exc))


class InMemoryMediaManager(MediaManager):
    """Keeps media bytes in a dict and hands out ``memory://`` urls."""

    def __init__(self) -> None:
        self.files: dict[str, bytes] = {}

    async def store(
        self,
        session: str,
        message_id: str,
        chat_id: str,
        mimetype: str,
        data: bytes,
        filename: str | None,
    ) -> WAMedia:
        url = f"memory://{session}/{message_id}"
        self.files[url] = data
        return WAMedia(url=url, mimetype=mimetype, filename=filename)
