"""QR payload of the current connection attempt."""

from __future__ import annotations

import io
import logging

import segno

logger = logging.getLogger("wakit.qr")


class QR:
    """Holds the last QR payload; empty until the engine sends one."""

    def __init__(self) -> None:
        self.raw = ""

    def save(self, raw: str) -> None:
        self.raw = raw or ""

    def clear(self) -> None:
        self.raw = ""

    def get_png(self, scale: int = 8) -> bytes:
        buffer = io.BytesIO()
        segno.make(self.raw, error="l").save(buffer, kind="png", scale=scale, border=2)
        return buffer.getvalue()

    def print_terminal(self) -> None:
        if not self.raw:
            return
        segno.make(self.raw, error="l").terminal(compact=True)
