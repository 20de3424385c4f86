"""Message ack levels and the engine status scale.

Engines report a delivery ``status`` one step above the public ack
(``PENDING`` is status 1, ``DEVICE`` is status 3).
"""

from __future__ import annotations

from enum import IntEnum

ACK_UNKNOWN = "UNKNOWN"


class MessageAck(IntEnum):
    ERROR = -1
    PENDING = 0
    SERVER = 1
    DEVICE = 2
    READ = 3
    PLAYED = 4


def status_to_ack(status: int) -> int:
    return status - 1


def ack_to_status(ack: int) -> int:
    return ack + 1


def ack_name(ack: int | None) -> str:
    if ack is None:
        return ACK_UNKNOWN
    try:
        return MessageAck(ack).name
    except ValueError:
        return ACK_UNKNOWN
