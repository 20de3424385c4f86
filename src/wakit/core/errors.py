"""Error kinds raised by WaKit sessions.

Callers branch on the error class, never on the engine type:

- ``NotSupportedByEngineError``: the active engine has no implementation.
- ``RequiresHigherTierError``: the operation exists but is gated.
- ``PreconditionFailedError``: wrong session status, malformed id, missing
  referenced entity.  Never retried.
- ``TransientEngineError``: bounded retries gave up.
"""

from __future__ import annotations


class WakitError(Exception):
    """Base exception for all WaKit errors."""


class NotSupportedByEngineError(WakitError):
    """Operation is not implemented by the active engine."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or "The method is not implemented by the engine")


class RequiresHigherTierError(WakitError):
    """Operation is available, but only in a higher tier."""

    def __init__(self, feature: str | None = None) -> None:
        self.feature = feature
        what = feature or "The feature"
        super().__init__(f"{what} is available only in the Plus version")


class PreconditionFailedError(WakitError):
    """The request cannot be processed in the current state."""


class SessionStatusError(PreconditionFailedError):
    """Operation is not allowed in the current session status."""

    def __init__(self, status: str, message: str | None = None) -> None:
        self.status = status
        super().__init__(message or f"Operation is not allowed in '{status}' status")


class MessageIdFormatError(PreconditionFailedError):
    """Serialized message id does not have the expected shape."""

    def __init__(self, message_id: str) -> None:
        self.message_id = message_id
        super().__init__(
            f"Message id '{message_id}' must be "
            "'{fromMe}_{chatId}_{messageId}[_{participant}]'"
        )


class MessageNotFoundError(PreconditionFailedError):
    """Referenced message does not exist in the store."""


class GroupNotFoundError(PreconditionFailedError):
    """Referenced group does not exist in the store."""

    def __init__(self, group_id: str) -> None:
        self.group_id = group_id
        super().__init__(f"Group with id '{group_id}' not found")


class TransientEngineError(WakitError):
    """Engine call kept failing after all retry attempts."""
