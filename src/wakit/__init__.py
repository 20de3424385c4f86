"""WaKit - one async messaging API over WhatsApp client engines."""

from typing import Any

from wakit._version import __version__
from wakit.core.acks import MessageAck
from wakit.core.bus import EventBus
from wakit.core.errors import (
    GroupNotFoundError,
    MessageIdFormatError,
    MessageNotFoundError,
    NotSupportedByEngineError,
    PreconditionFailedError,
    RequiresHigherTierError,
    SessionStatusError,
    TransientEngineError,
    WakitError,
)
from wakit.core.ids import MessageKey, parse_message_id, serialize_message_id
from wakit.core.media import InMemoryMediaManager, MediaEngineProcessor, MediaManager
from wakit.core.session import SessionParams, WhatsappSession
from wakit.engines.noweb import SocketClient, WhatsappSessionNoWebCore
from wakit.models.config import (
    NowebConfig,
    NowebEngineConfig,
    NowebStoreConfig,
    ProxyConfig,
    RetryPolicy,
    SessionConfig,
)
from wakit.models.enums import (
    Engine,
    MessageSource,
    PresenceStatus,
    SessionStatus,
    WAEvent,
)
from wakit.models.messages import WAMessage, WAMessageAckBody
from wakit.store import StoreKind

__all__ = [
    "__version__",
    # Errors
    "GroupNotFoundError",
    "MessageIdFormatError",
    "MessageNotFoundError",
    "NotSupportedByEngineError",
    "PreconditionFailedError",
    "RequiresHigherTierError",
    "SessionStatusError",
    "TransientEngineError",
    "WakitError",
    # Core
    "EventBus",
    "InMemoryMediaManager",
    "MediaEngineProcessor",
    "MediaManager",
    "MessageAck",
    "MessageKey",
    "SessionParams",
    "SocketClient",
    "StoreKind",
    "WhatsappSession",
    "WhatsappSessionNoWebCore",
    "parse_message_id",
    "serialize_message_id",
    # Models
    "Engine",
    "MessageSource",
    "NowebConfig",
    "NowebEngineConfig",
    "NowebStoreConfig",
    "PresenceStatus",
    "ProxyConfig",
    "RetryPolicy",
    "SessionConfig",
    "SessionStatus",
    "WAEvent",
    "WAMessage",
    "WAMessageAckBody",
    # Lazy imports for the optional neonize client
    "NeonizeSocket",
    "neonize_socket_factory",
]


def __getattr__(name: str) -> Any:
    """Lazy import for the neonize socket client."""
    if name in ("NeonizeSocket", "neonize_socket_factory"):
        from wakit.engines.noweb import neonize

        return getattr(neonize, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
