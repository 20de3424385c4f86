"""NOWEB engine: a headless socket client behind the session contract."""

from typing import Any

from wakit.engines.noweb.session import SocketFactory, WhatsappSessionNoWebCore
from wakit.engines.noweb.socket import DisconnectReason, SocketClient
from wakit.engines.noweb.store import NowebStore

__all__ = [
    "DisconnectReason",
    "NowebStore",
    "SocketClient",
    "SocketFactory",
    "WhatsappSessionNoWebCore",
    # Lazy imports for the optional neonize client
    "AuthKind",
    "NeonizeAuth",
    "NeonizeSocket",
    "neonize_socket_factory",
]

_NEONIZE_EXPORTS = ("AuthKind", "NeonizeAuth", "NeonizeSocket", "neonize_socket_factory")


def __getattr__(name: str) -> Any:
    """Lazy import for the neonize socket client."""
    if name in _NEONIZE_EXPORTS:
        from wakit.engines.noweb import neonize

        return getattr(neonize, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
