"""Conversion between engine-native JIDs and public chat ids.

Engines address users as ``{number}[:{device}]@s.whatsapp.net`` while the
public API always speaks ``{number}@c.us``.  Groups, broadcasts, channels
(newsletters), linked-device ids and Meta AI bots look the same on both
sides and pass through unchanged.
"""

from __future__ import annotations

import re
from typing import NamedTuple

USER_SERVER = "s.whatsapp.net"
PUBLIC_USER_SERVER = "c.us"
GROUP_SERVER = "g.us"
BROADCAST_SERVER = "broadcast"
NEWSLETTER_SERVER = "newsletter"
LID_SERVER = "lid"
META_AI_SERVER = "bot"

STATUS_BROADCAST = "status@broadcast"
ME = "me"

_DEVICE_RE = re.compile(r"^.*:(\d+)@.*$")


class DecodedJid(NamedTuple):
    user: str
    server: str
    device: int | None = None


def is_jid_group(jid: str | None) -> bool:
    return bool(jid) and jid.endswith(f"@{GROUP_SERVER}")


def is_jid_broadcast(jid: str | None) -> bool:
    return bool(jid) and jid.endswith(f"@{BROADCAST_SERVER}")


def is_jid_newsletter(jid: str | None) -> bool:
    return bool(jid) and jid.endswith(f"@{NEWSLETTER_SERVER}")


def is_lid_user(jid: str | None) -> bool:
    return bool(jid) and jid.endswith(f"@{LID_SERVER}")


def is_jid_meta_ai(jid: str | None) -> bool:
    return bool(jid) and jid.endswith(f"@{META_AI_SERVER}")


def is_jid_user(jid: str | None) -> bool:
    return bool(jid) and jid.endswith(f"@{USER_SERVER}")


def _is_special(jid: str) -> bool:
    return (
        is_jid_group(jid)
        or is_jid_broadcast(jid)
        or is_jid_newsletter(jid)
        or is_lid_user(jid)
        or is_jid_meta_ai(jid)
    )


def jid_decode(jid: str | None) -> DecodedJid | None:
    """Split ``user[:device]@server`` into its parts."""
    if not jid or "@" not in jid:
        return None
    user_part, server = jid.split("@", 1)
    user, _, device = user_part.partition(":")
    return DecodedJid(user=user, server=server, device=int(device) if device.isdigit() else None)


def jid_normalized_user(jid: str | None) -> str:
    """Drop the device part and use the engine user domain for ``c.us``."""
    decoded = jid_decode(jid)
    if decoded is None:
        return jid or ""
    server = USER_SERVER if decoded.server == PUBLIC_USER_SERVER else decoded.server
    return f"{decoded.user}@{server}"


def are_jids_same_user(first: str | None, second: str | None) -> bool:
    a = jid_decode(first)
    b = jid_decode(second)
    return a is not None and b is not None and a.user == b.user


def ensure_suffix(phone: str) -> str:
    """Add ``@c.us`` to a bare phone number."""
    if "@" in phone:
        return phone
    return f"{phone}@{PUBLIC_USER_SERVER}"


def to_public_chat_id(jid: str | None) -> str | None:
    """Convert ``111@s.whatsapp.net`` (or ``111:3@s.whatsapp.net``) to ``111@c.us``.

    Special address classes and ``"me"`` are returned as is.  Addresses in a
    domain this module does not know keep their domain and only lose the
    device part.
    """
    if not jid:
        return None
    if jid == ME or _is_special(jid):
        return jid
    user_part, _, server = jid.partition("@")
    number = user_part.split(":")[0]
    if server in ("", USER_SERVER, PUBLIC_USER_SERVER):
        return ensure_suffix(number)
    return f"{number}@{server}"


def to_native_address(chat_id: str) -> str:
    """Convert ``111@c.us`` (or bare ``111``) to ``111@s.whatsapp.net``."""
    if _is_special(chat_id):
        return chat_id
    number = chat_id.split("@")[0]
    return f"{number}@{USER_SERVER}"


def extract_device_id(jid: str | None) -> str | None:
    """Return ``"12"`` for ``"123123:12@c.us"``, ``None`` when there is no device."""
    if not jid:
        return None
    match = _DEVICE_RE.match(jid)
    return match.group(1) if match else None


def get_group_invite_link(code: str) -> str:
    if code.startswith("https://"):
        return code
    return f"https://chat.whatsapp.com/{code}"


def get_channel_invite_link(code: str) -> str:
    return f"https://whatsapp.com/channel/{code}"


def parse_channel_invite_link(link: str) -> str:
    return link.rstrip("/").split("/")[-1]


def get_public_url_from_direct_path(direct_path: str) -> str:
    return f"https://pps.whatsapp.net{direct_path}"
