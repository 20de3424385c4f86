"""Time-based cache for per-session lookups."""

from __future__ import annotations

import time
from typing import Any


class TTLCache:
    """Mapping whose entries expire *ttl* seconds after they were set.

    ``None`` is a valid cached value, so ``has`` and ``get`` are separate:
    a cached ``None`` is a known miss that must not be fetched again.
    """

    def __init__(self, ttl: float) -> None:
        self._ttl = ttl
        self._items: dict[str, tuple[float, Any]] = {}

    def set(self, key: str, value: Any) -> None:
        self._items[key] = (time.monotonic() + self._ttl, value)

    def has(self, key: str) -> bool:
        item = self._items.get(key)
        if item is None:
            return False
        if item[0] <= time.monotonic():
            del self._items[key]
            return False
        return True

    def get(self, key: str, default: Any = None) -> Any:
        if not self.has(key):
            return default
        return self._items[key][1]

    def delete(self, key: str) -> None:
        self._items.pop(key, None)

    def clear(self) -> None:
        self._items.clear()

    def __len__(self) -> int:
        now = time.monotonic()
        return sum(1 for expires, _ in self._items.values() if expires > now)
