"""Materialized store repositories and the storage kinds that back them."""

from __future__ import annotations

from enum import StrEnum, unique
from typing import assert_never

from wakit.store.base import (
    ChatRepository,
    Entity,
    LabelAssociationRepository,
    MessagesRepository,
    Repository,
    Storage,
)
from wakit.store.memory import InMemoryStorage


@unique
class StoreKind(StrEnum):
    MEMORY = "memory"


def build_storage(kind: StoreKind) -> Storage:
    """Create the storage for *kind*; every kind must have a branch."""
    match kind:
        case StoreKind.MEMORY:
            return InMemoryStorage()
        case _:
            assert_never(kind)


__all__ = [
    "ChatRepository",
    "Entity",
    "InMemoryStorage",
    "LabelAssociationRepository",
    "MessagesRepository",
    "Repository",
    "Storage",
    "StoreKind",
    "build_storage",
]
