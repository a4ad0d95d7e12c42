"""Store domain — the authoritative owner of entity rows and edge tables."""

from __future__ import annotations

from holograph.store.base import EntityStore
from holograph.store.base import Predicate
from holograph.store.base import StoreReader
from holograph.store.base import StoreSnapshot
from holograph.store.base import StoreTransaction
from holograph.store.memory import InMemoryEntityStore
from holograph.store.memory import InMemoryTransaction

__all__ = [
    "EntityStore",
    "InMemoryEntityStore",
    "InMemoryTransaction",
    "Predicate",
    "StoreReader",
    "StoreSnapshot",
    "StoreTransaction",
]
