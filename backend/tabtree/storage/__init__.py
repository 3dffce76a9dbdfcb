"""Persistence: key-value store and the debounced tree state gateway."""

from tabtree.storage.gateway import PersistenceFailure, PersistenceGateway
from tabtree.storage.store import KeyValueStore, StorageChange

__all__ = ["KeyValueStore", "PersistenceFailure", "PersistenceGateway", "StorageChange"]
