"""
Storage module for handling state persistence.
"""
from feed_engine.storage.exclusions import AdminExclusionList
from feed_engine.storage.interactions import InteractionStore
from feed_engine.storage.kv import KeyValueStore, MemoryKeyValueStore, SQLiteConfig, SQLiteKeyValueStore

__all__ = [
    "AdminExclusionList",
    "InteractionStore",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "SQLiteConfig",
    "SQLiteKeyValueStore",
]
