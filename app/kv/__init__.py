# Ephemeral Key/Value Store Package
from .base import KeyValueStore
from .memory import MemoryKeyValueStore
from .sql import SqlKeyValueStore

__all__ = [
    "KeyValueStore",
    "MemoryKeyValueStore",
    "SqlKeyValueStore",
]
