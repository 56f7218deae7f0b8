"""Entity store adapter: typed read access to collections (find, join, count)."""
from channelviews.store.base import Direction, EntityStore
from channelviews.store.memory import MemoryEntityStore
from channelviews.store.schema import COLLECTIONS, CollectionSchema, schema_for
from channelviews.store.sql import SqlEntityStore

__all__ = [
    "COLLECTIONS",
    "CollectionSchema",
    "Direction",
    "EntityStore",
    "MemoryEntityStore",
    "SqlEntityStore",
    "schema_for",
]
