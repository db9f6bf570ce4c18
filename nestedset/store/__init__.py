"""Record stores: the persistence collaborators of the engine."""

from nestedset.store.base import RecordStore
from nestedset.store.memory import MemoryRecordStore
from nestedset.store.sqlite import SqliteRecordStore

__all__ = ["MemoryRecordStore", "RecordStore", "SqliteRecordStore"]
