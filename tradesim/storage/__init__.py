"""tradesim snapshot persistence."""

from .snapshot import JsonFileSnapshotStore, MemorySnapshotStore

__all__ = ["JsonFileSnapshotStore", "MemorySnapshotStore"]
