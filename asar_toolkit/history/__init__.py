"""Archive history records."""

from .store import ArchiveMeta, FileModification, MemoryRecordStore, RecordStore, Snapshot

__all__ = [
    "ArchiveMeta",
    "FileModification",
    "MemoryRecordStore",
    "RecordStore",
    "Snapshot",
]
