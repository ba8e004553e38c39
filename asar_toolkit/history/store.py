"""Record store for archive history: baseline bytes, metadata, snapshots and
saved modifications.

The session treats the store as an opaque durable map addressed by string
ids. ``MemoryRecordStore`` keeps everything in process; a persistent store
implements the same interface.
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class ArchiveMeta:
    """Metadata saved next to the bytes of one archive."""

    id: str
    name: str
    size: int
    imported_at: float = field(default_factory=time.time)
    last_modified_at: float = field(default_factory=time.time)
    source: str = "file"  # file, url or data-url
    source_url: Optional[str] = None
    hash: Optional[str] = None
    parent_id: Optional[str] = None  # archive this one was exported from


@dataclass
class Snapshot:
    id: str
    archive_id: str
    name: str
    created_at: float = field(default_factory=time.time)
    modified_files: List[str] = field(default_factory=list)
    description: Optional[str] = None


@dataclass
class FileModification:
    id: str
    archive_id: str
    path: str
    content: bytes
    snapshot_id: Optional[str] = None
    modified_at: float = field(default_factory=time.time)


class RecordStore(ABC):
    """Abstract interface of the archive history store."""

    # Archives

    @abstractmethod
    def save(self, record_id: str, data: bytes, meta: ArchiveMeta) -> None:
        """Store archive bytes and metadata under ``record_id``."""

    @abstractmethod
    def get(self, record_id: str) -> Optional[bytes]:
        """Return the archive bytes, or None if unknown."""

    @abstractmethod
    def get_meta(self, record_id: str) -> Optional[ArchiveMeta]:
        pass

    @abstractmethod
    def delete(self, record_id: str) -> None:
        """Remove an archive with its snapshots and modifications."""

    @abstractmethod
    def list_all(self) -> List[ArchiveMeta]:
        """All archives, most recently imported first."""

    @abstractmethod
    def list_by_hash(self, digest: str) -> List[ArchiveMeta]:
        pass

    @abstractmethod
    def list_by_parent(self, parent_id: str) -> List[ArchiveMeta]:
        pass

    # Modifications

    @abstractmethod
    def save_modification(self, modification: FileModification) -> None:
        """Store a modification, replacing any earlier one for the same path."""

    @abstractmethod
    def get_modification(self, archive_id: str, path: str) -> Optional[FileModification]:
        pass

    @abstractmethod
    def get_modifications(self, archive_id: str) -> List[FileModification]:
        pass

    @abstractmethod
    def delete_modification(self, archive_id: str, path: str) -> None:
        pass

    @abstractmethod
    def clear_modifications(self, archive_id: str) -> None:
        pass

    # Snapshots

    @abstractmethod
    def save_snapshot(self, snapshot: Snapshot) -> None:
        pass

    @abstractmethod
    def get_snapshots(self, archive_id: str) -> List[Snapshot]:
        """Snapshots of an archive, newest first."""

    @abstractmethod
    def delete_snapshot(self, snapshot_id: str) -> None:
        """Remove a snapshot and the modifications recorded with it."""


class MemoryRecordStore(RecordStore):
    """In-process record store. Records are copied in and out."""

    def __init__(self):
        self._data: Dict[str, bytes] = {}
        self._meta: Dict[str, ArchiveMeta] = {}
        self._snapshots: Dict[str, Snapshot] = {}
        self._modifications: Dict[str, FileModification] = {}

    def __len__(self) -> int:
        return len(self._meta)

    def save(self, record_id: str, data: bytes, meta: ArchiveMeta) -> None:
        if meta.id != record_id:
            raise ValueError(f"Metadata id {meta.id!r} does not match record id {record_id!r}")
        self._data[record_id] = bytes(data)
        self._meta[record_id] = replace(meta)
        logger.debug("Saved archive record %s (%d bytes)", record_id, len(data))

    def get(self, record_id: str) -> Optional[bytes]:
        return self._data.get(record_id)

    def get_meta(self, record_id: str) -> Optional[ArchiveMeta]:
        meta = self._meta.get(record_id)
        return replace(meta) if meta is not None else None

    def delete(self, record_id: str) -> None:
        self._data.pop(record_id, None)
        self._meta.pop(record_id, None)
        for snapshot in [s for s in self._snapshots.values() if s.archive_id == record_id]:
            del self._snapshots[snapshot.id]
        self.clear_modifications(record_id)
        logger.debug("Deleted archive record %s", record_id)

    def list_all(self) -> List[ArchiveMeta]:
        metas = sorted(self._meta.values(), key=lambda m: m.imported_at, reverse=True)
        return [replace(m) for m in metas]

    def list_by_hash(self, digest: str) -> List[ArchiveMeta]:
        return [m for m in self.list_all() if m.hash == digest]

    def list_by_parent(self, parent_id: str) -> List[ArchiveMeta]:
        return [m for m in self.list_all() if m.parent_id == parent_id]

    def save_modification(self, modification: FileModification) -> None:
        self.delete_modification(modification.archive_id, modification.path)
        self._modifications[modification.id] = replace(modification)

    def get_modification(self, archive_id: str, path: str) -> Optional[FileModification]:
        for mod in self._modifications.values():
            if mod.archive_id == archive_id and mod.path == path:
                return replace(mod)
        return None

    def get_modifications(self, archive_id: str) -> List[FileModification]:
        return [replace(m) for m in self._modifications.values() if m.archive_id == archive_id]

    def delete_modification(self, archive_id: str, path: str) -> None:
        stale = [
            m.id
            for m in self._modifications.values()
            if m.archive_id == archive_id and m.path == path
        ]
        for mod_id in stale:
            del self._modifications[mod_id]

    def clear_modifications(self, archive_id: str) -> None:
        stale = [m.id for m in self._modifications.values() if m.archive_id == archive_id]
        for mod_id in stale:
            del self._modifications[mod_id]

    def save_snapshot(self, snapshot: Snapshot) -> None:
        if snapshot.id in self._snapshots:
            raise ValueError(f"Snapshot already exists: {snapshot.id}")
        self._snapshots[snapshot.id] = replace(snapshot, modified_files=list(snapshot.modified_files))

    def get_snapshots(self, archive_id: str) -> List[Snapshot]:
        snapshots = [s for s in self._snapshots.values() if s.archive_id == archive_id]
        snapshots.sort(key=lambda s: s.created_at, reverse=True)
        return [replace(s, modified_files=list(s.modified_files)) for s in snapshots]

    def delete_snapshot(self, snapshot_id: str) -> None:
        self._snapshots.pop(snapshot_id, None)
        stale = [m.id for m in self._modifications.values() if m.snapshot_id == snapshot_id]
        for mod_id in stale:
            del self._modifications[mod_id]
