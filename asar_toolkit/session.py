"""Archive session: the single owner of one overlay filesystem.

A session loads an archive (from bytes, disk, a URL or a stored record),
exposes the overlay for editing and turns the edits back into archive
bytes. Header parsing and rebuilding go through an ArchiveDispatcher so they
can run off the caller's thread. An optional RecordStore keeps baseline
archives, saved modifications and snapshots.
"""

import base64
import binascii
import hashlib
import logging
import secrets
import time
from pathlib import Path
from typing import Dict, List, Optional, Union
from urllib.parse import unquote, urlparse

import httpx

from .archive.dispatch import ArchiveDispatcher, DispatchOp, ParsedHeader
from .archive.reader import Buffer
from .archive.writer import FileContent
from .config import ToolkitConfig
from .errors import NoArchiveLoaded, PathNotFound
from .history.store import ArchiveMeta, FileModification, RecordStore, Snapshot
from .overlay.filesystem import OverlayFileSystem
from .utils.paths import PATH_SEP

logger = logging.getLogger(__name__)

DATA_URL_NAME = "data-url.asar"
REMOTE_NAME = "remote.asar"


def new_id(prefix: str) -> str:
    """Generate a random record id such as ``R-3f9c0a1b2c4d5e6f``."""
    return f"{prefix}-{secrets.token_hex(8)}"


def sha256_hex(data: Buffer) -> str:
    return hashlib.sha256(data).hexdigest()


def decode_data_url(url: str) -> bytes:
    """Decode the payload of a ``data:`` URL (base64 or percent-encoded)."""
    header, sep, payload = url.partition(",")
    if not sep:
        raise ValueError("Malformed data URL: missing ','")
    if header.endswith(";base64"):
        try:
            return base64.b64decode(payload, validate=True)
        except binascii.Error as e:
            raise ValueError(f"Malformed data URL: {e}") from e
    return unquote(payload).encode("latin-1")


class ArchiveSession:
    """Load, edit and export one archive at a time."""

    def __init__(
        self,
        config: Optional[ToolkitConfig] = None,
        store: Optional[RecordStore] = None,
        dispatcher: Optional[ArchiveDispatcher] = None,
    ):
        self.config = config or ToolkitConfig()
        self.store = store
        self._owns_dispatcher = dispatcher is None
        self.dispatcher = dispatcher or ArchiveDispatcher(max_workers=self.config.max_workers)
        self.fs = OverlayFileSystem()
        self._meta: Optional[ArchiveMeta] = None
        # export request id -> archive id it was submitted for
        self._exports: Dict[int, str] = {}

    def __enter__(self) -> "ArchiveSession":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown()

    # State

    @property
    def meta(self) -> Optional[ArchiveMeta]:
        return self._meta

    @property
    def archive_id(self) -> Optional[str]:
        return self._meta.id if self._meta else None

    @property
    def loaded(self) -> bool:
        return self._meta is not None

    @property
    def original_data(self) -> bytes:
        self._require_loaded()
        return self.fs.archive_data

    @property
    def has_modifications(self) -> bool:
        return bool(self.fs.get_modified_files() or self.fs.get_deleted_files())

    def _require_loaded(self) -> ArchiveMeta:
        if self._meta is None:
            raise NoArchiveLoaded("No archive loaded")
        return self._meta

    # Loading

    def load_bytes(
        self,
        data: Buffer,
        name: str = "archive.asar",
        source: str = "file",
        source_url: Optional[str] = None,
    ) -> ArchiveMeta:
        """Open archive bytes as the session's overlay.

        With a record store, the bytes are saved as a new record unless an
        archive with the same SHA-256 digest is already stored, in which case
        that record's id is reused.
        """
        data = bytes(data)
        parsed = self.dispatcher.parse_header(data)
        digest = sha256_hex(data)

        meta = None
        if self.store is not None:
            existing = self.store.list_by_hash(digest)
            if existing:
                meta = existing[0]
                logger.info("Reusing stored archive %s for %s", meta.id, name)

        if meta is None:
            meta = ArchiveMeta(
                id=new_id(self.config.id_prefix),
                name=name,
                size=len(data),
                source=source,
                source_url=source_url,
                hash=digest,
            )
            if self.store is not None:
                self.store.save(meta.id, data, meta)

        self._open(data, meta, parsed)
        return meta

    def load_file(self, path: Union[Path, str]) -> ArchiveMeta:
        path = Path(path)
        return self.load_bytes(path.read_bytes(), name=path.name, source="file")

    def load_url(self, url: str) -> ArchiveMeta:
        """Open an archive from an ``http(s)`` or ``data:`` URL."""
        if url.startswith("data:"):
            return self.load_bytes(decode_data_url(url), name=DATA_URL_NAME, source="data-url")

        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https"):
            raise ValueError(f"Unsupported URL scheme: {parsed.scheme or url}")

        logger.info("Fetching %s", url)
        timeout = httpx.Timeout(self.config.fetch_timeout)
        with httpx.Client(timeout=timeout, follow_redirects=True) as client:
            response = client.get(url)
            response.raise_for_status()
            data = response.content

        name = unquote(parsed.path.rstrip(PATH_SEP).rpartition(PATH_SEP)[2]) or REMOTE_NAME
        return self.load_bytes(data, name=name, source="url", source_url=url)

    def load_record(self, record_id: str) -> ArchiveMeta:
        """Reopen an archive saved in the record store."""
        store = self._require_store()
        data = store.get(record_id)
        meta = store.get_meta(record_id)
        if data is None or meta is None:
            raise PathNotFound(f"No stored archive: {record_id}")
        self._open(data, meta, self.dispatcher.parse_header(data))
        return meta

    def _open(self, data: bytes, meta: ArchiveMeta, parsed: ParsedHeader) -> None:
        self._discard_exports()
        self.fs.load_from_archive(data, meta.id, parsed.files)
        self._meta = meta
        logger.info("Opened %s (%s): %d files, %d bytes", meta.name, meta.id, len(parsed.files), meta.size)

    def close(self) -> None:
        """Drop the overlay and the baseline buffer."""
        if self._meta is not None:
            logger.info("Closed %s", self._meta.id)
        self._discard_exports()
        self.fs.clear()
        self._meta = None

    def shutdown(self) -> None:
        """Close the archive and stop a dispatcher created by this session."""
        self.close()
        if self._owns_dispatcher:
            self.dispatcher.shutdown()

    # Editing

    def read_file(self, path: str) -> bytes:
        return self.fs.read_file(path)

    def save_file(self, path: str, content: FileContent) -> None:
        """Write content into the overlay."""
        meta = self._require_loaded()
        if isinstance(content, str):
            content = content.encode(self.config.text_encoding)
        self.fs.write_file(path, content)
        meta.last_modified_at = time.time()

    def reset_file(self, path: str) -> None:
        self._require_loaded()
        self.fs.reset_file(path)

    def reset_all(self) -> None:
        self._require_loaded()
        self.fs.reset_all()

    def modified_files(self) -> List[str]:
        return self.fs.get_modified_files()

    # Export

    def _patch_arguments(self):
        return self.fs.get_modifications(), self.fs.get_deleted_files()

    def export(self) -> bytes:
        """Rebuild the archive with every overlay change applied."""
        meta = self._require_loaded()
        modifications, deletions = self._patch_arguments()
        logger.info(
            "Exporting %s: %d modified, %d deleted", meta.id, len(modifications), len(deletions)
        )
        return self.dispatcher.modify(self.fs.archive_data, modifications, deletions)

    def export_async(self) -> int:
        """Start an export in the background and return its request id."""
        meta = self._require_loaded()
        modifications, deletions = self._patch_arguments()
        request_id = self.dispatcher.submit(
            DispatchOp.MODIFY,
            self.fs.archive_data,
            modifications=modifications,
            deletions=deletions,
        )
        self._exports[request_id] = meta.id
        return request_id

    def collect_export(self, request_id: int, timeout: Optional[float] = None) -> Optional[bytes]:
        """Wait for a background export.

        Returns None when the export belongs to an archive that is no longer
        open; its result is discarded.
        """
        archive_id = self._exports.pop(request_id, None)
        if archive_id is None or archive_id != self.archive_id:
            self.dispatcher.discard(request_id)
            logger.debug("Dropped stale export %d", request_id)
            return None
        return self.dispatcher.result(request_id, timeout)

    def _discard_exports(self) -> None:
        for request_id in list(self._exports):
            self.dispatcher.discard(request_id)
        self._exports.clear()

    def save_original(self, path: Union[Path, str]) -> Path:
        """Write the unmodified baseline archive to disk."""
        path = Path(path)
        path.write_bytes(self.original_data)
        return path

    def save_modified(self, path: Union[Path, str]) -> Path:
        """Export and write the modified archive to disk.

        With a record store, the exported archive is also saved as a record
        whose parent is the current archive.
        """
        meta = self._require_loaded()
        data = self.export()
        path = Path(path)
        path.write_bytes(data)

        if self.store is not None:
            child = ArchiveMeta(
                id=new_id(self.config.id_prefix),
                name=path.name,
                size=len(data),
                source="file",
                hash=sha256_hex(data),
                parent_id=meta.id,
            )
            self.store.save(child.id, data, child)
        logger.info("Saved modified archive to %s (%d bytes)", path, len(data))
        return path

    # Persistence

    def _require_store(self) -> RecordStore:
        if self.store is None:
            raise RuntimeError("No record store configured")
        return self.store

    def persist_modifications(self, snapshot_id: Optional[str] = None) -> int:
        """Save the content of every modified file to the record store."""
        store = self._require_store()
        meta = self._require_loaded()
        modifications = self.fs.get_modifications()
        for path, content in modifications.items():
            store.save_modification(
                FileModification(
                    id=new_id("M"),
                    archive_id=meta.id,
                    path=path,
                    content=content,
                    snapshot_id=snapshot_id,
                )
            )
        logger.debug("Persisted %d modifications for %s", len(modifications), meta.id)
        return len(modifications)

    def restore_modifications(self) -> int:
        """Re-apply stored modifications of the current archive to the overlay."""
        store = self._require_store()
        meta = self._require_loaded()
        modifications = store.get_modifications(meta.id)
        for mod in modifications:
            self.fs.write_file(mod.path, mod.content)
        logger.info("Restored %d modifications for %s", len(modifications), meta.id)
        return len(modifications)

    def create_snapshot(self, name: str, description: Optional[str] = None) -> Snapshot:
        """Record the current modified file set as a named snapshot."""
        store = self._require_store()
        meta = self._require_loaded()
        snapshot = Snapshot(
            id=new_id("S"),
            archive_id=meta.id,
            name=name,
            modified_files=self.fs.get_modified_files(),
            description=description,
        )
        store.save_snapshot(snapshot)
        self.persist_modifications(snapshot_id=snapshot.id)
        logger.info("Created snapshot %s of %s", snapshot.id, meta.id)
        return snapshot

    def __repr__(self) -> str:
        return f"ArchiveSession(archive_id={self.archive_id!r})"
