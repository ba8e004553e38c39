"""ASAR archive reader and payload extractor."""

import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Tuple, Union

from ..errors import MalformedArchive, NotAFile
from ..utils.paths import PATH_SEP, normalize_path
from .header import (
    ArchiveHeader,
    FileDescriptor,
    FileNode,
    NodeKind,
    find_node,
    parse_header,
)

logger = logging.getLogger(__name__)

Buffer = Union[bytes, bytearray, memoryview]


def resolve_file(header: ArchiveHeader, path: str) -> FileNode:
    """Resolve a path to a file node whose payload lives inside the archive."""
    node = find_node(header.root, path)
    if node.kind is NodeKind.DIRECTORY:
        raise NotAFile(f"Not a file: {path}")
    if node.unpacked:
        raise NotAFile(f"Stored outside the archive (unpacked): {path}")
    if node.offset is None:
        raise NotAFile(f"No payload in archive: {path}")
    return node


def read_range(data: Buffer, start: int, size: int) -> bytes:
    """Slice an absolute byte range out of the archive bytes."""
    end = start + size
    if end > len(data):
        raise MalformedArchive(
            f"Payload range {start}..{end} exceeds archive size {len(data)}"
        )
    return bytes(data[start:end])


def read_payload(data: Buffer, header: ArchiveHeader, node: FileNode) -> bytes:
    """Slice one file payload out of the archive bytes."""
    return read_range(data, header.payload_offset + node.offset, node.size)


def extract_file(data: Buffer, path: str, header: Optional[ArchiveHeader] = None) -> bytes:
    """Extract a single file from archive bytes.

    Raises PathNotFound for a missing path and NotAFile when the path is a
    directory or an unpacked entry.
    """
    if header is None:
        header = parse_header(data)
    return read_payload(data, header, resolve_file(header, path))


def _extract_many(
    data: Buffer,
    header: ArchiveHeader,
    paths: List[str],
    max_workers: Optional[int],
) -> List[bytes]:
    def extract(path: str) -> bytes:
        return read_payload(data, header, resolve_file(header, path))

    if len(paths) <= 1 or max_workers == 1:
        return [extract(p) for p in paths]

    # Pure reads over an immutable buffer; safe to fan out
    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="asar-extract") as executor:
        return list(executor.map(extract, paths))


def extract_files(
    data: Buffer,
    paths: Iterable[str],
    max_workers: Optional[int] = None,
    header: Optional[ArchiveHeader] = None,
) -> Dict[str, bytes]:
    """Extract several files, keyed by the paths as given."""
    if header is None:
        header = parse_header(data)
    paths = list(paths)
    return dict(zip(paths, _extract_many(data, header, paths, max_workers)))


def extract_all(
    data: Buffer,
    flat: bool = True,
    max_workers: Optional[int] = None,
    skip_unpacked: bool = True,
) -> Dict[str, object]:
    """Extract every file of an archive.

    Flat mode maps full paths (``/dir/file``) to bytes. Nested mode returns
    dicts mirroring the directory tree with bytes at the leaves.
    """
    header = parse_header(data)
    descriptors = header.descriptors()
    if skip_unpacked:
        for d in descriptors:
            if d.unpacked:
                logger.warning("Skipping unpacked entry %s", d.path)
        descriptors = [d for d in descriptors if not d.unpacked]

    paths = [d.path for d in descriptors]
    contents = dict(zip(paths, _extract_many(data, header, paths, max_workers)))
    logger.debug("Extracted %d files", len(contents))
    if flat:
        return contents

    tree: Dict[str, object] = {}
    for path, content in contents.items():
        parts = normalize_path(path).split(PATH_SEP)
        current = tree
        for part in parts[:-1]:
            current = current.setdefault(part, {})
        current[parts[-1]] = content
    return tree


def list_package(data: Buffer) -> List[str]:
    """List all file paths in an archive."""
    return [d.path for d in parse_header(data).descriptors()]


def read_file_text(data: Buffer, path: str, encoding: str = "utf-8") -> str:
    """Extract a file and decode it as text."""
    return extract_file(data, path).decode(encoding)


class ArchiveReader:
    """Reader for ASAR archives held in memory or on disk."""

    def __init__(self, source: Union[Path, str, bytes, bytearray]):
        if isinstance(source, (bytes, bytearray)):
            self.path: Optional[Path] = None
            self._data: Optional[bytes] = bytes(source)
        else:
            self.path = Path(source)
            self._data = None
        self._header: Optional[ArchiveHeader] = None
        self._entries: List[FileDescriptor] = []

    def __enter__(self) -> "ArchiveReader":
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def open(self) -> None:
        """Load the archive bytes and parse the header."""
        if self._data is None:
            self._data = self.path.read_bytes()
        self._header = parse_header(self._data)
        self._entries = self._header.descriptors()
        logger.debug("Opened archive with %d entries", len(self._entries))

    def close(self) -> None:
        """Release the archive bytes read from disk."""
        if self.path is not None:
            self._data = None
        self._header = None
        self._entries = []

    @property
    def data(self) -> bytes:
        if self._data is None:
            raise RuntimeError("Archive not opened")
        return self._data

    @property
    def header(self) -> ArchiveHeader:
        if not self._header:
            raise RuntimeError("Archive not opened")
        return self._header

    @property
    def entries(self) -> List[FileDescriptor]:
        return self._entries

    def list_files(self) -> List[str]:
        """List all file paths in the archive."""
        return [e.path for e in self._entries]

    def get_entry(self, path: str) -> Optional[FileDescriptor]:
        """Find an entry by path."""
        path = normalize_path(path)
        for entry in self._entries:
            if normalize_path(entry.path) == path:
                return entry
        return None

    def extract_file(self, path: str) -> bytes:
        """Extract a single file from the archive."""
        return extract_file(self.data, path, header=self.header)

    def extract_all(
        self,
        output_dir: Path,
        progress_callback: Optional[Callable[[int, int, str], None]] = None,
    ) -> Iterator[Tuple[str, Path]]:
        """Extract all files to the output directory.

        Yields (archive_path, output_path) for each extracted file. Unpacked
        entries have no payload in the archive and are skipped.
        """
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        for i, entry in enumerate(self._entries):
            if entry.unpacked:
                logger.warning("Skipping unpacked entry %s", entry.path)
                continue

            output_path = output_dir.joinpath(*normalize_path(entry.path).split(PATH_SEP))
            output_path.parent.mkdir(parents=True, exist_ok=True)
            output_path.write_bytes(self.extract_file(entry.path))
            if entry.executable:
                output_path.chmod(output_path.stat().st_mode | 0o111)

            if progress_callback:
                progress_callback(i, len(self._entries), entry.path)

            yield entry.path, output_path
