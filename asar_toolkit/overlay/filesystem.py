"""In-memory overlay filesystem over one ASAR archive.

Loading an archive creates a lazy file node per entry; payloads are sliced
out of the retained baseline buffer the first time a file is read. Writes
replace content in memory and mark the node as authored, and the set of
authored nodes (plus baseline files that disappeared) is what an export
feeds to the patch pipeline.

The overlay is not thread safe. One owner mutates it at a time.
"""

import logging
import time
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from ..archive.header import ArchiveHeader, FileDescriptor, parse_header
from ..archive.reader import Buffer, extract_file, read_range
from ..archive.writer import FileContent, to_bytes
from ..errors import (
    AlreadyExists,
    ContentNotAvailable,
    NoArchiveLoaded,
    NotADirectory,
    NotAFile,
    NotEmpty,
    PathNotFound,
)
from ..utils.paths import PATH_SEP, split_path
from .node import EntryType, FileStat, FileTreeItem, NodeState, OverlayNode
from .watch import WatchCallback, WatcherRegistry, WatchEvent

logger = logging.getLogger(__name__)


class OverlayFileSystem:
    """Editable virtual filesystem backed by an archive buffer."""

    def __init__(self):
        self._root = OverlayNode.new_directory()
        self._watchers = WatcherRegistry()
        self._archive: Optional[bytes] = None
        self._archive_id: Optional[str] = None
        self._header: Optional[ArchiveHeader] = None
        self._baseline_paths: List[str] = []

    # Loading

    def load_from_archive(
        self,
        data: Buffer,
        archive_id: str,
        descriptors: Optional[Sequence[FileDescriptor]] = None,
    ) -> None:
        """Reset the tree to the contents of an archive.

        ``descriptors`` is the flat listing of ``data`` when the caller has
        already parsed it (for example on a worker); otherwise the header is
        parsed here. No payload is read.
        """
        data = bytes(data)
        header = None
        if descriptors is None:
            header = parse_header(data)
            descriptors = header.descriptors()

        root = OverlayNode.new_directory()
        baseline_paths = []
        for descriptor in descriptors:
            parts = split_path(descriptor.path)
            if not parts:
                continue
            if descriptor.file_offset is None:
                logger.warning("Entry %s has no payload in the archive; not loaded", descriptor.path)
                continue

            node = root
            for part in parts[:-1]:
                child = node.children.get(part)
                if child is None:
                    child = OverlayNode.new_directory(from_archive=True)
                    node.children[part] = child
                node = child
            node.children[parts[-1]] = OverlayNode.lazy_file(descriptor.size, descriptor.file_offset)
            baseline_paths.append(PATH_SEP.join(parts))

        self._root = root
        self._archive = data
        self._archive_id = archive_id
        self._header = header
        self._baseline_paths = baseline_paths
        logger.info("Loaded archive %s: %d files", archive_id, len(baseline_paths))

    def clear(self) -> None:
        """Drop the tree and the baseline buffer. Watchers stay registered."""
        self._root = OverlayNode.new_directory()
        self._archive = None
        self._archive_id = None
        self._header = None
        self._baseline_paths = []

    @property
    def archive_id(self) -> Optional[str]:
        return self._archive_id

    @property
    def archive_data(self) -> Optional[bytes]:
        return self._archive

    @property
    def loaded(self) -> bool:
        return self._archive is not None

    # Node lookup

    def _get_node(self, path: str) -> Optional[OverlayNode]:
        node = self._root
        for part in split_path(path):
            if not node.is_directory:
                return None
            node = node.children.get(part)
            if node is None:
                return None
        return node

    def _require_node(self, path: str) -> OverlayNode:
        node = self._get_node(path)
        if node is None:
            raise PathNotFound(f"Not found: {path}")
        return node

    def _check_parents(self, parts: List[str]) -> None:
        """Fail before mutating if a file sits where a parent directory should be."""
        node = self._root
        for i, part in enumerate(parts[:-1]):
            node = node.children.get(part)
            if node is None:
                return
            if not node.is_directory:
                raise NotADirectory(f"Not a directory: /{PATH_SEP.join(parts[: i + 1])}")

    def _make_parents(self, parts: List[str]) -> OverlayNode:
        """Return the parent directory of ``parts``, creating missing ones."""
        node = self._root
        for i, part in enumerate(parts[:-1]):
            child = node.children.get(part)
            if child is None:
                child = OverlayNode.new_directory()
                node.children[part] = child
                self._watchers.notify(
                    WatchEvent.CREATE, PATH_SEP.join(parts[: i + 1]), EntryType.DIRECTORY
                )
            node = child
        return node

    def _baseline_header(self) -> ArchiveHeader:
        if self._archive is None:
            raise NoArchiveLoaded("No archive loaded")
        if self._header is None:
            self._header = parse_header(self._archive)
        return self._header

    # Reading

    def exists(self, path: str) -> bool:
        return self._get_node(path) is not None

    def stat(self, path: str) -> FileStat:
        return self._require_node(path).stat()

    def read_directory(self, path: str) -> List[Tuple[str, EntryType]]:
        """List a directory, directories first, then by name."""
        node = self._require_node(path)
        if not node.is_directory:
            raise NotADirectory(f"Not a directory: {path}")
        entries = [(name, child.type) for name, child in node.children.items()]
        return sorted(entries, key=lambda e: (e[1] is not EntryType.DIRECTORY, e[0]))

    def read_file(self, path: str) -> bytes:
        """Return file content, reading it from the baseline archive if needed."""
        node = self._require_node(path)
        if not node.is_file:
            raise NotAFile(f"Not a file: {path}")

        if node.content is not None:
            return node.content

        if node.is_lazy and node.archive_offset is not None and self._archive is not None:
            node.content = read_range(self._archive, node.archive_offset, node.size)
            node.state = NodeState.LOADED
            logger.debug("Loaded %s from archive (%d bytes)", path, node.size)
            return node.content

        raise ContentNotAvailable(f"Content not available: {path}")

    def read_text_file(self, path: str, encoding: str = "utf-8") -> str:
        return self.read_file(path).decode(encoding)

    # Writing

    def write_file(self, path: str, content: FileContent) -> None:
        """Write file content, creating missing parent directories."""
        data = to_bytes(content)
        parts = split_path(path)
        if not parts:
            raise NotAFile(f"Not a file: {path}")
        self._check_parents(parts)

        existing = self._get_node(path)
        if existing is not None and not existing.is_file:
            raise NotAFile(f"Not a file: {path}")

        parent = self._make_parents(parts)
        if existing is None:
            parent.children[parts[-1]] = OverlayNode.new_file(data)
            self._watchers.notify(WatchEvent.CREATE, path, EntryType.FILE)
        else:
            existing.author(data)
            self._watchers.notify(WatchEvent.MODIFY, path, EntryType.FILE)

    def create_directory(self, path: str) -> None:
        """Create a directory and any missing parents."""
        parts = split_path(path)
        existing = self._get_node(path)
        if existing is not None and not existing.is_directory:
            raise AlreadyExists(f"File exists: {path}")
        self._check_parents(parts + [""])
        self._make_parents(parts + [""])

    def delete(self, path: str, recursive: bool = False) -> None:
        """Delete a file or directory.

        A directory with children is only removed when ``recursive`` is set.
        """
        parts = split_path(path)
        if not parts:
            raise ValueError("Cannot delete the root directory")
        parent = self._get_node(PATH_SEP.join(parts[:-1]))
        if parent is None or not parent.is_directory or parts[-1] not in parent.children:
            raise PathNotFound(f"Not found: {path}")

        node = parent.children[parts[-1]]
        if node.is_directory and node.children and not recursive:
            raise NotEmpty(f"Directory not empty: {path}")

        del parent.children[parts[-1]]
        self._watchers.notify(WatchEvent.REMOVE, path, node.type)

    def copy(self, source: str, target: str, overwrite: bool = False) -> None:
        """Copy a file or a directory tree."""
        source_node = self._require_node(source)
        source_parts = split_path(source)
        target_parts = split_path(target)
        if not target_parts:
            raise AlreadyExists(f"Target already exists: {target}")
        if source_node.is_directory and target_parts[: len(source_parts)] == source_parts:
            raise ValueError(f"Cannot copy {source} into itself")

        target_node = self._get_node(target)
        if target_node is not None and not overwrite:
            raise AlreadyExists(f"Target already exists: {target}")
        self._check_parents(target_parts)

        # Read everything first so a missing payload leaves the tree untouched
        if source_node.is_file:
            files = [([], self.read_file(source))]
            directories: List[List[str]] = []
        else:
            files, directories = self._collect(source_node, source_parts)

        if target_node is not None and (target_node.is_directory or source_node.is_directory):
            self.delete(target, recursive=True)

        target_path = PATH_SEP.join(target_parts)
        if source_node.is_directory:
            self.create_directory(target_path)
        for rel in directories:
            self.create_directory(PATH_SEP.join(target_parts + rel))
        for rel, content in files:
            self.write_file(PATH_SEP.join(target_parts + rel), content)

    def _collect(
        self, node: OverlayNode, parts: List[str]
    ) -> Tuple[List[Tuple[List[str], bytes]], List[List[str]]]:
        files: List[Tuple[List[str], bytes]] = []
        directories: List[List[str]] = []

        def walk(current: OverlayNode, rel: List[str]) -> None:
            for name, child in current.children.items():
                child_rel = rel + [name]
                if child.is_directory:
                    directories.append(child_rel)
                    walk(child, child_rel)
                else:
                    files.append((child_rel, self.read_file(PATH_SEP.join(parts + child_rel))))

        walk(node, [])
        return files, directories

    def rename(self, source: str, target: str, overwrite: bool = False) -> None:
        """Move a file or directory: copy, then delete the source."""
        if split_path(source) == split_path(target):
            self._require_node(source)
            return
        self.copy(source, target, overwrite=overwrite)
        self.delete(source, recursive=True)

    # Watching

    def watch(
        self, path: str, callback: WatchCallback, recursive: bool = False
    ) -> Callable[[], None]:
        """Register a change callback; returns a function that unregisters it."""
        return self._watchers.add(path, callback, recursive=recursive)

    # Modification tracking

    def is_modified(self, path: str) -> bool:
        node = self._get_node(path)
        return node.is_modified if node is not None else False

    def get_modified_files(self) -> List[str]:
        """Paths of all authored files, in pre-order."""
        result: List[str] = []

        def traverse(node: OverlayNode, path: str) -> None:
            if node.is_modified:
                result.append(path)
            if node.children:
                for name, child in node.children.items():
                    traverse(child, f"{path}{PATH_SEP}{name}" if path else f"{PATH_SEP}{name}")

        traverse(self._root, "")
        return result

    def get_deleted_files(self) -> List[str]:
        """Baseline files that no longer exist as files in the overlay."""
        result = []
        for path in self._baseline_paths:
            node = self._get_node(path)
            if node is None or not node.is_file:
                result.append(PATH_SEP + path)
        return result

    def get_modifications(self) -> Dict[str, bytes]:
        """Content of every authored file, keyed by path."""
        return {path: self.read_file(path) for path in self.get_modified_files()}

    def reset_file(self, path: str) -> None:
        """Discard authored content and restore the baseline version."""
        node = self._require_node(path)
        if not node.is_file:
            raise NotAFile(f"Not a file: {path}")

        content = extract_file(self._archive_data_or_raise(), path, header=self._baseline_header())
        node.content = content
        node.size = len(content)
        node.state = NodeState.LOADED
        node.mtime = time.time()
        node.version += 1
        self._watchers.notify(WatchEvent.MODIFY, path, EntryType.FILE)

    def reset_all(self) -> None:
        """Reload the whole tree from the baseline archive."""
        self.load_from_archive(self._archive_data_or_raise(), self._archive_id)

    def _archive_data_or_raise(self) -> bytes:
        if self._archive is None:
            raise NoArchiveLoaded("No archive loaded")
        return self._archive

    # Display

    def get_file_tree(self) -> List[FileTreeItem]:
        """Build a display tree, directories first, then by name."""

        def build(node: OverlayNode, path: str) -> List[FileTreeItem]:
            items = []
            for name, child in node.children.items():
                full_path = f"{path}{PATH_SEP}{name}"
                if child.is_directory:
                    items.append(
                        FileTreeItem(
                            name=name,
                            path=full_path,
                            is_directory=True,
                            children=build(child, full_path),
                        )
                    )
                else:
                    items.append(
                        FileTreeItem(
                            name=name,
                            path=full_path,
                            is_directory=False,
                            size=child.size,
                            modified=child.is_modified,
                        )
                    )
            return sorted(items, key=lambda item: (not item.is_directory, item.name))

        return build(self._root, "")

    def __repr__(self) -> str:
        return f"OverlayFileSystem(archive_id={self._archive_id!r})"
