"""ASAR archive builder.

An archive is built in three passes over a content tree:

1. shape: flat ``"a/b/c" -> content`` maps are turned into nested dicts
2. size: each leaf is replaced by its byte length
3. offset: leaves get consecutive offsets, depth-first in insertion order

Leaves are plain contents, ``ArchiveEntry`` objects carrying metadata flags
next to the content, or unpacked ``FileNode`` placeholders. Unpacked entries
live outside the archive: they are listed with their size but get no offset
and no payload.

The resulting metadata tree is serialized as JSON through a Packer and the
payloads are appended in the same order the offsets were assigned. Building
the same tree twice gives byte-identical output.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Union

from ..utils.packer import Packer
from ..utils.paths import PATH_SEP, is_directory_value, split_path
from .header import DirectoryNode, FileNode, NodeKind, encode_metadata

logger = logging.getLogger(__name__)

FileContent = Union[str, bytes, bytearray, memoryview]


@dataclass
class ArchiveEntry:
    """File content together with the metadata flags stored next to it."""

    content: FileContent
    executable: bool = False
    extra: Dict[str, Any] = field(default_factory=dict)


ContentTree = Mapping[str, Union["ContentTree", FileContent, ArchiveEntry, FileNode]]


def to_bytes(content: FileContent) -> bytes:
    """Convert file content to bytes, encoding text as UTF-8."""
    if isinstance(content, str):
        return content.encode("utf-8")
    if isinstance(content, (bytes, bytearray, memoryview)):
        return bytes(content)
    raise TypeError(f"Unsupported file content type: {type(content).__name__}")


def make_nested_tree(files: Mapping[str, FileContent]) -> Dict[str, object]:
    """Turn a flat path -> content map into nested directory dicts."""
    tree: Dict[str, object] = {}
    for key, value in files.items():
        dirs = split_path(key)
        if not dirs:
            raise ValueError(f"Empty file path: {key!r}")
        filename = dirs.pop()
        current = tree
        for d in dirs:
            child = current.setdefault(d, {})
            if not is_directory_value(child):
                raise ValueError(f"Path conflicts with a file: {key}")
            current = child
        if is_directory_value(current.get(filename)):
            raise ValueError(f"Path conflicts with a directory: {key}")
        current[filename] = value
    return tree


def make_size_tree(tree: ContentTree) -> DirectoryNode:
    """Replace every leaf of a content tree with its byte size."""
    result = DirectoryNode()
    for name, value in tree.items():
        if is_directory_value(value):
            result.files[name] = make_size_tree(value)
        else:
            result.files[name] = make_file_node(value)
    return result


def make_file_node(value) -> FileNode:
    """Metadata leaf for one content tree leaf, without an offset yet."""
    if isinstance(value, FileNode):
        if not value.unpacked:
            raise ValueError("Only unpacked entries can be stored without content")
        return FileNode(
            size=value.size, executable=value.executable, unpacked=True, extra=dict(value.extra)
        )
    if isinstance(value, ArchiveEntry):
        return FileNode(
            size=len(to_bytes(value.content)), executable=value.executable, extra=dict(value.extra)
        )
    return FileNode(size=len(to_bytes(value)))


def make_offset_tree(tree: DirectoryNode, start: int = 0) -> DirectoryNode:
    """Assign payload offsets in depth-first insertion order."""

    def assign(node: DirectoryNode, offset: int) -> int:
        for child in node.files.values():
            if child.kind is NodeKind.DIRECTORY:
                offset = assign(child, offset)
            elif not child.unpacked:
                child.offset = offset
                offset += child.size
        return offset

    assign(tree, start)
    return tree


def build_header(files: ContentTree) -> DirectoryNode:
    """Compute the metadata tree for a nested content tree."""
    return make_offset_tree(make_size_tree(files))


def collect_payloads(files: ContentTree) -> List[bytes]:
    """Gather leaf contents in the order offsets are assigned."""
    result: List[bytes] = []
    for value in files.values():
        if is_directory_value(value):
            result.extend(collect_payloads(value))
        elif isinstance(value, ArchiveEntry):
            result.append(to_bytes(value.content))
        elif not isinstance(value, FileNode):
            result.append(to_bytes(value))
    return result


def encode_header(root: DirectoryNode) -> bytes:
    """Serialize a metadata tree into the size packer + header packer preamble."""
    header_packer = Packer()
    header_packer.write_string(encode_metadata(root))
    header_bytes = header_packer.to_bytes()

    size_packer = Packer()
    size_packer.write_uint32(len(header_bytes))
    return size_packer.to_bytes() + header_bytes


def create_package(files: ContentTree, flat: bool = False) -> bytes:
    """Build archive bytes from a content tree.

    ``files`` is either nested dicts (``{"dir": {"a.txt": b"..."}}``) or, with
    ``flat=True``, a map of slash-separated paths to contents.
    """
    tree = make_nested_tree(files) if flat else files
    root = build_header(tree)
    payloads = collect_payloads(tree)

    archive = bytearray(encode_header(root))
    for payload in payloads:
        archive += payload

    logger.debug("Built archive: %d files, %d bytes", len(payloads), len(archive))
    return bytes(archive)


def read_directory_tree(directory: Union[Path, str]) -> Dict[str, object]:
    """Load a directory from disk into a nested content tree.

    Entries are visited in sorted order so the archive layout is stable.
    """
    directory = Path(directory)
    tree: Dict[str, object] = {}
    for entry in sorted(directory.iterdir(), key=lambda p: p.name):
        if entry.is_dir():
            tree[entry.name] = read_directory_tree(entry)
        elif entry.is_file():
            tree[entry.name] = entry.read_bytes()
    return tree


def pack_directory(directory: Union[Path, str]) -> bytes:
    """Build an archive from the files under a directory."""
    return create_package(read_directory_tree(directory))


def write_package(files: ContentTree, output: Union[Path, str], flat: bool = False) -> Path:
    """Build an archive and write it to disk."""
    output = Path(output)
    output.write_bytes(create_package(files, flat=flat))
    return output


def flatten_tree(tree: ContentTree, prefix: str = "") -> Dict[str, object]:
    """Flatten nested content dicts into slash-separated paths."""
    result: Dict[str, object] = {}
    for name, value in tree.items():
        path = f"{prefix}{PATH_SEP}{name}" if prefix else name
        if is_directory_value(value):
            result.update(flatten_tree(value, path))
        else:
            result[path] = value
    return result
