"""ASAR header structures and codec.

Layout of the archive preamble (all little-endian):

    0   u32  4              payload length of the size packer
    4   u32  files_offset   byte length of the header packer that follows
    8   u32  payload length of the header packer
    12  i32  JSON text length
    16  ...  UTF-8 JSON metadata tree, zero padded to 4 bytes
    8 + files_offset        file payloads

The metadata tree is a nest of ``{"files": {...}}`` directory objects with
``{"size": n, "offset": "m"}`` leaves. Offsets are decimal strings relative to
the start of the payload region.
"""

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from ..errors import BoundsError, MalformedArchive, NotADirectory, PathNotFound
from ..utils.binary import SIZE_UINT32
from ..utils.packer import Packer
from ..utils.paths import PATH_SEP, join_path, split_path

logger = logging.getLogger(__name__)

# Bytes occupied by the size packer in front of the header packer
SIZE_PACKER_LENGTH = 8

# Smallest well-formed archive: size packer + header packer prefix + string length
MIN_ARCHIVE_SIZE = 16

_KNOWN_FILE_KEYS = ("size", "offset", "executable", "unpacked")


class NodeKind(Enum):
    DIRECTORY = "directory"
    FILE = "file"


@dataclass
class FileNode:
    """Leaf of the metadata tree."""

    size: int = 0
    offset: Optional[int] = None  # None for unpacked entries and placeholders
    executable: bool = False
    unpacked: bool = False
    # Keys we do not model (integrity, link, ...) survive a round trip
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def kind(self) -> NodeKind:
        return NodeKind.FILE


@dataclass
class DirectoryNode:
    """Directory of the metadata tree, mapping names to child nodes."""

    files: Dict[str, "MetadataNode"] = field(default_factory=dict)

    @property
    def kind(self) -> NodeKind:
        return NodeKind.DIRECTORY


MetadataNode = Union[DirectoryNode, FileNode]


@dataclass
class FileDescriptor:
    """A file entry resolved against the archive it was listed from."""

    path: str
    offset: Optional[int]
    size: int
    file_offset: Optional[int]  # absolute byte position in the archive
    executable: bool = False
    unpacked: bool = False


@dataclass
class ArchiveHeader:
    """Parsed archive header."""

    root: DirectoryNode
    files_offset: int  # header packer length, as stored at bytes 4..7
    header_size: int  # JSON text length, as stored at bytes 12..15

    @property
    def payload_offset(self) -> int:
        return self.files_offset + SIZE_PACKER_LENGTH

    def descriptors(self) -> List[FileDescriptor]:
        return list_entries(self.root, self.files_offset, flat=True)

    def nested(self) -> Dict[str, Any]:
        return list_entries(self.root, self.files_offset, flat=False)


def node_from_json(value: Any, path: str = PATH_SEP) -> MetadataNode:
    """Convert a decoded JSON object into a typed metadata node."""
    if not isinstance(value, dict):
        raise MalformedArchive(f"Invalid metadata entry at {path}: expected an object")

    if "files" in value:
        files = value["files"]
        if not isinstance(files, dict):
            raise MalformedArchive(f"Invalid 'files' mapping at {path}")
        return DirectoryNode(
            files={name: node_from_json(child, join_path(path, name)) for name, child in files.items()}
        )

    size = value.get("size", 0)
    if not isinstance(size, int) or isinstance(size, bool) or size < 0:
        raise MalformedArchive(f"Invalid size at {path}: {size!r}")

    offset = value.get("offset")
    if offset is not None:
        offset = _parse_offset(offset, path)

    return FileNode(
        size=size,
        offset=offset,
        executable=bool(value.get("executable", False)),
        unpacked=bool(value.get("unpacked", False)),
        extra={k: v for k, v in value.items() if k not in _KNOWN_FILE_KEYS},
    )


def _parse_offset(value: Any, path: str) -> int:
    # int() on the decimal string keeps full precision beyond 2**53
    if isinstance(value, str) and value.isascii() and value.isdigit():
        return int(value)
    if isinstance(value, int) and not isinstance(value, bool) and value >= 0:
        return value
    raise MalformedArchive(f"Invalid offset at {path}: {value!r}")


def node_to_json(node: MetadataNode) -> Dict[str, Any]:
    """Convert a typed metadata node into its wire representation."""
    if node.kind is NodeKind.DIRECTORY:
        return {"files": {name: node_to_json(child) for name, child in node.files.items()}}

    result: Dict[str, Any] = {"size": node.size}
    if node.offset is not None:
        result["offset"] = str(node.offset)
    if node.executable:
        result["executable"] = True
    if node.unpacked:
        result["unpacked"] = True
    result.update(node.extra)
    return result


def encode_metadata(root: DirectoryNode) -> str:
    """Serialize a metadata tree to the compact JSON stored in archives."""
    return json.dumps(node_to_json(root), separators=(",", ":"), ensure_ascii=False)


def parse_header(data: Union[bytes, bytearray, memoryview]) -> ArchiveHeader:
    """Parse the preamble and metadata tree of an archive.

    Raises MalformedArchive when the preamble is truncated or misaligned, or
    when the metadata block is not valid UTF-8 JSON.
    """
    if len(data) < MIN_ARCHIVE_SIZE:
        raise MalformedArchive(f"Archive too small: {len(data)} bytes")

    try:
        files_offset = Packer.from_bytes(data[:SIZE_PACKER_LENGTH]).reader().read_uint32()
    except BoundsError as e:
        raise MalformedArchive(f"Invalid size header: {e}") from e

    if files_offset % SIZE_UINT32:
        raise MalformedArchive(f"Header length {files_offset} is not 4-byte aligned")
    if files_offset + SIZE_PACKER_LENGTH > len(data):
        raise MalformedArchive(
            f"Header length {files_offset} exceeds archive size {len(data)}"
        )

    header_packer = Packer.from_bytes(data[SIZE_PACKER_LENGTH : SIZE_PACKER_LENGTH + files_offset])
    try:
        text = header_packer.reader().read_string()
    except BoundsError as e:
        raise MalformedArchive(f"Truncated metadata block: {e}") from e
    except UnicodeDecodeError as e:
        raise MalformedArchive(f"Metadata block is not valid UTF-8: {e}") from e

    try:
        decoded = json.loads(text)
        root = node_from_json(decoded)
    except json.JSONDecodeError as e:
        raise MalformedArchive(f"Metadata block is not valid JSON: {e}") from e
    except RecursionError as e:
        raise MalformedArchive("Metadata tree is nested too deeply") from e

    if root.kind is not NodeKind.DIRECTORY:
        raise MalformedArchive("Metadata root is not a directory")

    header_size = len(text.encode("utf-8"))
    logger.debug("Parsed header: files_offset=%d, json=%d bytes", files_offset, header_size)
    return ArchiveHeader(root=root, files_offset=files_offset, header_size=header_size)


def read_header(data: Union[bytes, bytearray, memoryview]) -> Tuple[DirectoryNode, int]:
    """Return the metadata tree and the files offset of an archive."""
    header = parse_header(data)
    return header.root, header.files_offset


def iter_files(node: MetadataNode, base_path: str = PATH_SEP) -> Iterator[Tuple[str, FileNode]]:
    """Yield (path, file node) pairs in pre-order, following insertion order."""
    if node.kind is NodeKind.FILE:
        yield base_path, node
        return
    for name, child in node.files.items():
        yield from iter_files(child, join_path(base_path, name))


def _describe(path: str, node: FileNode, files_offset: int) -> FileDescriptor:
    file_offset = None
    if node.offset is not None:
        file_offset = files_offset + SIZE_PACKER_LENGTH + node.offset
    return FileDescriptor(
        path=path,
        offset=node.offset,
        size=node.size,
        file_offset=file_offset,
        executable=node.executable,
        unpacked=node.unpacked,
    )


def _nested_listing(node: DirectoryNode, base_path: str, files_offset: int) -> Dict[str, Any]:
    result: Dict[str, Any] = {}
    for name, child in node.files.items():
        child_path = join_path(base_path, name)
        if child.kind is NodeKind.DIRECTORY:
            result[name] = _nested_listing(child, child_path, files_offset)
        else:
            result[name] = _describe(child_path, child, files_offset)
    return result


def list_entries(
    root: DirectoryNode, files_offset: int, flat: bool = True
) -> Union[List[FileDescriptor], Dict[str, Any]]:
    """List the files of a metadata tree.

    Flat mode returns descriptors in pre-order. Nested mode returns a dict
    with the same directory shape as the tree and descriptors at the leaves.
    """
    if flat:
        return [_describe(path, node, files_offset) for path, node in iter_files(root)]
    return _nested_listing(root, PATH_SEP, files_offset)


def find_node(root: DirectoryNode, path: str, create: bool = False) -> MetadataNode:
    """Resolve a path inside a metadata tree.

    Empty and '.' segments are ignored. With ``create`` missing directories
    along the way and the leaf itself are added as empty placeholders;
    otherwise a missing segment raises PathNotFound.
    """
    parts = split_path(path)
    node: MetadataNode = root
    for i, part in enumerate(parts):
        if node.kind is not NodeKind.DIRECTORY:
            raise NotADirectory(f"Not a directory: {PATH_SEP + PATH_SEP.join(parts[:i])}")
        child = node.files.get(part)
        if child is None:
            if not create:
                raise PathNotFound(f"Not found: {path}")
            child = DirectoryNode() if i < len(parts) - 1 else FileNode()
            node.files[part] = child
        node = child
    return node
