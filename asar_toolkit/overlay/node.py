"""Overlay filesystem node model."""

import time
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional


class EntryType(IntEnum):
    """Filesystem entry type codes reported by stat and directory listings."""

    UNKNOWN = 0
    FILE = 1
    DIRECTORY = 2
    SYMBOLIC_LINK = 64


class NodeState(Enum):
    """Where the content of a node comes from.

    FROM_ARCHIVE nodes have not been read yet and point into the baseline
    archive through ``archive_offset``. LOADED nodes hold content read from
    the baseline. AUTHORED nodes hold content written by the consumer.
    """

    FROM_ARCHIVE = "from_archive"
    LOADED = "loaded"
    AUTHORED = "authored"


@dataclass(eq=False)
class OverlayNode:
    type: EntryType
    content: Optional[bytes] = None
    children: Optional[Dict[str, "OverlayNode"]] = None
    size: int = 0
    ctime: float = field(default_factory=time.time)
    mtime: float = 0.0
    version: int = 1
    state: NodeState = NodeState.AUTHORED
    archive_offset: Optional[int] = None

    def __post_init__(self):
        if not self.mtime:
            self.mtime = self.ctime

    @classmethod
    def new_directory(cls, from_archive: bool = False) -> "OverlayNode":
        state = NodeState.FROM_ARCHIVE if from_archive else NodeState.AUTHORED
        return cls(type=EntryType.DIRECTORY, children={}, state=state)

    @classmethod
    def new_file(cls, content: bytes) -> "OverlayNode":
        return cls(type=EntryType.FILE, content=content, size=len(content))

    @classmethod
    def lazy_file(cls, size: int, archive_offset: int) -> "OverlayNode":
        """File backed by the baseline archive; content is read on first access."""
        return cls(
            type=EntryType.FILE,
            size=size,
            state=NodeState.FROM_ARCHIVE,
            archive_offset=archive_offset,
        )

    @property
    def is_directory(self) -> bool:
        return self.type is EntryType.DIRECTORY

    @property
    def is_file(self) -> bool:
        return self.type is EntryType.FILE

    @property
    def is_modified(self) -> bool:
        return self.is_file and self.state is NodeState.AUTHORED

    @property
    def is_lazy(self) -> bool:
        return self.content is None and self.state is NodeState.FROM_ARCHIVE

    def author(self, content: bytes) -> None:
        """Replace the content with consumer-written bytes."""
        self.content = content
        self.size = len(content)
        self.mtime = time.time()
        self.version += 1
        self.state = NodeState.AUTHORED
        self.archive_offset = None

    def stat(self) -> "FileStat":
        return FileStat(
            type=self.type,
            ctime=self.ctime,
            mtime=self.mtime,
            version=self.version,
            size=self.size,
        )


@dataclass(frozen=True)
class FileStat:
    type: EntryType
    ctime: float
    mtime: float
    version: int
    size: int


@dataclass
class FileTreeItem:
    """Display tree entry produced by OverlayFileSystem.get_file_tree."""

    name: str
    path: str
    is_directory: bool
    children: Optional[List["FileTreeItem"]] = None
    size: Optional[int] = None
    modified: Optional[bool] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "name": self.name,
            "path": self.path,
            "isDirectory": self.is_directory,
        }
        if self.is_directory:
            result["children"] = [c.to_dict() for c in self.children or []]
        else:
            result["size"] = self.size
            result["modified"] = self.modified
        return result
