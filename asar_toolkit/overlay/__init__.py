"""Editable in-memory overlay over an ASAR archive."""

from .filesystem import OverlayFileSystem
from .node import EntryType, FileStat, FileTreeItem, NodeState, OverlayNode
from .watch import WatchCallback, WatcherRegistry, WatchEvent

__all__ = [
    "EntryType",
    "FileStat",
    "FileTreeItem",
    "NodeState",
    "OverlayFileSystem",
    "OverlayNode",
    "WatchCallback",
    "WatchEvent",
    "WatcherRegistry",
]
