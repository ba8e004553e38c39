"""Watcher registrations for the overlay filesystem."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List

from ..utils.paths import PATH_SEP, normalize_path
from .node import EntryType

logger = logging.getLogger(__name__)


class WatchEvent(Enum):
    CREATE = "create"
    MODIFY = "modify"
    REMOVE = "remove"


WatchCallback = Callable[[WatchEvent, str, EntryType], None]


@dataclass(eq=False)
class Watcher:
    path_prefix: str  # normalized, '' for the root
    recursive: bool
    callback: WatchCallback

    def matches(self, path: str) -> bool:
        """Tell whether an event on ``path`` (normalized) concerns this watcher.

        Recursive watchers see the watched path and everything below it.
        Non-recursive watchers only see direct children.
        """
        if self.recursive:
            return (
                path == self.path_prefix
                or self.path_prefix == ""
                or path.startswith(self.path_prefix + PATH_SEP)
            )
        if path == self.path_prefix:
            return False
        parent = path.rpartition(PATH_SEP)[0]
        return parent == self.path_prefix


class WatcherRegistry:
    def __init__(self):
        self._watchers: List[Watcher] = []

    def __len__(self) -> int:
        return len(self._watchers)

    def add(self, path: str, callback: WatchCallback, recursive: bool = False) -> Callable[[], None]:
        """Register a watcher and return a function that removes it."""
        watcher = Watcher(path_prefix=normalize_path(path), recursive=recursive, callback=callback)
        self._watchers.append(watcher)

        def unsubscribe() -> None:
            if watcher in self._watchers:
                self._watchers.remove(watcher)

        return unsubscribe

    def notify(self, kind: WatchEvent, path: str, entry_type: EntryType = EntryType.FILE) -> int:
        """Deliver an event to every matching watcher; return the delivery count."""
        normalized = normalize_path(path)
        delivered = 0
        # Callbacks may unsubscribe while we iterate
        for watcher in list(self._watchers):
            if not watcher.matches(normalized):
                continue
            delivered += 1
            try:
                watcher.callback(kind, PATH_SEP + normalized, entry_type)
            except Exception:
                logger.warning("Watcher for %r failed on %s %s", watcher.path_prefix, kind.value, normalized, exc_info=True)
        return delivered
