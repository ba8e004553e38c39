"""Archive path helpers.

Archive paths always use forward slashes. Listings report them with a
leading slash (``/dir/file.txt``); content maps passed to the builder use the
bare form (``dir/file.txt``). Both spellings are accepted everywhere.
"""

from collections.abc import Mapping
from typing import List

PATH_SEP = "/"


def split_path(p: str) -> List[str]:
    """Split an archive path into its segments.

    Rules:
    - Convert backslashes to slashes
    - Strip a ``file://`` scheme prefix
    - Remove empty and '.' segments
    - Reject '..' segments
    """
    p = p.replace("\\", PATH_SEP)
    if p.startswith("file://"):
        p = p[len("file://") :]
    parts = [q for q in p.split(PATH_SEP) if q not in ("", ".")]
    for q in parts:
        if q == "..":
            raise ValueError(f"Path may not contain '..': {p}")
    return parts


def normalize_path(p: str) -> str:
    """Return the canonical bare form of an archive path ('' for the root)."""
    return PATH_SEP.join(split_path(p))


def join_path(*parts: str) -> str:
    """Join path fragments, collapsing repeated separators."""
    segments = []
    for part in parts:
        if part:
            segments.extend(s for s in part.split(PATH_SEP) if s)
    joined = PATH_SEP.join(segments)
    if parts and parts[0].startswith(PATH_SEP):
        return PATH_SEP + joined
    return joined


def dirname(p: str) -> str:
    """Return the parent of a path, or '.' for a top-level name."""
    parts = [q for q in p.split(PATH_SEP) if q]
    if parts:
        parts.pop()
    return PATH_SEP.join(parts) or "."


def basename(p: str) -> str:
    parts = [q for q in p.split(PATH_SEP) if q]
    return parts[-1] if parts else ""


def is_directory_value(value) -> bool:
    """Tell a directory from a leaf in a content tree.

    Mappings are directories; text and byte-like objects are file contents.
    """
    return isinstance(value, Mapping)
