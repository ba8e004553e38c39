"""Archive patching by extract, overlay and rebuild.

Every operation extracts all payloads of the baseline archive into a flat
path -> content map, applies the change to that map and rebuilds a fresh
archive. Files keep their original relative order; new files are appended.
Unpacked entries and the metadata flags of untouched files are carried into
the rebuilt header.
"""

import logging
from dataclasses import replace
from typing import Dict, Iterable, Mapping, Optional, Set

from ..errors import PathNotFound
from ..utils.paths import PATH_SEP, normalize_path
from .header import FileNode, iter_files, parse_header
from .reader import Buffer, extract_files
from .writer import ArchiveEntry, FileContent, create_package

logger = logging.getLogger(__name__)


def extract_flat(data: Buffer, max_workers: Optional[int] = None) -> Dict[str, object]:
    """Extract an archive into a flat map keyed by bare paths (no leading slash).

    Plain files map to their bytes and files with flags or extra metadata to
    an ArchiveEntry. Unpacked entries have no content in the archive and map
    to a copy of their FileNode.
    """
    header = parse_header(data)
    nodes = dict(iter_files(header.root))
    packed = [path for path, node in nodes.items() if not node.unpacked]
    contents = extract_files(data, packed, max_workers=max_workers, header=header)

    result: Dict[str, object] = {}
    for path, node in nodes.items():
        if node.unpacked:
            value = replace(node, offset=None, extra=dict(node.extra))
        elif node.executable or node.extra:
            value = ArchiveEntry(contents[path], executable=node.executable, extra=dict(node.extra))
        else:
            value = contents[path]
        result[normalize_path(path)] = value
    return result


def patch_package(
    data: Buffer,
    modifications: Optional[Mapping[str, FileContent]] = None,
    deletions: Iterable[str] = (),
    max_workers: Optional[int] = None,
) -> bytes:
    """Rebuild an archive with files removed, replaced or added.

    Deletions are applied before modifications, so a path present in both
    ends up with the modified content. A deleted directory path removes
    everything below it; a deletion matching nothing raises PathNotFound.
    Paths may be written with or without a leading slash.
    """
    files = extract_flat(data, max_workers)
    deleted = 0

    targets = {normalize_path(p) for p in deletions}
    if targets:
        matched: Set[str] = set()
        remaining = {}
        for path, content in files.items():
            target = _deleted_by(path, targets)
            if target is None:
                remaining[path] = content
            else:
                matched.add(target)
        missing = targets - matched
        if missing:
            raise PathNotFound(f"Not found: {PATH_SEP}{sorted(missing)[0]}")
        deleted = len(files) - len(remaining)
        files = remaining

    modifications = modifications or {}
    for path, content in modifications.items():
        key = normalize_path(path)
        previous = files.get(key)
        # New content keeps the executable bit; extra keys such as integrity
        # describe the old bytes and are dropped
        if (
            isinstance(previous, (ArchiveEntry, FileNode))
            and previous.executable
            and not isinstance(content, ArchiveEntry)
        ):
            content = ArchiveEntry(content, executable=True)
        files[key] = content

    logger.info(
        "Rebuilding archive: %d files, %d deleted, %d modified",
        len(files),
        deleted,
        len(modifications),
    )
    return create_package(files, flat=True)


def modify_package(
    data: Buffer,
    modifications: Mapping[str, FileContent],
    max_workers: Optional[int] = None,
) -> bytes:
    """Rebuild an archive with some files replaced or added."""
    return patch_package(data, modifications=modifications, max_workers=max_workers)


def add_files(
    data: Buffer,
    new_files: Mapping[str, FileContent],
    max_workers: Optional[int] = None,
) -> bytes:
    """Add files to an archive; existing paths are overwritten."""
    return patch_package(data, modifications=new_files, max_workers=max_workers)


def delete_files(
    data: Buffer,
    paths: Iterable[str],
    max_workers: Optional[int] = None,
) -> bytes:
    """Rebuild an archive without the given files or directories."""
    return patch_package(data, deletions=paths, max_workers=max_workers)


def _deleted_by(path: str, targets: Set[str]) -> Optional[str]:
    """Return the deletion target that covers ``path``, if any."""
    if path in targets:
        return path
    parts = path.split(PATH_SEP)
    for i in range(1, len(parts)):
        prefix = PATH_SEP.join(parts[:i])
        if prefix in targets:
            return prefix
    return None
