"""ASAR Toolkit - read, edit and rebuild Electron ASAR archives."""

__version__ = "0.1.0"

from .archive import (
    ArchiveDispatcher,
    ArchiveReader,
    create_package,
    extract_all,
    extract_file,
    list_package,
    modify_package,
    parse_header,
)
from .config import ToolkitConfig, configure_logging
from .errors import AsarError
from .overlay import OverlayFileSystem
from .session import ArchiveSession

__all__ = [
    "ArchiveDispatcher",
    "ArchiveReader",
    "ArchiveSession",
    "AsarError",
    "OverlayFileSystem",
    "ToolkitConfig",
    "configure_logging",
    "create_package",
    "extract_all",
    "extract_file",
    "list_package",
    "modify_package",
    "parse_header",
]
